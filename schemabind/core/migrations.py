import logging
from typing import Any, List, Tuple

from sqlalchemy import Column, MetaData
from alembic.autogenerate import compare_metadata
from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# MIGRATIONS MODULE
# Purpose: diff a live schema against model metadata with alembic and apply
# only the additive part of the difference (new tables, new columns, new
# indexes, NOT NULL -> NULL). Nothing here ever drops or narrows.
# -----------------------------------------------------------------------------

ADDITIVE_OPERATIONS = ("add_table", "add_column", "add_index", "modify_nullable")


def _flatten(diffs) -> List[Tuple[Any, ...]]:
    # compare_metadata nests column modifications in lists
    flat = []
    for diff in diffs:
        if isinstance(diff, list):
            flat.extend(diff)
        else:
            flat.append(diff)
    return flat


def _is_additive(diff) -> bool:
    operation = diff[0]
    if operation not in ADDITIVE_OPERATIONS:
        return False
    if operation == "modify_nullable":
        # (op, schema, table, column, existing_kw, db_nullable, model_nullable)
        return diff[5] is False and diff[6] is True
    return True


def additive_diffs(connection, metadata: MetaData) -> List[Tuple[Any, ...]]:
    """
    Additive differences between the connected database and `metadata`.

    Args:
        connection: Synchronous SQLAlchemy connection (use via run_sync).
        metadata: Model metadata to compare against.

    Returns:
        Flat list of alembic diff tuples the additive update knows how to apply.
    """
    context = MigrationContext.configure(connection)
    diffs = _flatten(compare_metadata(context, metadata))
    additive = [diff for diff in diffs if _is_additive(diff)]
    skipped = len(diffs) - len(additive)
    if skipped:
        logger.debug(f"Ignoring {skipped} non-additive schema differences")
    return additive


def apply_additive_diffs(connection, metadata: MetaData, diffs) -> int:
    """Apply diffs from additive_diffs(); returns how many were applied."""
    operations = Operations(MigrationContext.configure(connection))

    new_tables = [diff[1] for diff in diffs if diff[0] == "add_table"]
    if new_tables:
        metadata.create_all(connection, tables=new_tables, checkfirst=True)
        logger.info(f"Created tables: {', '.join(table.name for table in new_tables)}")

    for diff in diffs:
        if diff[0] != "add_column":
            continue
        _, schema, table_name, column = diff
        # A fresh nullable copy: the model's column belongs to its Table, and
        # existing rows have no value for it
        operations.add_column(
            table_name, Column(column.name, column.type, nullable=True), schema=schema
        )
        logger.info(f"Added column {table_name}.{column.name}")

    for diff in diffs:
        if diff[0] == "add_index":
            index = diff[1]
            if index.table in new_tables:
                continue
            index.create(connection, checkfirst=True)
            logger.info(f"Created index {index.name}")

    for diff in diffs:
        if diff[0] != "modify_nullable":
            continue
        _, schema, table_name, column_name, existing, _, _ = diff
        with operations.batch_alter_table(table_name, schema=schema) as batch:
            batch.alter_column(
                column_name, existing_type=existing.get("existing_type"), nullable=True
            )
        logger.info(f"Relaxed NOT NULL on {table_name}.{column_name}")

    return len(diffs)
