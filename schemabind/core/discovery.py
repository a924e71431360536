import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import MetaData

from schemabind.core.database import DataSource, make_datasource
from schemabind.core.exceptions import DiscoveryError
from schemabind.core.schemas import ConnectorProfile, RelationHint

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# DISCOVERY MODULE
# Purpose: reverse-engineer models from a live database and enrich their
# relations with user hints.
# Limits: belongsTo-style relations are inferred only from declared foreign
# keys, and JSON/object columns come back as whatever the database reports.
# -----------------------------------------------------------------------------


async def _reflect_table(datasource: DataSource, table: str) -> MetaData:
    try:
        return await datasource.reflect_table(table, relations=True)
    except Exception as error:
        raise DiscoveryError(table, str(error)) from error


def merge_reflections(tables: Sequence[str], reflections: Sequence[MetaData]) -> MetaData:
    """
    Fold per-table reflections into one MetaData.

    A table's own reflection wins over copies pulled in as foreign key
    targets of other tables.
    """
    merged = MetaData()
    for table, metadata in zip(tables, reflections):
        if table in metadata.tables:
            metadata.tables[table].to_metadata(merged)
    for metadata in reflections:
        for key, relative in metadata.tables.items():
            if key not in merged.tables:
                relative.to_metadata(merged)
    return merged


async def discover_all(datasource: DataSource, tables: Sequence[str]) -> Dict[str, type]:
    """
    Reflect every table concurrently, then map them all together.

    The first failure cancels the reflections still running, waits for
    them to unwind, and is raised.
    """
    tasks = [asyncio.ensure_future(_reflect_table(datasource, table)) for table in tables]
    if not tasks:
        return {}

    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    failed = next((task for task in tasks if task in done and task.exception()), None)
    if failed is not None:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        raise failed.exception()

    metadata = merge_reflections(tables, [task.result() for task in tasks])
    return datasource.build_discovered_models(metadata, relations=True)


def apply_relation_hints(
    datasource: DataSource, models: Dict[str, type], hints: Sequence[RelationHint]
) -> None:
    for model_name, model in models.items():
        hint = next((hint for hint in hints if hint.name == model_name), None)
        if hint is None:
            continue
        datasource.define_relations(model, hint.relations or {}, models)
        logger.debug(f"Applied relation hints to {model_name}")


async def discover_models(
    connector: ConnectorProfile, relations: Optional[List[RelationHint]] = None
) -> Dict[str, type]:
    """
    Build models for every table of the connected database.

    Args:
        connector: Connection profile to discover through.
        relations: Optional relation hints, matched to models by name.

    Returns:
        Mapping of model name to model class.

    Raises:
        DiscoveryError: Listing tables or discovering any one table failed.
    """
    datasource = make_datasource(connector.name, connector.driver_settings())
    try:
        try:
            definitions = await datasource.discover_model_definitions()
        except Exception as error:
            raise DiscoveryError(None, str(error)) from error
        models = await discover_all(datasource, [definition.name for definition in definitions])
    except Exception:
        await datasource.dispose()
        raise

    if not models:
        # Nothing will ever hold the data source
        await datasource.dispose()
        logger.info(f"No tables with a primary key on {connector.name}")
        return models

    if relations:
        apply_relation_hints(datasource, models, relations)

    logger.info(f"Discovered {len(models)} models on {connector.name}")
    return models
