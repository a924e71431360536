import logging
from typing import Callable, Mapping

from sqlalchemy import Column, Table, inspect
from sqlalchemy.orm import relationship, foreign, remote

from schemabind.core.exceptions import SchemaError
from schemabind.core.schemas import RelationDefinition, RelationType

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# RELATIONS MODULE
# Purpose: turn relation definitions (belongsTo, hasOne, hasMany,
# hasAndBelongsToMany) into SQLAlchemy relationships on live model classes.
# Joins are spelled out with foreign()/remote() so no database-level foreign
# key constraint is needed.
# -----------------------------------------------------------------------------


def camelize(name: str) -> str:
    """'OrderItem' -> 'orderItem'"""
    return name[:1].lower() + name[1:]


def default_foreign_key(model_name: str) -> str:
    return f"{camelize(model_name)}Id"


def _primary_key(model, override=None):
    table = model.__table__
    if override:
        if override not in table.c:
            raise SchemaError(f"Model '{model.__name__}' has no column '{override}'")
        return table.c[override]
    keys = list(table.primary_key.columns)
    if len(keys) != 1:
        raise SchemaError(f"Model '{model.__name__}' needs a single-column primary key for relations")
    return keys[0]


def _ensure_column(model, column_name, column_type):
    """Return model's column, adding a nullable one when the model lacks it."""
    table = model.__table__
    if column_name not in table.c:
        logger.debug(f"Adding foreign key column {model.__name__}.{column_name}")
        setattr(model, column_name, Column(column_name, column_type, nullable=True))
    return table.c[column_name]


def _join_table(model, target, fk, key_through) -> Table:
    metadata = model.metadata
    for candidate in (f"{model.__name__}{target.__name__}", f"{target.__name__}{model.__name__}"):
        if candidate in metadata.tables:
            return metadata.tables[candidate]
    name = f"{model.__name__}{target.__name__}"
    return Table(
        name,
        metadata,
        Column(fk, _primary_key(model).type),
        Column(key_through, _primary_key(target).type),
    )


def build_relationship(model, name: str, definition: RelationDefinition, lookup: Callable[[str], type]):
    """
    Build the relationship() for one relation definition of `model`.

    Args:
        model: Source model class.
        name: Accessor name the relationship is installed under.
        definition: Relation definition.
        lookup: Resolves a model name to a model class.
    """
    target = lookup(definition.model)
    kind = definition.type

    if kind == RelationType.BELONGS_TO:
        target_key = _primary_key(target, definition.primary_key)
        fk = _ensure_column(model, definition.foreign_key or f"{name}Id", target_key.type)
        return relationship(
            target,
            primaryjoin=foreign(fk) == remote(target_key),
            uselist=False,
            lazy="selectin",
        )

    local_key = _primary_key(model, definition.primary_key)

    if kind == RelationType.HAS_AND_BELONGS_TO_MANY or definition.through:
        fk = definition.foreign_key or default_foreign_key(model.__name__)
        key_through = definition.key_through or default_foreign_key(target.__name__)
        if definition.through:
            through = lookup(definition.through).__table__
        else:
            through = _join_table(model, target, fk, key_through)
        for column_name in (fk, key_through):
            if column_name not in through.c:
                raise SchemaError(f"Table '{through.name}' has no column '{column_name}'")
        return relationship(
            target,
            secondary=through,
            primaryjoin=local_key == foreign(through.c[fk]),
            secondaryjoin=_primary_key(target) == foreign(through.c[key_through]),
            lazy="selectin",
        )

    fk = _ensure_column(
        target, definition.foreign_key or default_foreign_key(model.__name__), local_key.type
    )
    return relationship(
        target,
        primaryjoin=local_key == remote(foreign(fk)),
        uselist=kind == RelationType.HAS_MANY,
        lazy="selectin",
    )


def define_relations(model, relations: Mapping[str, RelationDefinition], models: Mapping[str, type]) -> None:
    """Install every relation of `relations` on `model`, resolving targets in `models`."""

    def lookup(model_name: str) -> type:
        try:
            return models[model_name]
        except KeyError:
            raise SchemaError(
                f"Model '{model.__name__}': relation target '{model_name}' is not defined"
            ) from None

    for relation_name, definition in relations.items():
        if not isinstance(definition, RelationDefinition):
            definition = RelationDefinition.model_validate(definition)
        if relation_name in model.__table__.c:
            raise SchemaError(
                f"Model '{model.__name__}': relation '{relation_name}' collides with a column"
            )
        if inspect(model).has_property(relation_name):
            logger.warning(f"Replacing relation {model.__name__}.{relation_name}")
        setattr(model, relation_name, build_relationship(model, relation_name, definition, lookup))
        logger.debug(
            f"{model.__name__}.{relation_name}: {definition.type.value} {definition.model}"
        )
