import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import (
    Column,
    Index,
    Integer,
    String,
    Float,
    Boolean,
    DateTime,
    LargeBinary,
    JSON,
    select,
    delete,
    func,
)
from sqlalchemy.orm import DeclarativeBase

from schemabind.core.exceptions import SchemaError
from schemabind.core.schemas import PropertyDefinition, SchemaDescriptor

logger = logging.getLogger(__name__)

# Bases every model implicitly has; naming them is the same as naming none
BUILTIN_BASES = frozenset({"Model", "PersistedModel"})

# Framework-only lifecycle hook with nothing to attach to outside the web framework
RESERVED_MIXIN_HOOKS = frozenset({"GlobalBeforeRemote"})

SCALAR_TYPES = {
    "string": String,
    "number": Float,
    "integer": Integer,
    "boolean": Boolean,
    "date": lambda: DateTime(timezone=True),
    "buffer": LargeBinary,
    "object": JSON,
    "any": JSON,
    "array": JSON,
    "geopoint": JSON,
}


# =========================
# Model handle
# =========================
class ModelHandle:
    """
    Behaviour shared by every assembled or discovered model class.

    The class methods run against the DataSource the model was attached to.
    """

    __datasource__ = None

    @classmethod
    def get_data_source(cls):
        if cls.__datasource__ is None:
            raise RuntimeError(f"Model {cls.__name__} is not attached to a data source")
        return cls.__datasource__

    @classmethod
    async def create(cls, **data):
        async with cls.get_data_source().session() as session:
            instance = cls(**data)
            session.add(instance)
            await session.commit()
            await session.refresh(instance)
            return instance

    @classmethod
    async def find(cls, **where) -> List[Any]:
        async with cls.get_data_source().session() as session:
            result = await session.execute(select(cls).filter_by(**where))
            return list(result.scalars().all())

    @classmethod
    async def find_one(cls, **where):
        async with cls.get_data_source().session() as session:
            result = await session.execute(select(cls).filter_by(**where).limit(1))
            return result.scalars().first()

    @classmethod
    async def find_by_id(cls, pk):
        async with cls.get_data_source().session() as session:
            return await session.get(cls, pk)

    @classmethod
    async def count(cls, **where) -> int:
        async with cls.get_data_source().session() as session:
            query = select(func.count()).select_from(cls).filter_by(**where)
            result = await session.execute(query)
            return result.scalar_one()

    @classmethod
    async def destroy_all(cls, **where) -> int:
        async with cls.get_data_source().session() as session:
            result = await session.execute(delete(cls).filter_by(**where))
            await session.commit()
            return result.rowcount


RESERVED_ATTRIBUTES = frozenset({"metadata", "registry"}) | {
    name for name in vars(ModelHandle) if not name.startswith("_")
}


# =========================
# Mixins
# =========================
class MixinRegistry:
    """Named behaviour extensions, applied as fn(model, options) after a model is built."""

    def __init__(self):
        self._mixins: Dict[str, Callable[..., Any]] = {}

    def define(self, name: str, fn: Callable[..., Any]) -> None:
        if not callable(fn):
            raise TypeError(f"Mixin {name} must be callable")
        self._mixins[name] = fn

    def get(self, name: str) -> Optional[Callable[..., Any]]:
        return self._mixins.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._mixins

    def __len__(self) -> int:
        return len(self._mixins)


# =========================
# Model builder
# =========================
class ModelBuilder:
    """
    Turns schema descriptors into SQLAlchemy declarative classes.

    Every builder owns a fresh declarative base, so two builders never share
    a registry or a MetaData.
    """

    def __init__(self):
        self.mixins = MixinRegistry()
        self.Base = self._declarative_base()
        self.models: Dict[str, type] = {}

    @staticmethod
    def _declarative_base():
        class Base(ModelHandle, DeclarativeBase):
            pass

        return Base

    @property
    def metadata(self):
        return self.Base.metadata

    def build_models(self, descriptors: Sequence[SchemaDescriptor]) -> Dict[str, type]:
        """
        Build every descriptor in one pass.

        Property types may name any descriptor of the batch, so the full set
        of names is known before the first class is created.

        Returns:
            Mapping of model name to model class, in descriptor order.
        """
        known = {descriptor.name for descriptor in descriptors}
        built: Dict[str, type] = {}
        for descriptor in descriptors:
            if descriptor.name in built:
                raise SchemaError(f"Model '{descriptor.name}' is defined more than once")
            built[descriptor.name] = self._build_model(descriptor, known, built)
        self.models.update(built)
        return built

    def _build_model(self, descriptor, known, built) -> type:
        name = descriptor.name
        properties = dict(descriptor.properties)

        base_model = None
        base = descriptor.base
        if base and base not in BUILTIN_BASES:
            base_model = built.get(base) or self.models.get(base)
            if base_model is None:
                raise SchemaError(f"Model '{name}': undefined base '{base}'")
            properties = {**base_model.__properties__, **properties}

        attrs: Dict[str, Any] = {
            "__tablename__": descriptor.options.get("table") or name,
            "__module__": __name__,
            "__properties__": properties,
            "__settings__": dict(descriptor.options),
            "__base_model__": base_model,
        }

        has_id = False
        for prop_name, prop in properties.items():
            if prop_name in RESERVED_ATTRIBUTES or prop_name.startswith("__"):
                raise SchemaError(f"Model '{name}': property name '{prop_name}' is reserved")
            attrs[prop_name] = self._column(name, prop_name, prop, known)
            has_id = has_id or bool(prop.id)

        if not has_id:
            if descriptor.options.get("idInjection", True) is False:
                raise SchemaError(f"Model '{name}' has no id property and idInjection is disabled")
            attrs["id"] = Column(Integer, primary_key=True, autoincrement=True)

        indexes = self._indexes(name, descriptor.options.get("indexes") or {}, attrs)
        if indexes:
            attrs["__table_args__"] = tuple(indexes)

        self._check_mixin_references(name, descriptor.mixins)
        model = type(self.Base)(name, (self.Base,), attrs)
        self._apply_mixins(model, descriptor.options.get("mixins"))
        logger.debug(f"Built model {name} on table {model.__tablename__}")
        return model

    def _column(self, model_name, prop_name, prop: PropertyDefinition, known) -> Column:
        column_type = self._resolve_type(model_name, prop_name, prop, known)
        index = prop.index
        unique = isinstance(index, dict) and bool(index.get("unique"))

        kwargs: Dict[str, Any] = {
            "primary_key": bool(prop.id),
            "nullable": not (prop.required or prop.id),
            "index": bool(index) or None,
            "unique": unique or None,
        }
        if prop.id:
            kwargs["autoincrement"] = prop.generated is not False and isinstance(column_type, Integer)
        if prop.default == "$now":
            kwargs["server_default"] = func.now()
        elif isinstance(prop.default, (dict, list)):
            template = prop.default
            kwargs["default"] = lambda: type(template)(template)
        elif prop.default is not None:
            kwargs["default"] = prop.default

        return Column(column_type, **kwargs)

    @staticmethod
    def _resolve_type(model_name, prop_name, prop: PropertyDefinition, known):
        declared = prop.type
        if isinstance(declared, (list, dict)):
            return JSON()
        key = declared.lower()
        if key == "number" and prop.id:
            return Integer()
        if key == "string":
            return String(prop.length) if prop.length else String()
        if key in SCALAR_TYPES:
            return SCALAR_TYPES[key]()
        # Embedded model: stored as a document
        if declared in known:
            return JSON()
        raise SchemaError(
            f"Model '{model_name}': property '{prop_name}' references undefined type '{declared}'"
        )

    @staticmethod
    def _indexes(model_name, specs: Dict[str, Any], attrs) -> List[Index]:
        indexes = []
        for index_name, spec in specs.items():
            unique = False
            if isinstance(spec, str):
                columns = [spec]
            elif "keys" in spec:
                columns = list(spec["keys"])
                unique = bool((spec.get("options") or {}).get("unique"))
            elif "columns" in spec:
                columns = [c.strip() for c in spec["columns"].split(",") if c.strip()]
                unique = str(spec.get("kind", "")).lower() == "unique" or bool(spec.get("unique"))
            else:
                columns = [key for key in spec if key not in ("unique", "options")]
                unique = bool(spec.get("unique"))

            missing = [c for c in columns if c not in attrs]
            if not columns or missing:
                raise SchemaError(
                    f"Model '{model_name}': index '{index_name}' names unknown columns {missing}"
                )
            indexes.append(Index(index_name, *columns, unique=unique))
        return indexes

    def _check_mixin_references(self, model_name, mixins) -> None:
        # Top-level references that were never moved into the options
        for mixin_name, options in (mixins or {}).items():
            if mixin_name in RESERVED_MIXIN_HOOKS or options is False:
                continue
            if mixin_name not in self.mixins:
                raise SchemaError(
                    f"Model '{model_name}': mixin '{mixin_name}' is not registered"
                )

    def _apply_mixins(self, model, mixins) -> None:
        if not mixins:
            return
        if isinstance(mixins, (list, tuple)):
            mixins = {mixin_name: True for mixin_name in mixins}
        for mixin_name, options in mixins.items():
            if options is False:
                continue
            fn = self.mixins.get(mixin_name)
            if fn is None:
                raise SchemaError(
                    f"Model '{model.__name__}': mixin '{mixin_name}' is not registered"
                )
            fn(model, options if isinstance(options, dict) else {})
