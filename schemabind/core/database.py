import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import MetaData, event, inspect, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.ext.automap import automap_base, generate_relationship
from sqlalchemy.pool import StaticPool

from schemabind.core.config import settings
from schemabind.core.exceptions import ConnectivityError, SchemaError
from schemabind.core.migrations import additive_diffs, apply_additive_diffs
from schemabind.core.models import ModelHandle
from schemabind.core.relations import define_relations
from schemabind.core.schemas import TableDefinition

logger = logging.getLogger(__name__)

CONNECTOR_DRIVERS = {
    "memory": "sqlite+aiosqlite",
    "sqlite": "sqlite+aiosqlite",
    "sqlite3": "sqlite+aiosqlite",
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "mysql": "mysql+aiomysql",
}


def build_url(settings_: Mapping[str, Any]) -> URL:
    """Connection URL from a connector profile's driver settings."""
    if settings_.get("url"):
        return make_url(settings_["url"])
    connector = settings_.get("connector", "memory")
    drivername = CONNECTOR_DRIVERS.get(connector, connector)
    if connector == "memory":
        return URL.create(drivername)
    return URL.create(
        drivername=drivername,
        username=settings_.get("user"),
        password=settings_.get("password"),
        host=settings_.get("host"),
        port=settings_.get("port"),
        database=settings_.get("database"),
    )


def _is_memory(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def classname_for_table(base, tablename, table) -> str:
    """'config_item' -> 'ConfigItem'"""
    return "".join(part[:1].upper() + part[1:] for part in tablename.split("_") if part)


def _eager_relationship(base, direction, return_fn, attrname, local_cls, referred_cls, **kw):
    kw.setdefault("lazy", "selectin")
    return generate_relationship(base, direction, return_fn, attrname, local_cls, referred_cls, **kw)


def _no_relationship(base, direction, return_fn, attrname, local_cls, referred_cls, **kw):
    return None


# =========================
# Connection handle
# =========================
class DataSource:
    """
    One database connection handle: an async engine, its sessions, and the
    models attached to it.

    Errors the engine classifies as disconnects are reported on the error
    channel as ConnectivityError. Emitting on a channel nobody listens to
    raises, so callers that want to survive outages install a listener.
    """

    def __init__(
        self,
        name: str,
        settings_: Mapping[str, Any],
        *,
        logger: Optional[logging.Logger] = None,
        echo: Optional[bool] = None,
    ):
        self.name = name
        self.settings = dict(settings_)
        self.logger = logger or logging.getLogger(f"{__name__}.{name}")
        self.models: Dict[str, type] = {}
        self._error_listeners: List[Callable[[Exception], Any]] = []
        self._metadata: Optional[MetaData] = None

        url = build_url(self.settings)
        engine_options = dict(self.settings.get("engine_options") or {})
        engine_options.setdefault("echo", settings.SQL_ECHO if echo is None else echo)
        if _is_memory(url):
            # One shared connection, otherwise every checkout gets its own empty database
            engine_options.setdefault("poolclass", StaticPool)
            engine_options.setdefault("connect_args", {"check_same_thread": False})
        else:
            engine_options.setdefault("pool_pre_ping", settings.POOL_PRE_PING)

        self.engine = create_async_engine(url, **engine_options)
        # Talk to the DB through async sessions without refreshes after commit
        self.session = async_sessionmaker(
            bind=self.engine, class_=AsyncSession, expire_on_commit=False
        )
        event.listen(self.engine.sync_engine, "handle_error", self._on_engine_error)

    def __repr__(self):
        return f"<DataSource {self.name} {self.engine.url.render_as_string(hide_password=True)}>"

    # ---- error channel ----

    def on_error(self, listener: Callable[[Exception], Any]) -> None:
        self._error_listeners.append(listener)

    def emit_error(self, error: Exception) -> None:
        if not self._error_listeners:
            raise error
        for listener in list(self._error_listeners):
            listener(error)

    def _on_engine_error(self, context) -> None:
        if context.is_disconnect:
            self.emit_error(ConnectivityError(str(context.original_exception)))

    # ---- models ----

    def attach(self, model) -> None:
        model_metadata = model.metadata
        if self._metadata is None:
            self._metadata = model_metadata
        model.__datasource__ = self
        self.models[model.__name__] = model

    @property
    def metadata(self) -> MetaData:
        if self._metadata is None:
            raise SchemaError(f"No models are attached to data source '{self.name}'")
        return self._metadata

    def define_relations(self, model, relations, models: Optional[Mapping[str, type]] = None) -> None:
        define_relations(model, relations or {}, self.models if models is None else models)

    # ---- connectivity ----

    async def ping(self) -> bool:
        """True when a round trip succeeds; failures go to the error channel."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except DBAPIError as error:
            if not error.connection_invalidated:
                self.emit_error(ConnectivityError(str(error)))
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()

    # ---- schema sync ----

    async def is_actual(self) -> bool:
        async with self.engine.connect() as conn:
            diffs = await conn.run_sync(additive_diffs, self.metadata)
        return not diffs

    async def autoupdate(self) -> int:
        async with self.engine.begin() as conn:
            diffs = await conn.run_sync(additive_diffs, self.metadata)
            if not diffs:
                return 0
            return await conn.run_sync(apply_additive_diffs, self.metadata, diffs)

    # ---- discovery ----

    async def discover_model_definitions(
        self, views: bool = False, owner: Optional[str] = None
    ) -> List[TableDefinition]:
        def _tables(sync_conn):
            inspector = inspect(sync_conn)
            found = [
                TableDefinition(name=name, type="table", owner=owner)
                for name in inspector.get_table_names(schema=owner)
            ]
            if views:
                found += [
                    TableDefinition(name=name, type="view", owner=owner)
                    for name in inspector.get_view_names(schema=owner)
                ]
            return found

        async with self.engine.connect() as conn:
            return await conn.run_sync(_tables)

    async def reflect_table(
        self, table: str, relations: bool = True, owner: Optional[str] = None
    ) -> MetaData:
        """Reflect `table`, plus the tables its foreign keys point at when relations are on."""

        def _reflect(sync_conn):
            metadata = MetaData()
            metadata.reflect(
                sync_conn, schema=owner, only=[table], resolve_fks=relations, views=True
            )
            return metadata

        async with self.engine.connect() as conn:
            return await conn.run_sync(_reflect)

    def build_discovered_models(self, metadata: MetaData, relations: bool = True) -> Dict[str, type]:
        """
        Map every reflected table of `metadata` with automap and attach the classes.

        All tables share one automap base, so inferred relationships point at
        the very classes returned here.

        Returns:
            Mapping of model name to model class; tables without a primary
            key are left out.
        """
        Base = automap_base(metadata=metadata, cls=ModelHandle)
        Base.prepare(
            classname_for_table=classname_for_table,
            generate_relationship=_eager_relationship if relations else _no_relationship,
        )
        models = {cls.__name__: cls for cls in Base.classes}
        for model in models.values():
            self.attach(model)
        return models

    async def discover_and_build_models(
        self, table: str, relations: bool = True, owner: Optional[str] = None
    ) -> Dict[str, type]:
        """
        Reflect `table` and map it to a model class.

        With relations on, tables it references through foreign keys are
        reflected and mapped too, and the foreign keys become relationships.
        """
        metadata = await self.reflect_table(table, relations=relations, owner=owner)
        models = self.build_discovered_models(metadata, relations=relations)
        self.logger.debug(f"Discovered {sorted(models)} from table {table}")
        return models


def make_datasource(
    name: str, settings_: Mapping[str, Any], *, logger: Optional[logging.Logger] = None
) -> DataSource:
    """
    DataSource with a non-fatal error listener installed before anything is attached.

    Transient connectivity errors are logged and swallowed so a long-running
    process survives database blips.
    """
    datasource = DataSource(name, settings_, logger=logger)
    datasource.on_error(
        lambda error: datasource.logger.warning(f"Data source {name} connectivity error: {error}")
    )
    return datasource
