import logging
from typing import Mapping, Optional

from schemabind.core.database import DataSource, make_datasource
from schemabind.core.schemas import ConnectorProfile

logger = logging.getLogger(__name__)


def bind_models(
    connector: ConnectorProfile,
    models: Mapping[str, type],
    *,
    sink: Optional[logging.Logger] = None,
) -> DataSource:
    """
    Create this invocation's DataSource and attach every model to it.

    The DataSource gets its non-fatal error listener before the first attach.
    """
    datasource = make_datasource(connector.name, connector.driver_settings(), logger=sink)
    for model in models.values():
        datasource.attach(model)
    logger.debug(f"Attached {len(models)} models to {datasource!r}")
    return datasource
