import logging
from typing import Mapping

from schemabind.core.exceptions import EmptyModelSetError
from schemabind.core.schemas import SyncResult, SyncStatus

logger = logging.getLogger(__name__)


async def sync_models(models: Mapping[str, type]) -> SyncResult:
    """
    Bring the live schema up to the models, additively.

    All models of one assembly share a DataSource, so any of them leads to it.
    Two syncs must not run against the same database at the same time.

    Raises:
        EmptyModelSetError: There is nothing to sync.
    """
    if not models:
        raise EmptyModelSetError()

    datasource = next(iter(models.values())).get_data_source()
    if await datasource.is_actual():
        status = SyncStatus.UP_TO_DATE
    else:
        applied = await datasource.autoupdate()
        logger.info(f"Applied {applied} schema changes on {datasource.name}")
        status = SyncStatus.UPDATED

    logger.info(f"Sync of {datasource.name}: {status.value}")
    return SyncResult(status=status, models=dict(models))
