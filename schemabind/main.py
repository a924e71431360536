import logging
from typing import Any, Mapping, Optional, Union

from schemabind.core.assembly.pipeline import run_assembly
from schemabind.core.discovery import discover_models
from schemabind.core.schemas import LoadOptions
from schemabind.core.sync import sync_models

logger = logging.getLogger(__name__)


def load_models(options: Optional[Union[LoadOptions, Mapping[str, Any]]] = None, **kwargs):
    """
    Build models from schemas (or from the database) and bind them to it.

    Accepts a LoadOptions, a mapping, or the same fields as keyword
    arguments (connector, schemas, models_path / modelsPath, relations,
    mixins, sync, discovery, remote_hooks).

    Returns, depending on the mode:
        default: dict of model name -> model class, immediately.
        sync: a coroutine resolving to SyncResult(status, models). Models
            are assembled before this returns, so assembly errors raise here.
        discovery: a coroutine resolving to dict of model name -> model class.

    Example:
        models = load_models(connector={"connector": "memory"}, models_path="models/")
        result = await load_models(connector=profile, models_path="models/", sync=True)
    """
    if options is None:
        options = LoadOptions.model_validate(kwargs)
    elif not isinstance(options, LoadOptions):
        options = LoadOptions.model_validate({**options, **kwargs})

    if options.sync_requested:
        models = run_assembly(options)
        return sync_models(models)

    if options.discovery_requested:
        logger.debug(f"Discovery mode on {options.connector.name}")
        return discover_models(options.connector, options.relations)

    return run_assembly(options)
