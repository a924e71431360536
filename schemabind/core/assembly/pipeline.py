import logging
from typing import Dict

from schemabind.core.models import ModelBuilder
from schemabind.core.schemas import LoadOptions
from schemabind.core.assembly import loader, mixins, assembler, binder, wiring, customization

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PIPELINE MODULE - Orchestration
# Purpose: run the assembly stages in order: load, mixins, assemble, bind,
# relations, customizations. Synchronous end to end; errors propagate.
# -----------------------------------------------------------------------------


def run_assembly(options: LoadOptions) -> Dict[str, type]:
    """
    Turn schema descriptors into connected, relation-aware models.

    Args:
        options: Validated entry options.

    Returns:
        Mapping of model name to model class, all attached to one new
        DataSource.
    """
    schemas = options.schemas
    if schemas is None:
        schemas = loader.load_schemas(options.models_path)

    builder = ModelBuilder()
    schemas = mixins.apply_mixins(builder, options.mixins or {}, schemas)

    models = assembler.assemble_models(builder, schemas)
    datasource = binder.bind_models(options.connector, models)
    wiring.wire_relations(datasource, models, schemas)

    if options.models_path is not None:
        customization.load_customizations(models, options.models_path, options.remote_hooks)

    logger.info(f"Models ready on data source {options.connector.name}: {', '.join(models)}")
    return models
