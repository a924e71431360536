import logging
from typing import Dict, Sequence

from schemabind.core.exceptions import SchemaError
from schemabind.core.models import BUILTIN_BASES, ModelBuilder
from schemabind.core.schemas import SchemaDescriptor

logger = logging.getLogger(__name__)


def check_base_order(schemas: Sequence[SchemaDescriptor]) -> None:
    """
    Fail unless every `options.base` names a descriptor that comes earlier.

    Raises:
        SchemaError: A base is undefined, or is declared after the model
            extending it.
    """
    names = {descriptor.name for descriptor in schemas}
    seen = set()
    for descriptor in schemas:
        base = descriptor.base
        if base and base not in BUILTIN_BASES and base not in seen:
            if base not in names:
                raise SchemaError(f"Model '{descriptor.name}': undefined base '{base}'")
            raise SchemaError(
                f"Model '{descriptor.name}' extends '{base}', which is declared after it; "
                f"order the schemas so '{base}' comes first"
            )
        seen.add(descriptor.name)


def assemble_models(builder: ModelBuilder, schemas: Sequence[SchemaDescriptor]) -> Dict[str, type]:
    check_base_order(schemas)
    models = builder.build_models(schemas)
    logger.info(f"Assembled {len(models)} models")
    return models
