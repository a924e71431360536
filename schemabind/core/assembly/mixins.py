import logging
from typing import Any, Callable, List, Mapping, Sequence

from schemabind.core.models import RESERVED_MIXIN_HOOKS, ModelBuilder
from schemabind.core.schemas import SchemaDescriptor

logger = logging.getLogger(__name__)


def register_mixins(builder: ModelBuilder, mixins: Mapping[str, Callable[..., Any]]) -> None:
    for mixin_name, fn in mixins.items():
        builder.mixins.define(mixin_name, fn)
        logger.debug(f"Registered mixin {mixin_name}")


def rewire_schema(descriptor: SchemaDescriptor) -> SchemaDescriptor:
    """
    Move a descriptor's top-level mixins and indexes into its options.

    The descriptor passed in is left untouched; a rewired copy is returned.
    """
    options = dict(descriptor.options)
    mixins = None
    if descriptor.mixins is not None:
        mixins = {
            name: value
            for name, value in descriptor.mixins.items()
            if name not in RESERVED_MIXIN_HOOKS
        }
        options["mixins"] = mixins
    if descriptor.indexes is not None:
        options["indexes"] = dict(descriptor.indexes)
    return descriptor.model_copy(update={"options": options, "mixins": mixins})


def apply_mixins(
    builder: ModelBuilder,
    mixins: Mapping[str, Callable[..., Any]],
    schemas: Sequence[SchemaDescriptor],
) -> List[SchemaDescriptor]:
    """
    Register `mixins` with the builder and rewire every descriptor for it.

    With no mixins the descriptors come back as they are.
    """
    if not mixins:
        return list(schemas)
    register_mixins(builder, mixins)
    return [rewire_schema(descriptor) for descriptor in schemas]
