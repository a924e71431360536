from typing import Mapping, Optional, Sequence

from schemabind.core.database import DataSource
from schemabind.core.schemas import SchemaDescriptor


def find_schema(schemas: Sequence[SchemaDescriptor], name: str) -> Optional[SchemaDescriptor]:
    return next((descriptor for descriptor in schemas if descriptor.name == name), None)


def wire_relations(
    datasource: DataSource, models: Mapping[str, type], schemas: Sequence[SchemaDescriptor]
) -> None:
    # Relations of every model, once all of them are attached
    for model_name, model in models.items():
        descriptor = find_schema(schemas, model_name)
        relations = (descriptor.relations if descriptor else None) or {}
        datasource.define_relations(model, relations, models)
