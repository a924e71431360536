from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =========================
# Enums
# =========================
class RelationType(str, Enum):
    BELONGS_TO = "belongsTo"
    HAS_ONE = "hasOne"
    HAS_MANY = "hasMany"
    HAS_AND_BELONGS_TO_MANY = "hasAndBelongsToMany"


class SyncStatus(str, Enum):
    UP_TO_DATE = "datasource is up to date"
    UPDATED = "datasource updated"


# =========================
# SCHEMA DESCRIPTOR
# =========================
class PropertyDefinition(BaseModel):
    """
    One property of a model.

    A bare type string ("string") or list type (["string"]) is accepted
    wherever a full definition is, see SchemaDescriptor.properties.
    """

    type: Union[str, List[Any], Dict[str, Any]] = "any"
    id: Union[bool, int] = False
    required: bool = False
    default: Any = None
    index: Union[bool, Dict[str, Any]] = False
    length: Optional[int] = None
    generated: Optional[bool] = None

    model_config = ConfigDict(extra="allow")


class RelationDefinition(BaseModel):
    type: RelationType
    model: str
    foreign_key: Optional[str] = Field(default=None, alias="foreignKey")
    primary_key: Optional[str] = Field(default=None, alias="primaryKey")
    through: Optional[str] = None
    key_through: Optional[str] = Field(default=None, alias="keyThrough")

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class SchemaDescriptor(BaseModel):
    name: str = Field(min_length=1)
    properties: Dict[str, PropertyDefinition] = Field(default_factory=dict)
    relations: Optional[Dict[str, RelationDefinition]] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    mixins: Optional[Dict[str, Any]] = None
    indexes: Optional[Dict[str, Any]] = None

    # Schema documents carry plenty of keys (acls, plural, ...) nobody here reads
    model_config = ConfigDict(extra="allow")

    @field_validator("properties", mode="before")
    @classmethod
    def normalize_properties(cls, value):
        if not isinstance(value, dict):
            return value
        normalized = {}
        for key, definition in value.items():
            if isinstance(definition, (str, list)):
                definition = {"type": definition}
            normalized[key] = definition
        return normalized

    @property
    def base(self) -> Optional[str]:
        return self.options.get("base")


# =========================
# CONNECTOR
# =========================
class ConnectorProfile(BaseModel):
    name: str = "db"
    connector: str = "memory"
    url: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = Field(default=None, alias="username")
    password: Optional[str] = None
    database: Optional[str] = None
    engine_options: Dict[str, Any] = Field(default_factory=dict)

    # Orchestration flags, never handed to the engine
    sync: bool = False
    discovery: bool = False

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def driver_settings(self) -> Dict[str, Any]:
        """Profile as the DataSource sees it: everything except the mode flags."""
        return self.model_dump(exclude={"sync", "discovery"}, exclude_none=True)


# =========================
# DISCOVERY
# =========================
class RelationHint(BaseModel):
    name: str
    relations: Optional[Dict[str, RelationDefinition]] = None


class TableDefinition(BaseModel):
    name: str
    type: str = "table"
    owner: Optional[str] = None


# =========================
# ENTRY OPTIONS
# =========================
class LoadOptions(BaseModel):
    connector: ConnectorProfile
    schemas: Optional[List[SchemaDescriptor]] = None
    models_path: Optional[Path] = Field(default=None, alias="modelsPath")
    relations: Optional[List[RelationHint]] = None
    mixins: Optional[Dict[str, Callable[..., Any]]] = None
    sync: bool = False
    discovery: bool = False
    remote_hooks: Optional[Any] = Field(default=None, alias="remoteHooks")

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def check_modes(self):
        if self.sync_requested and self.discovery_requested:
            raise ValueError("sync and discovery are mutually exclusive; request one")
        if not self.discovery_requested and self.schemas is None and self.models_path is None:
            raise ValueError("models_path is required when schemas are not given")
        if self.relations:
            names = [hint.name for hint in self.relations]
            duplicates = sorted({name for name in names if names.count(name) > 1})
            if duplicates:
                raise ValueError(f"Duplicate relation hints for: {', '.join(duplicates)}")
        return self

    @property
    def sync_requested(self) -> bool:
        return self.sync or self.connector.sync

    @property
    def discovery_requested(self) -> bool:
        return self.discovery or self.connector.discovery


class SyncResult(BaseModel):
    status: SyncStatus
    models: Dict[str, Any]
