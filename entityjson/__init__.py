"""
entityjson - JSON import and export for managed object graphs.

Maps between a graph of schema-described entities (attributes plus
relationships with inverses) and a JSON array of entity records:

- JSONImporter: JSON document -> entities in a store, with forward
  references, insert-or-update by identifier, and atomic rollback
- JSONExporter: entities -> JSON document in the same format
- ObjectContext: registry, store, importer and exporter in one place
"""
from entityjson.core.config import MapperConfig
from entityjson.core.errors import (
    EntityJSONError,
    InvalidRelationshipTarget,
    InvalidScalarFormat,
    MalformedInput,
    SchemaError,
    UnknownAttribute,
    UnknownEntityType,
    UnknownRelationship,
    UnresolvedReference,
)
from entityjson.core.models import Entity, generate_id
from entityjson.core.scalars import ScalarKind
from entityjson.core.schema import (
    AttributeDescriptor,
    EntityDescriptor,
    RelationshipDescriptor,
    SchemaRegistry,
)
from entityjson.storage.engine import EntityStore, InMemoryEntityStore
from entityjson.mapping.records import EntityRecord
from entityjson.mapping.importer import ImportResult, JSONImporter
from entityjson.mapping.exporter import JSONExporter
from entityjson.interface.context import ObjectContext

__version__ = "0.1.0"

__all__ = [
    # Schema
    "SchemaRegistry",
    "EntityDescriptor",
    "AttributeDescriptor",
    "RelationshipDescriptor",
    "ScalarKind",
    # Store
    "Entity",
    "EntityStore",
    "InMemoryEntityStore",
    "generate_id",
    # Mapping
    "EntityRecord",
    "JSONImporter",
    "ImportResult",
    "JSONExporter",
    "MapperConfig",
    # Client
    "ObjectContext",
    # Errors
    "EntityJSONError",
    "MalformedInput",
    "UnknownEntityType",
    "UnknownAttribute",
    "UnknownRelationship",
    "InvalidScalarFormat",
    "InvalidRelationshipTarget",
    "UnresolvedReference",
    "SchemaError",
]
