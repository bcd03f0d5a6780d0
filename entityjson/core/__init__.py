"""
Core definitions for entityjson.

This module defines the schema registry, scalar codecs, the store-side
Entity model, configuration and the error taxonomy.
"""

from entityjson.core.config import MapperConfig
from entityjson.core.models import Entity, generate_id
from entityjson.core.scalars import ScalarCodec, ScalarKind
from entityjson.core.schema import (
    AttributeDescriptor,
    EntityDescriptor,
    RelationshipDescriptor,
    SchemaRegistry,
)

__all__ = [
    "MapperConfig",
    "Entity",
    "generate_id",
    "ScalarCodec",
    "ScalarKind",
    "AttributeDescriptor",
    "EntityDescriptor",
    "RelationshipDescriptor",
    "SchemaRegistry",
]
