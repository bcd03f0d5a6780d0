"""
Storage layer for entityjson.

Provides the entity store interface the mapper calls into, with the
default in-memory implementation for development and testing.
"""

from entityjson.storage.engine import EntityStore, InMemoryEntityStore

__all__ = [
    "EntityStore",
    "InMemoryEntityStore",
]
