"""
ObjectContext: one object that binds a schema, a store and the mapper.

Usage:
    ```python
    from entityjson import ObjectContext, SchemaRegistry

    context = ObjectContext(SchemaRegistry.load("model.json"))

    # Import a document
    context.import_json(Path("data.json").read_bytes())
    companies = context.fetch("Company")

    # Build entities directly
    employee = context.insert("Employee", name="Bob", since=datetime.now(timezone.utc))
    context.json_object(employee)
    # {"entity": "Employee", "id": "...", "attributes": {...}, "relationships": {...}}

    # Export everything
    data = context.json_data()
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from entityjson.core.config import MapperConfig
from entityjson.core.models import Entity
from entityjson.core.schema import SchemaRegistry
from entityjson.mapping.exporter import JSONExporter
from entityjson.mapping.importer import ImportResult, JSONImporter
from entityjson.storage.engine import EntityStore, InMemoryEntityStore


class ObjectContext:
    """
    A workspace of entities with JSON import and export.

    Thread Safety:
        Not safe for concurrent imports; serialize calls that target
        the same context.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        store: Optional[EntityStore] = None,
        config: Optional[MapperConfig] = None,
    ):
        """
        Initialize the context.

        Args:
            registry: Schema registry for all entities of the context
            store: Entity store (defaults to a new InMemoryEntityStore)
            config: Mapper options
        """
        self.registry = registry
        self.store = store if store is not None else InMemoryEntityStore(registry)
        self.config = config or MapperConfig()
        self._importer = JSONImporter(registry, self.store, self.config)
        self._exporter = JSONExporter(registry, self.store, self.config)

    @classmethod
    def from_model(cls, path: str | Path, config: Optional[MapperConfig] = None) -> ObjectContext:
        """Create a context with an in-memory store from a model definition file."""
        return cls(SchemaRegistry.load(path), config=config)

    # =========================================================================
    # Entities
    # =========================================================================

    def insert(self, entity_name: str, identifier: Optional[str] = None, **values: Any) -> Entity:
        """
        Insert a new entity.

        Args:
            entity_name: Entity type name
            identifier: Identifier (generated if None)
            **values: Attribute or relationship values to set

        Returns:
            The new entity
        """
        with self.store.unit_of_work():
            entity = self.store.create_entity(entity_name, identifier)
            for name, value in values.items():
                self.set(entity, name, value)
        return entity

    def fetch(self, entity_name: str) -> list[Entity]:
        """All entities of a type, in insertion order."""
        return self.store.fetch_all(entity_name)

    def count(self, entity_name: Optional[str] = None) -> int:
        return self.store.count(entity_name)

    def lookup(self, entity_name: str, identifier: str) -> Optional[Entity]:
        return self.store.lookup_by_identifier(entity_name, identifier)

    def get(self, entity: Entity, name: str) -> Any:
        """Read an attribute or relationship by name."""
        descriptor = self.registry.describe(entity.entity_name)
        if descriptor.has_relationship(name):
            return self.store.get_relationship(entity, name)
        return self.store.get_attribute(entity, name)

    def set(self, entity: Entity, name: str, value: Any) -> None:
        """Write an attribute or relationship by name."""
        descriptor = self.registry.describe(entity.entity_name)
        if descriptor.has_relationship(name):
            self.store.set_relationship(entity, name, value)
        else:
            self.store.set_attribute(entity, name, value)

    def add(self, entity: Entity, name: str, other: Entity) -> None:
        """Append to a to-many relationship."""
        self.store.append_to_relationship(entity, name, other)

    def unit_of_work(self):
        """Group changes that succeed or fail together."""
        return self.store.unit_of_work()

    # =========================================================================
    # JSON
    # =========================================================================

    def import_json(self, data: bytes | str) -> ImportResult:
        """Import a JSON array of entity records."""
        return self._importer.import_records(data)

    def import_file(self, path: str | Path) -> ImportResult:
        """Import a JSON document from a file."""
        return self._importer.import_records(Path(path).read_bytes())

    def json_object(self, entity: Entity) -> dict[str, Any]:
        """Record for one entity and its owned subgraph."""
        return self._exporter.export_entity(entity)

    def json_objects(self, entity_names: Optional[list[str]] = None) -> list[dict[str, Any]]:
        return self._exporter.export_objects(entity_names)

    def json_data(self, entity_names: Optional[list[str]] = None) -> bytes:
        """JSON document of all entities (or of the given types)."""
        return self._exporter.export_all(entity_names)
