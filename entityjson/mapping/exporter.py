"""
JSON Exporter for entityjson.

Walks entities in a store and emits records in the importer's wire
format. Only the owning side of each relationship pair is written; the
store rebuilds the inverse side when the document is imported again.

Bulk export writes every entity in full exactly once. Entities owned by
another entity appear nested under their owner; any later encounter of
an entity that has already been written becomes a reference record
({"entity": ..., "id": ...}).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from entityjson.core.config import MapperConfig
from entityjson.core.models import Entity
from entityjson.core.schema import SchemaRegistry
from entityjson.mapping.records import EntityRecord
from entityjson.storage.engine import EntityStore

logger = logging.getLogger(__name__)


class JSONExporter:
    """
    Serializes entities to entity records.

    Usage:
        exporter = JSONExporter(registry, store)
        record = exporter.export_entity(employee)
        data = exporter.export_all()  # bytes, ready for JSONImporter
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        store: EntityStore,
        config: Optional[MapperConfig] = None,
    ):
        self.registry = registry
        self.store = store
        self.config = config or MapperConfig()

    def export_entity(self, entity: Entity) -> dict[str, Any]:
        """
        Serialize one entity and its owned subgraph.

        Entities already being serialized further up the same branch are
        written as references, which breaks cycles.

        Raises:
            UnknownEntityType: If the entity's type is not in the registry
        """
        referenced: set[tuple[str, str]] = set()
        record = self._record(entity, set(), None, referenced)
        self._strip_identifiers(record, referenced)
        return record

    def export_objects(self, entity_names: Optional[list[str]] = None) -> list[dict[str, Any]]:
        """
        Serialize entities as a list of records.

        Args:
            entity_names: Restrict to these types (all entities if None)

        Returns:
            Records for root entities first (those no owning relationship
            points at), then for any entity not yet written.
        """
        if entity_names is None:
            entities = self.store.fetch_all()
        else:
            entities = [e for name in entity_names for e in self.store.fetch_all(name)]

        owned = self._owned_keys(entities)
        emitted: set[tuple[str, str]] = set()
        referenced: set[tuple[str, str]] = set()
        records = []

        for entity in entities:
            if entity.key not in owned:
                records.append(self._record(entity, set(), emitted, referenced))
        for entity in entities:
            if entity.key not in emitted:
                records.append(self._record(entity, set(), emitted, referenced))

        for record in records:
            self._strip_identifiers(record, referenced)

        logger.info("Exported %d entities as %d top-level records", len(emitted), len(records))
        return records

    def export_all(self, entity_names: Optional[list[str]] = None) -> bytes:
        """Serialize entities as a JSON document (UTF-8 bytes)."""
        records = self.export_objects(entity_names)
        text = json.dumps(
            records,
            indent=self.config.indent,
            ensure_ascii=self.config.ensure_ascii,
            allow_nan=False,
        )
        return text.encode("utf-8")

    def _owned_keys(self, entities: list[Entity]) -> set[tuple[str, str]]:
        owned: set[tuple[str, str]] = set()
        for entity in entities:
            descriptor = self.registry.describe(entity.entity_name)
            for relationship in descriptor.owning_relationships():
                for target_id in entity.relationships.get(relationship.name, []):
                    owned.add((relationship.target, target_id))
        return owned

    def _record(
        self,
        entity: Entity,
        ancestors: set[tuple[str, str]],
        emitted: Optional[set[tuple[str, str]]],
        referenced: set[tuple[str, str]],
    ) -> dict[str, Any]:
        descriptor = self.registry.describe(entity.entity_name)

        key = entity.key
        if key in ancestors or (emitted is not None and key in emitted):
            referenced.add(key)
            return EntityRecord.reference(entity.entity_name, entity.id)
        if emitted is not None:
            emitted.add(key)

        record: dict[str, Any] = {"entity": descriptor.name, "id": entity.id}

        record["attributes"] = {
            attribute.name: attribute.codec.encode(
                self.store.get_attribute(entity, attribute.name),
                self.config.date_timespec,
            )
            for attribute in descriptor.attributes
        }

        ancestors.add(key)
        relationships: dict[str, Any] = {}
        for relationship in descriptor.owning_relationships():
            value = self.store.get_relationship(entity, relationship.name)
            if relationship.to_many:
                relationships[relationship.name] = [
                    self._record(target, ancestors, emitted, referenced) for target in value
                ]
            elif value is None:
                relationships[relationship.name] = None
            else:
                relationships[relationship.name] = self._record(value, ancestors, emitted, referenced)
        ancestors.discard(key)

        record["relationships"] = relationships
        return record

    def _strip_identifiers(self, record: dict[str, Any], referenced: set[tuple[str, str]]) -> None:
        """Drop ids when identifiers are off, except where a reference needs them."""
        if self.config.include_identifiers:
            return
        if "attributes" in record and (record["entity"], record["id"]) not in referenced:
            del record["id"]
        for value in record.get("relationships", {}).values():
            for nested in value if isinstance(value, list) else [value]:
                if nested is not None:
                    self._strip_identifiers(nested, referenced)
