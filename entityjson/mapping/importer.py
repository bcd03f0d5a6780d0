"""
JSON Importer for entityjson.

Turns a JSON array of entity records into entities in a store:

1. Parse the document (MalformedInput on bad JSON or shape)
2. Identity pass: walk every record, top-level and nested, and resolve
   each one to an entity. Records with an id reuse the entity already
   known under (entity, id) or create it; records without an id always
   create a new entity.
3. Wiring pass: set attributes and relationships on the resolved
   entities, in document order.

Because every record is resolved before anything is wired, a record can
refer to one that appears later in the document.

The whole call runs in a single unit of work of the store, so a failure
anywhere leaves the store as it was before the call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from entityjson.core.config import MapperConfig
from entityjson.core.errors import (
    InvalidRelationshipTarget,
    InvalidScalarFormat,
    MalformedInput,
    UnknownAttribute,
    UnknownEntityType,
    UnknownRelationship,
    UnresolvedReference,
)
from entityjson.core.models import Entity
from entityjson.core.scalars import ScalarFormatError
from entityjson.core.schema import EntityDescriptor, RelationshipDescriptor, SchemaRegistry
from entityjson.mapping.records import EntityRecord, check_document, parse_document, parse_record
from entityjson.storage.engine import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """
    Result of a successful import.

    Attributes:
        roots: Entities of the top-level records, in document order
        inserted: Number of entities created
        updated: Number of existing entities matched by identifier
    """

    roots: list[Entity] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0

    @property
    def success(self) -> bool:
        return True

    @property
    def total(self) -> int:
        return self.inserted + self.updated


@dataclass
class _Reference:
    """A bare identifier under a relationship."""

    entity_name: str
    identifier: str
    path: str


@dataclass
class _Node:
    """A parsed record together with the entity it resolved to."""

    record: EntityRecord
    descriptor: EntityDescriptor
    entity: Entity
    path: str
    links: dict[str, Any] = field(default_factory=dict)


_Link = Union[_Node, _Reference, None]


class JSONImporter:
    """
    Imports entity records into a store.

    Usage:
        importer = JSONImporter(registry, store)
        result = importer.import_records(b'[{"entity": "Company", "attributes": {"title": "ACME"}}]')
        result.roots[0].attributes["title"]  # "ACME"
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

    def import_records(self, data: bytes | str) -> ImportResult:
        """
        Import a JSON document.

        Args:
            data: JSON array of entity records, as bytes or text

        Returns:
            ImportResult describing what was created and updated

        Raises:
            MalformedInput, UnknownEntityType, UnknownAttribute,
            UnknownRelationship, InvalidScalarFormat,
            InvalidRelationshipTarget, UnresolvedReference
        """
        return self.import_objects(parse_document(data))

    def import_objects(self, document: list[Any]) -> ImportResult:
        """Import an already decoded document."""
        check_document(document)
        if not document:
            return ImportResult()

        try:
            with self.store.unit_of_work():
                session = _ImportSession(self.registry, self.store, self.config)
                result = session.run(document)
        except RecursionError as e:
            raise MalformedInput("Document is nested too deeply") from e

        logger.info(
            "Imported %d records: %d entities inserted, %d updated",
            len(document),
            result.inserted,
            result.updated,
        )
        return result


class _ImportSession:
    """State of one import call: the identity index and the parsed tree."""

    def __init__(self, registry: SchemaRegistry, store: EntityStore, config: MapperConfig):
        self.registry = registry
        self.store = store
        self.config = config
        self.index: dict[tuple[str, str], Entity] = {}
        self.inserted: dict[tuple[str, str], Entity] = {}
        self.updated: dict[tuple[str, str], Entity] = {}

    def run(self, document: list[Any]) -> ImportResult:
        roots = [self._resolve(obj, f"/{i}", None) for i, obj in enumerate(document)]
        for node in roots:
            self._apply(node)
        return ImportResult(
            roots=[node.entity for node in roots],
            inserted=len(self.inserted),
            updated=len(self.updated),
        )

    # -------------------------------------------------------------------------
    # Identity pass
    # -------------------------------------------------------------------------

    def _resolve(self, obj: Any, path: str, via: Optional[RelationshipDescriptor]) -> _Node:
        record = parse_record(obj, path)
        descriptor = self._describe(record, path, via)

        for name in record.attributes:
            if not descriptor.has_attribute(name):
                raise UnknownAttribute(descriptor.name, name, path=path)

        node = _Node(
            record=record,
            descriptor=descriptor,
            entity=self._identify(descriptor, record.id, path),
            path=path,
        )

        for name, value in record.relationships.items():
            if not descriptor.has_relationship(name):
                raise UnknownRelationship(descriptor.name, name, path=path)
            relationship = descriptor.relationship(name)
            node.links[name] = self._resolve_link(relationship, value, f"{path}/relationships/{name}")
        return node

    def _describe(
        self,
        record: EntityRecord,
        path: str,
        via: Optional[RelationshipDescriptor],
    ) -> EntityDescriptor:
        if record.entity is None:
            if via is None or not self.config.allow_untyped_nested:
                raise MalformedInput("Entity record is missing 'entity'", path=path)
            return self.registry.describe(via.target)

        try:
            descriptor = self.registry.describe(record.entity)
        except UnknownEntityType:
            raise UnknownEntityType(record.entity, path=path) from None

        if via is not None and descriptor.name != via.target:
            raise InvalidRelationshipTarget(
                f"Relationship {via.name} expects {via.target}, got {descriptor.name}",
                entity_name=descriptor.name,
                key=via.name,
                path=path,
            )
        return descriptor

    def _identify(self, descriptor: EntityDescriptor, identifier: Optional[str], path: str) -> Entity:
        if identifier is None:
            entity = self.store.create_entity(descriptor.name)
            self.inserted[entity.key] = entity
            logger.debug("Inserted %r for %s", entity, path)
            return entity

        key = (descriptor.name, identifier)
        entity = self.index.get(key)
        if entity is not None:
            return entity

        entity = self.store.lookup_by_identifier(descriptor.name, identifier)
        if entity is None:
            entity = self.store.create_entity(descriptor.name, identifier)
            self.inserted[key] = entity
            logger.debug("Inserted %r for %s", entity, path)
        else:
            self.updated[key] = entity
            logger.debug("Updating %r for %s", entity, path)
        self.index[key] = entity
        return entity

    def _resolve_link(self, relationship: RelationshipDescriptor, value: Any, path: str) -> Any:
        if relationship.to_many:
            if not isinstance(value, list):
                raise InvalidRelationshipTarget(
                    f"To-many relationship {relationship.name} takes an array",
                    key=relationship.name,
                    path=path,
                )
            return [self._resolve_item(relationship, item, f"{path}/{i}") for i, item in enumerate(value)]

        if value is None:
            return None
        if isinstance(value, list):
            raise InvalidRelationshipTarget(
                f"To-one relationship {relationship.name} takes a single record",
                key=relationship.name,
                path=path,
            )
        return self._resolve_item(relationship, value, path)

    def _resolve_item(self, relationship: RelationshipDescriptor, value: Any, path: str) -> _Link:
        if isinstance(value, str):
            return _Reference(relationship.target, value, path)
        if isinstance(value, dict):
            return self._resolve(value, path, relationship)
        raise InvalidRelationshipTarget(
            f"Relationship {relationship.name} takes records or identifiers, "
            f"got {type(value).__name__}",
            key=relationship.name,
            path=path,
        )

    # -------------------------------------------------------------------------
    # Wiring pass
    # -------------------------------------------------------------------------

    def _apply(self, node: _Node) -> None:
        entity = node.entity
        for name, value in node.record.attributes.items():
            self.store.set_attribute(entity, name, self._decode(node, name, value))

        for name, link in node.links.items():
            relationship = node.descriptor.relationship(name)
            if relationship.to_many:
                targets = [self._target(item) for item in link]
                self.store.set_relationship(entity, name, targets)
                for item in link:
                    if isinstance(item, _Node):
                        self._apply(item)
            else:
                self.store.set_relationship(entity, name, self._target(link))
                if isinstance(link, _Node):
                    self._apply(link)

    def _decode(self, node: _Node, name: str, value: Any) -> Any:
        attribute = node.descriptor.attribute(name)
        if value is None:
            if not attribute.optional:
                raise InvalidScalarFormat(
                    f"Attribute {node.descriptor.name}.{name} is not optional",
                    entity_name=node.descriptor.name,
                    key=name,
                    path=node.path,
                )
            return None
        try:
            return attribute.codec.decode(value)
        except ScalarFormatError as e:
            raise InvalidScalarFormat(
                f"Invalid {attribute.kind.value} for {node.descriptor.name}.{name}: {e}",
                entity_name=node.descriptor.name,
                key=name,
                path=node.path,
            ) from e

    def _target(self, link: _Link) -> Optional[Entity]:
        if link is None:
            return None
        if isinstance(link, _Node):
            return link.entity

        key = (link.entity_name, link.identifier)
        entity = self.index.get(key)
        if entity is None:
            entity = self.store.lookup_by_identifier(*key)
        if entity is None:
            raise UnresolvedReference(
                f"No {link.entity_name} with id {link.identifier!r}",
                entity_name=link.entity_name,
                path=link.path,
            )
        return entity
