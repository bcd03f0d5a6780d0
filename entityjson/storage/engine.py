"""
Entity store for entityjson.

This module provides the store abstraction the mapper calls into, and an
in-memory implementation of it:

- Identity: entities are looked up by (entity name, identifier)
- Inverses: writing one side of a relationship pair updates the other
- Units of work: changes made inside one are undone if it fails

Design Philosophy:
    The store knows how to hold entities and keep relationship pairs
    consistent, but knows nothing about JSON. The importer and exporter
    only ever talk to the EntityStore interface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from threading import RLock
from typing import Any, Iterator, Optional, Union

from entityjson.core.errors import InvalidRelationshipTarget, InvalidScalarFormat
from entityjson.core.models import Entity
from entityjson.core.scalars import ScalarFormatError
from entityjson.core.schema import RelationshipDescriptor, SchemaRegistry

logger = logging.getLogger(__name__)


RelationshipValue = Union[Optional[Entity], list[Entity]]


class EntityStore(ABC):
    """
    Abstract base class for entity stores.

    Implementations:
        - InMemoryEntityStore: Development and testing
    """

    def __init__(self, registry: SchemaRegistry):
        self.registry = registry

    @abstractmethod
    def lookup_by_identifier(self, entity_name: str, identifier: str) -> Optional[Entity]:
        """
        Find an entity by type and identifier.

        Args:
            entity_name: Entity type name
            identifier: Entity identifier

        Returns:
            Entity if found, None otherwise
        """
        pass

    @abstractmethod
    def create_entity(self, entity_name: str, identifier: Optional[str] = None) -> Entity:
        """
        Insert a new entity with default attribute values.

        Args:
            entity_name: Entity type name
            identifier: Identifier to use (a ULID is generated if None)

        Returns:
            The new entity
        """
        pass

    @abstractmethod
    def get_attribute(self, entity: Entity, name: str) -> Any:
        """Get an attribute value."""
        pass

    @abstractmethod
    def set_attribute(self, entity: Entity, name: str, value: Any) -> None:
        """Set an attribute value."""
        pass

    @abstractmethod
    def get_relationship(self, entity: Entity, name: str) -> RelationshipValue:
        """
        Get related entities.

        Returns:
            The related entity or None for to-one relationships, an
            ordered list for to-many relationships
        """
        pass

    @abstractmethod
    def set_relationship(self, entity: Entity, name: str, value: RelationshipValue) -> None:
        """Replace a relationship's content, keeping inverses consistent."""
        pass

    @abstractmethod
    def append_to_relationship(self, entity: Entity, name: str, other: Entity) -> None:
        """Append to a to-many relationship, keeping inverses consistent."""
        pass

    @abstractmethod
    def fetch_all(self, entity_name: Optional[str] = None) -> list[Entity]:
        """Get all entities of a type (or all entities) in insertion order."""
        pass

    @abstractmethod
    def unit_of_work(self):
        """Context manager grouping changes that succeed or fail together."""
        pass

    def count(self, entity_name: Optional[str] = None) -> int:
        """Number of entities of a type (or in total)."""
        return len(self.fetch_all(entity_name))


class InMemoryEntityStore(EntityStore):
    """
    In-memory entity store for development and testing.

    Entities live in an insertion-ordered arena keyed by
    (entity name, identifier). Relationship edges are stored as
    identifier lists on each side.

    Thread Safety:
        Internal maps are guarded by a reentrant lock. Running several
        imports against one store at the same time is still not
        supported; callers must serialize them.
    """

    def __init__(self, registry: SchemaRegistry):
        """
        Initialize an empty store.

        Args:
            registry: Schema registry describing the storable types
        """
        super().__init__(registry)
        self._lock = RLock()

        # (entity_name, id) -> entity, in insertion order
        self._entities: dict[tuple[str, str], Entity] = {}

        # entity_name -> id -> entity
        self._type_index: dict[str, dict[str, Entity]] = {}

        # Unit of work journal
        self._depth = 0
        self._created: dict[tuple[str, str], None] = {}
        self._pre_images: dict[tuple[str, str], Entity] = {}

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def lookup_by_identifier(self, entity_name: str, identifier: str) -> Optional[Entity]:
        with self._lock:
            return self._type_index.get(entity_name, {}).get(identifier)

    def create_entity(self, entity_name: str, identifier: Optional[str] = None) -> Entity:
        descriptor = self.registry.describe(entity_name)
        with self._lock:
            entity = Entity(entity_name=descriptor.name)
            if identifier is not None:
                entity.id = identifier
            if entity.key in self._entities:
                raise ValueError(f"Entity already exists: {entity_name}:{entity.id}")

            for attribute in descriptor.attributes:
                entity.attributes[attribute.name] = attribute.default_value()
            for relationship in descriptor.relationships:
                entity.relationships[relationship.name] = []

            key = entity.key
            if self._depth:
                self._created[key] = None
            self._entities[key] = entity
            self._type_index.setdefault(entity.entity_name, {})[entity.id] = entity
            return entity

    def fetch_all(self, entity_name: Optional[str] = None) -> list[Entity]:
        with self._lock:
            if entity_name is None:
                return list(self._entities.values())
            self.registry.describe(entity_name)
            return list(self._type_index.get(entity_name, {}).values())

    def count(self, entity_name: Optional[str] = None) -> int:
        with self._lock:
            if entity_name is None:
                return len(self._entities)
            return len(self._type_index.get(entity_name, {}))

    def __contains__(self, entity: object) -> bool:
        return isinstance(entity, Entity) and self._entities.get(entity.key) is entity

    # -------------------------------------------------------------------------
    # Attributes
    # -------------------------------------------------------------------------

    def get_attribute(self, entity: Entity, name: str) -> Any:
        self.registry.describe(entity.entity_name).attribute(name)
        return entity.attributes.get(name)

    def set_attribute(self, entity: Entity, name: str, value: Any) -> None:
        attribute = self.registry.describe(entity.entity_name).attribute(name)
        if value is None:
            if not attribute.optional:
                raise InvalidScalarFormat(
                    f"Attribute {entity.entity_name}.{name} is not optional",
                    entity_name=entity.entity_name,
                    key=name,
                )
        else:
            try:
                value = attribute.codec.validate(value)
            except ScalarFormatError as e:
                raise InvalidScalarFormat(
                    f"Invalid {attribute.kind.value} for {entity.entity_name}.{name}: {e}",
                    entity_name=entity.entity_name,
                    key=name,
                ) from e

        with self._lock:
            self._touch(entity)
            entity.attributes[name] = value

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------

    def get_relationship(self, entity: Entity, name: str) -> RelationshipValue:
        relationship = self.registry.describe(entity.entity_name).relationship(name)
        with self._lock:
            related = self._resolve(relationship, entity.relationships.get(name, []))
        if relationship.to_many:
            return related
        return related[0] if related else None

    def set_relationship(self, entity: Entity, name: str, value: RelationshipValue) -> None:
        relationship = self.registry.describe(entity.entity_name).relationship(name)
        if relationship.to_many:
            if not isinstance(value, (list, tuple)):
                raise InvalidRelationshipTarget(
                    f"To-many relationship {entity.entity_name}.{name} takes a list",
                    entity_name=entity.entity_name,
                    key=name,
                )
            targets = list(value)
        else:
            if isinstance(value, (list, tuple)):
                raise InvalidRelationshipTarget(
                    f"To-one relationship {entity.entity_name}.{name} takes a single entity",
                    entity_name=entity.entity_name,
                    key=name,
                )
            targets = [] if value is None else [value]

        for target in targets:
            self._check_target(entity, relationship, target)

        with self._lock:
            self._replace(entity, relationship, targets)

    def append_to_relationship(self, entity: Entity, name: str, other: Entity) -> None:
        relationship = self.registry.describe(entity.entity_name).relationship(name)
        if not relationship.to_many:
            raise InvalidRelationshipTarget(
                f"Cannot append to to-one relationship {entity.entity_name}.{name}",
                entity_name=entity.entity_name,
                key=name,
            )
        self._check_target(entity, relationship, other)
        with self._lock:
            current = self._resolve(relationship, entity.relationships.get(name, []))
            if other not in current:
                self._replace(entity, relationship, current + [other])

    def _check_target(self, entity: Entity, relationship: RelationshipDescriptor, target: Any) -> None:
        if not isinstance(target, Entity) or target.entity_name != relationship.target:
            raise InvalidRelationshipTarget(
                f"{entity.entity_name}.{relationship.name} expects {relationship.target}, "
                f"got {target!r}",
                entity_name=entity.entity_name,
                key=relationship.name,
            )
        if target not in self:
            raise InvalidRelationshipTarget(
                f"{target!r} does not belong to this store",
                entity_name=entity.entity_name,
                key=relationship.name,
            )

    def _resolve(self, relationship: RelationshipDescriptor, ids: list[str]) -> list[Entity]:
        index = self._type_index.get(relationship.target, {})
        return [index[i] for i in ids if i in index]

    def _replace(self, entity: Entity, relationship: RelationshipDescriptor, targets: list[Entity]) -> None:
        """Set one side of an edge set and mirror the change on the inverse side."""
        new_ids: list[str] = []
        for target in targets:
            if target.id not in new_ids:
                new_ids.append(target.id)
        old_ids = list(entity.relationships.get(relationship.name, []))

        inverse = self.registry.inverse_of(entity.entity_name, relationship)

        self._touch(entity)
        entity.relationships[relationship.name] = new_ids
        if inverse is None:
            return

        index = self._type_index.get(relationship.target, {})
        for target_id in old_ids:
            if target_id not in new_ids and target_id in index:
                self._unlink(index[target_id], inverse, entity.id)

        for target_id in new_ids:
            if target_id not in old_ids:
                self._attach_inverse(entity, relationship, index[target_id], inverse)

    def _attach_inverse(
        self,
        entity: Entity,
        relationship: RelationshipDescriptor,
        target: Entity,
        inverse: RelationshipDescriptor,
    ) -> None:
        current = target.relationships.get(inverse.name, [])
        if entity.id in current:
            return

        self._touch(target)
        if inverse.to_many:
            target.relationships[inverse.name] = current + [entity.id]
            return

        # A to-one inverse can hold one owner; detach the target from the old one
        owners = self._type_index.get(entity.entity_name, {})
        for previous_id in current:
            previous = owners.get(previous_id)
            if previous is not None and previous is not entity:
                self._unlink(previous, relationship, target.id)
        target.relationships[inverse.name] = [entity.id]

    def _unlink(self, entity: Entity, relationship: RelationshipDescriptor, target_id: str) -> None:
        current = entity.relationships.get(relationship.name, [])
        if target_id in current:
            self._touch(entity)
            entity.relationships[relationship.name] = [i for i in current if i != target_id]

    # -------------------------------------------------------------------------
    # Units of work
    # -------------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self) -> Iterator[InMemoryEntityStore]:
        """
        Group changes so that a failure undoes all of them.

        Nested units join the outermost one: only the outermost unit
        commits or rolls back.

        Usage:
            with store.unit_of_work():
                company = store.create_entity("Company")
                store.set_attribute(company, "title", "ACME")
        """
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                if self._depth == 1:
                    self._rollback()
                raise
            else:
                if self._depth == 1:
                    self._commit()
            finally:
                self._depth -= 1

    def _touch(self, entity: Entity) -> None:
        """Record an entity's pre-image before its first change in a unit of work."""
        if not self._depth:
            return
        key = entity.key
        if key in self._pre_images or key in self._created:
            return
        self._pre_images[key] = entity.snapshot()

    def _commit(self) -> None:
        self._created.clear()
        self._pre_images.clear()

    def _rollback(self) -> None:
        logger.warning(
            "Rolling back unit of work: %d inserted, %d modified entities",
            len(self._created),
            len(self._pre_images),
        )
        for key in reversed(self._created):
            self._entities.pop(key, None)
            self._type_index.get(key[0], {}).pop(key[1], None)
        for key, snapshot in self._pre_images.items():
            entity = self._entities.get(key)
            if entity is not None:
                entity.restore(snapshot)
        self._commit()

    def clear(self) -> None:
        """Clear all data (for testing)."""
        with self._lock:
            self._entities.clear()
            self._type_index.clear()
            self._commit()
