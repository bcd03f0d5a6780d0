"""
Entity Schema Registry for entityjson.

The registry is the read-only source of truth for which entity types
exist and which attributes and relationships each type declares:

- AttributeDescriptor: name, scalar kind, optionality, default
- RelationshipDescriptor: name, target type, cardinality, inverse
- EntityDescriptor: per-type lookup of the above
- SchemaRegistry: type name -> EntityDescriptor

Descriptors are validated and linked once, when the registry is built.
After that every lookup is a dictionary access, and unknown names are
rejected at that boundary.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field, PrivateAttr, ValidationError, field_validator, model_validator

from entityjson.core.errors import (
    SchemaError,
    UnknownAttribute,
    UnknownEntityType,
    UnknownRelationship,
)
from entityjson.core.scalars import ScalarCodec, ScalarFormatError, ScalarKind

logger = logging.getLogger(__name__)


class AttributeDescriptor(BaseModel):
    """A scalar attribute of an entity type."""

    name: str = Field(..., description="Attribute name")
    kind: ScalarKind = Field(..., description="Scalar kind")
    optional: bool = Field(default=True, description="Whether null is accepted")
    default: Optional[Any] = Field(default=None, description="Default value in JSON form")

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def codec(self) -> ScalarCodec:
        """Codec for this attribute's kind."""
        return ScalarCodec.for_kind(self.kind)

    def default_value(self) -> Any:
        """Default converted to its Python form, or None."""
        if self.default is None:
            return None
        return self.codec.decode(self.default)


class RelationshipDescriptor(BaseModel):
    """
    A relationship from one entity type to another.

    Attributes:
        target: Entity type on the other end
        to_many: Cardinality (False = to-one)
        ordered: Whether a to-many relationship keeps insertion order
        inverse: Name of the relationship on the target pointing back
        back_reference: True if this side is the store-maintained inverse
            that is never serialized. None means "decide when the registry
            links the schema".
    """

    name: str = Field(..., description="Relationship name")
    target: str = Field(..., description="Target entity type")
    to_many: bool = Field(default=False, description="To-many cardinality")
    ordered: bool = Field(default=True, description="Preserve insertion order")
    inverse: Optional[str] = Field(default=None, description="Inverse relationship name")
    back_reference: Optional[bool] = Field(default=None, description="Store-maintained inverse side")

    model_config = {"extra": "forbid"}

    @property
    def owning(self) -> bool:
        """Whether this side is serialized on export."""
        return not self.back_reference


class EntityDescriptor(BaseModel):
    """Schema for one entity type."""

    name: str = Field(..., description="Entity type name")
    description: Optional[str] = Field(default=None, description="Human description")
    attributes: list[AttributeDescriptor] = Field(default_factory=list)
    relationships: list[RelationshipDescriptor] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    _attribute_map: dict[str, AttributeDescriptor] = PrivateAttr(default_factory=dict)
    _relationship_map: dict[str, RelationshipDescriptor] = PrivateAttr(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure entity name is not empty."""
        if not v or not v.strip():
            raise ValueError("entity name cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_unique_names(self) -> EntityDescriptor:
        """Attributes and relationships share one namespace."""
        seen: set[str] = set()
        for item in [*self.attributes, *self.relationships]:
            if item.name in seen:
                raise ValueError(f"duplicate property {item.name!r} on entity {self.name!r}")
            seen.add(item.name)
        return self

    def model_post_init(self, __context: Any) -> None:
        """Build the name lookup tables."""
        self._attribute_map = {a.name: a for a in self.attributes}
        self._relationship_map = {r.name: r for r in self.relationships}

    def attribute(self, name: str) -> AttributeDescriptor:
        """Get an attribute descriptor, raising UnknownAttribute."""
        descriptor = self._attribute_map.get(name)
        if descriptor is None:
            raise UnknownAttribute(self.name, name)
        return descriptor

    def relationship(self, name: str) -> RelationshipDescriptor:
        """Get a relationship descriptor, raising UnknownRelationship."""
        descriptor = self._relationship_map.get(name)
        if descriptor is None:
            raise UnknownRelationship(self.name, name)
        return descriptor

    def has_attribute(self, name: str) -> bool:
        return name in self._attribute_map

    def has_relationship(self, name: str) -> bool:
        return name in self._relationship_map

    @property
    def attribute_names(self) -> list[str]:
        return [a.name for a in self.attributes]

    @property
    def relationship_names(self) -> list[str]:
        return [r.name for r in self.relationships]

    def owning_relationships(self) -> list[RelationshipDescriptor]:
        """Relationships serialized on export, in declaration order."""
        return [r for r in self.relationships if r.owning]


class SchemaRegistry:
    """
    Registry of entity descriptors.

    Usage:
        registry = SchemaRegistry.load("model.json")
        descriptor = registry.describe("Company")
        descriptor.relationship("departments").to_many  # True
    """

    def __init__(self, entities: Optional[list[EntityDescriptor]] = None):
        """
        Build and link a registry.

        Args:
            entities: Entity descriptors

        Raises:
            SchemaError: If names collide, a target is missing, an inverse
                is inconsistent, or a default does not fit its kind
        """
        self._entities: dict[str, EntityDescriptor] = {}
        for descriptor in entities or []:
            if descriptor.name in self._entities:
                raise SchemaError(f"Duplicate entity type: {descriptor.name!r}", entity_name=descriptor.name)
            self._entities[descriptor.name] = descriptor

        self._check_defaults()
        self._link_relationships()
        logger.debug("Schema registry built with %d entity types", len(self._entities))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaRegistry:
        """
        Build a registry from a model definition.

        Args:
            data: {"entities": [{"name": ..., "attributes": [...], "relationships": [...]}]}

        Raises:
            SchemaError: If the definition is malformed or inconsistent
        """
        if not isinstance(data, dict) or not isinstance(data.get("entities"), list):
            raise SchemaError("Model definition must be an object with an 'entities' array")
        try:
            entities = [EntityDescriptor.model_validate(item) for item in data["entities"]]
        except ValidationError as e:
            raise SchemaError(f"Invalid model definition: {e}") from e
        return cls(entities)

    @classmethod
    def load(cls, path: str | Path) -> SchemaRegistry:
        """Build a registry from a JSON model definition file."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SchemaError(f"Model definition {path} is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def describe(self, entity_name: str) -> EntityDescriptor:
        """Get the descriptor for a type, raising UnknownEntityType."""
        descriptor = self._entities.get(entity_name) if isinstance(entity_name, str) else None
        if descriptor is None:
            raise UnknownEntityType(entity_name)
        return descriptor

    def get(self, entity_name: str) -> Optional[EntityDescriptor]:
        """Get the descriptor for a type, or None."""
        return self._entities.get(entity_name)

    def has_type(self, entity_name: str) -> bool:
        return entity_name in self._entities

    def list_types(self) -> list[str]:
        """List all declared types in declaration order."""
        return list(self._entities.keys())

    def __contains__(self, entity_name: object) -> bool:
        return entity_name in self._entities

    def __iter__(self) -> Iterator[EntityDescriptor]:
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)

    def inverse_of(self, entity_name: str, relationship: RelationshipDescriptor) -> Optional[RelationshipDescriptor]:
        """Get the relationship on the target pointing back, if declared."""
        if relationship.inverse is None:
            return None
        return self.describe(relationship.target).relationship(relationship.inverse)

    def _check_defaults(self) -> None:
        for descriptor in self._entities.values():
            for attribute in descriptor.attributes:
                try:
                    attribute.default_value()
                except ScalarFormatError as e:
                    raise SchemaError(
                        f"Default of {descriptor.name}.{attribute.name} is not a valid "
                        f"{attribute.kind.value}: {e}",
                        entity_name=descriptor.name,
                        key=attribute.name,
                    ) from e

    def _link_relationships(self) -> None:
        """Check targets and inverses, then settle which side of each pair is owning."""
        for descriptor in self._entities.values():
            for relationship in descriptor.relationships:
                target = self._entities.get(relationship.target)
                if target is None:
                    raise SchemaError(
                        f"Relationship {descriptor.name}.{relationship.name} targets "
                        f"unknown entity {relationship.target!r}",
                        entity_name=descriptor.name,
                        key=relationship.name,
                    )
                if relationship.inverse is None:
                    continue

                if not target.has_relationship(relationship.inverse):
                    raise SchemaError(
                        f"Inverse {relationship.target}.{relationship.inverse} of "
                        f"{descriptor.name}.{relationship.name} is not declared",
                        entity_name=descriptor.name,
                        key=relationship.name,
                    )
                inverse = target.relationship(relationship.inverse)
                if inverse.target != descriptor.name or inverse.inverse != relationship.name:
                    raise SchemaError(
                        f"Inverse {relationship.target}.{inverse.name} does not point back "
                        f"to {descriptor.name}.{relationship.name}",
                        entity_name=descriptor.name,
                        key=relationship.name,
                    )

        for descriptor in self._entities.values():
            for relationship in descriptor.relationships:
                self._settle_ownership(descriptor, relationship)

    def _settle_ownership(self, descriptor: EntityDescriptor, relationship: RelationshipDescriptor) -> None:
        if relationship.inverse is None:
            if relationship.back_reference:
                raise SchemaError(
                    f"{descriptor.name}.{relationship.name} is a back reference without an inverse",
                    entity_name=descriptor.name,
                    key=relationship.name,
                )
            relationship.back_reference = False
            return

        inverse = self.inverse_of(descriptor.name, relationship)
        if inverse is relationship:
            # Self-inverse (e.g. Person.spouse)
            relationship.back_reference = False
            return

        if relationship.back_reference is not None and inverse.back_reference is not None:
            if relationship.back_reference == inverse.back_reference:
                raise SchemaError(
                    f"Exactly one of {descriptor.name}.{relationship.name} and "
                    f"{relationship.target}.{inverse.name} must be a back reference",
                    entity_name=descriptor.name,
                    key=relationship.name,
                )
            return
        if relationship.back_reference is not None:
            inverse.back_reference = not relationship.back_reference
            return
        if inverse.back_reference is not None:
            relationship.back_reference = not inverse.back_reference
            return

        if relationship.to_many != inverse.to_many:
            # Parent -> children owns; child -> parent is derived
            relationship.back_reference = not relationship.to_many
        else:
            relationship.back_reference = (descriptor.name, relationship.name) > (relationship.target, inverse.name)
        inverse.back_reference = not relationship.back_reference
