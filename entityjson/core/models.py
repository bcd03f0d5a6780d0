"""
Store-side entity model for entityjson.

An Entity is the store form of one object in the graph: a type name, a
stable identifier, attribute values and relationship edges. Edges hold
identifiers of other entities rather than the entities themselves, so the
graph lives in the store's arena and reference cycles never tie Python
objects together.
"""

from __future__ import annotations

from typing import Any

import ulid
from pydantic import BaseModel, Field, field_validator


def generate_id() -> str:
    """Generate a unique, sortable ID using ULID."""
    return str(ulid.new())


class Entity(BaseModel):
    """
    A typed object owned by an entity store.

    Entities are mutated only through the store, which keeps inverse
    relationships consistent and records pre-images for rollback.
    Read values through the store as well; the dictionaries here are the
    store's raw state.
    """

    id: str = Field(default_factory=generate_id, description="Identifier, unique per entity type")
    entity_name: str = Field(..., description="Entity type name from the schema registry")

    attributes: dict[str, Any] = Field(default_factory=dict, description="Attribute name -> value")
    relationships: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Relationship name -> ordered identifiers of related entities"
    )

    model_config = {"frozen": False, "extra": "forbid"}

    @field_validator("entity_name")
    @classmethod
    def validate_entity_name(cls, v: str) -> str:
        """Ensure entity name is not empty."""
        if not v or not v.strip():
            raise ValueError("entity_name cannot be empty")
        return v.strip()

    @property
    def key(self) -> tuple[str, str]:
        """Index key: (entity name, identifier)."""
        return (self.entity_name, self.id)

    def snapshot(self) -> Entity:
        """Copy of the current state, deep enough to restore from."""
        return self.model_copy(deep=True)

    def restore(self, snapshot: Entity) -> None:
        """Reset this entity's values to a snapshot taken earlier."""
        self.attributes = dict(snapshot.attributes)
        self.relationships = {name: list(ids) for name, ids in snapshot.relationships.items()}

    def __hash__(self) -> int:
        return hash(self.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self is other or self.key == other.key

    def __repr__(self) -> str:
        return f"Entity({self.entity_name}:{self.id})"
