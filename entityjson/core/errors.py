"""
Error taxonomy for entityjson.

Every failure raised by the importer, the exporter, or the schema
registry derives from EntityJSONError, so callers can catch the whole
family at once or pick the specific condition they care about.
"""

from __future__ import annotations

from typing import Optional


class EntityJSONError(Exception):
    """
    Base error for all mapping failures.

    Attributes:
        entity_name: Entity type involved, if known
        key: Attribute or relationship name involved, if any
        path: Location in the JSON document (e.g. "/0/relationships/departments/1")
    """

    def __init__(
        self,
        message: str,
        entity_name: Optional[str] = None,
        key: Optional[str] = None,
        path: Optional[str] = None,
    ):
        if path:
            message = f"{message} (at {path})"
        super().__init__(message)
        self.entity_name = entity_name
        self.key = key
        self.path = path


class MalformedInput(EntityJSONError):
    """Input is not valid JSON or does not have the record shape."""
    pass


class UnknownEntityType(EntityJSONError):
    """Entity type is not declared in the schema registry."""

    def __init__(self, entity_name: Optional[str], path: Optional[str] = None):
        super().__init__(
            f"Unknown entity type: {entity_name!r}",
            entity_name=entity_name,
            path=path,
        )


class UnknownAttribute(EntityJSONError):
    """Attribute name is not declared for the entity type."""

    def __init__(self, entity_name: str, key: str, path: Optional[str] = None):
        super().__init__(
            f"Unknown attribute {key!r} for entity {entity_name!r}",
            entity_name=entity_name,
            key=key,
            path=path,
        )


class UnknownRelationship(EntityJSONError):
    """Relationship name is not declared for the entity type."""

    def __init__(self, entity_name: str, key: str, path: Optional[str] = None):
        super().__init__(
            f"Unknown relationship {key!r} for entity {entity_name!r}",
            entity_name=entity_name,
            key=key,
            path=path,
        )


class InvalidScalarFormat(EntityJSONError):
    """A JSON value cannot be coerced to the attribute's scalar kind."""
    pass


class InvalidRelationshipTarget(EntityJSONError):
    """
    A relationship value has the wrong shape or points at the wrong type.

    This includes:
    - A nested record whose entity differs from the relationship target
    - An array under a to-one relationship, or an object under a to-many one
    """
    pass


class UnresolvedReference(EntityJSONError):
    """A bare identifier reference matches no entity."""
    pass


class SchemaError(EntityJSONError):
    """The model definition is inconsistent."""
    pass
