"""
Wire format for entity records.

A document is a JSON array of EntityRecord objects:

    [{"entity": "Company",
      "id": "c1",
      "attributes": {"title": "ACME"},
      "relationships": {"departments": [{"entity": "Department", ...}]}}]

Relationship values are kept raw here (nested objects, arrays, bare
identifier strings or null); the importer interprets them against the
relationship's cardinality.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from entityjson.core.errors import MalformedInput


class EntityRecord(BaseModel):
    """One entity in wire form."""

    entity: Optional[str] = Field(default=None, description="Entity type name")
    id: Optional[str] = Field(default=None, description="Stable identifier")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Attribute values")
    relationships: dict[str, Any] = Field(default_factory=dict, description="Relationship values")

    model_config = {"extra": "forbid"}

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Accept integer identifiers and keep them as strings."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @classmethod
    def reference(cls, entity_name: str, identifier: str) -> dict[str, Any]:
        """Wire form of a reference record."""
        return {"entity": entity_name, "id": identifier}


def parse_document(data: bytes | str) -> list[Any]:
    """
    Decode a wire document into its top-level array.

    Raises:
        MalformedInput: If the data is not UTF-8 JSON or not an array
    """
    try:
        document = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedInput(f"Input is not valid JSON: {e}") from e
    except RecursionError as e:
        raise MalformedInput("Input is nested too deeply") from e
    check_document(document)
    return document


def check_document(document: Any) -> None:
    """Reject anything but a JSON array at the top level."""
    if not isinstance(document, list):
        raise MalformedInput(
            f"Expected a JSON array of entity records, got {type(document).__name__}"
        )


def parse_record(obj: Any, path: str) -> EntityRecord:
    """
    Validate one record object.

    Args:
        obj: Decoded JSON value
        path: Location of the value, for error messages

    Raises:
        MalformedInput: If the value is not a record object
    """
    if not isinstance(obj, dict):
        raise MalformedInput(f"Expected an entity record object, got {type(obj).__name__}", path=path)
    try:
        return EntityRecord.model_validate(obj)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise MalformedInput(f"Invalid entity record: {details}", path=path) from e
