"""
Configuration for the JSON mapper.

MapperConfig is passed to the importer, the exporter and ObjectContext.
Defaults suit round-tripping; from_env() lets deployments override them
without code changes.
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field


DateTimespec = Literal["auto", "seconds", "milliseconds", "microseconds"]


class MapperConfig(BaseModel):
    """Options shared by import and export."""

    indent: Optional[int] = Field(default=None, ge=0, description="JSON indentation for bulk export")
    ensure_ascii: bool = Field(default=False, description="Escape non-ASCII characters on export")
    include_identifiers: bool = Field(
        default=True,
        description=(
            "Emit the 'id' field on every exported record; when off, ids are kept "
            "only on entities that are also written as references"
        ),
    )
    date_timespec: DateTimespec = Field(
        default="auto",
        description="Precision of exported dates"
    )
    allow_untyped_nested: bool = Field(
        default=True,
        description="Nested records may omit 'entity' and take the relationship target"
    )

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_env(cls, prefix: str = "ENTITYJSON_") -> MapperConfig:
        """
        Build a config from environment variables.

        Each field maps to PREFIX + upper-cased field name, e.g.
        ENTITYJSON_INDENT=2 or ENTITYJSON_INCLUDE_IDENTIFIERS=false.
        Unset variables keep their defaults.
        """
        overrides = {}
        for name in cls.model_fields:
            value = os.getenv(prefix + name.upper())
            if value is not None and value != "":
                overrides[name] = value
        # Lax validation coerces "2" and "false" to the field types
        return cls.model_validate(overrides)
