"""
Scalar codecs for entity attributes.

Each scalar kind gets one ScalarCodec, built once when the schema is
loaded. The codec turns JSON values into Python values on import
(decode), checks Python values written directly to a store (validate),
and turns stored values back into JSON values on export (encode).

Validation is delegated to pydantic TypeAdapters. Kinds whose JSON form
is a native JSON type (string, integer, number, boolean) are validated in
strict mode so that "12" is never taken for 12. Kinds carried as strings
on the wire (date, binary, uuid) must arrive as strings and are then
parsed; dates must be ISO-8601 timestamps with a time of day. Numbers
are finite, since JSON cannot carry NaN or Infinity.
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import (
    AllowInfNan,
    Base64Bytes,
    StrictBool,
    StrictInt,
    StrictStr,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)


class ScalarKind(str, Enum):
    """Supported attribute kinds."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    BINARY = "binary"
    UUID = "uuid"


class ScalarFormatError(ValueError):
    """Raised by a codec when a value does not fit its kind."""
    pass


# Kinds transported as JSON strings and parsed after the type check
_STRING_ENCODED = {ScalarKind.DATE, ScalarKind.BINARY, ScalarKind.UUID}

# JSON has no NaN or Infinity
FiniteFloat = Annotated[float, AllowInfNan(False)]

# ISO-8601 extended date and time of day, optional fraction and UTC offset
IsoTimestamp = Annotated[
    str,
    StringConstraints(
        pattern=r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}(:\d{2}(\.\d+)?)?([Zz]|[+-]\d{2}:\d{2})?$"
    ),
]

_WIRE_TYPES: dict[ScalarKind, Any] = {
    ScalarKind.STRING: StrictStr,
    ScalarKind.INTEGER: StrictInt,
    ScalarKind.NUMBER: FiniteFloat,
    ScalarKind.BOOLEAN: StrictBool,
    ScalarKind.DATE: datetime,
    ScalarKind.BINARY: Base64Bytes,
    ScalarKind.UUID: UUID,
}

_PYTHON_TYPES: dict[ScalarKind, Any] = {
    ScalarKind.STRING: str,
    ScalarKind.INTEGER: int,
    ScalarKind.NUMBER: FiniteFloat,
    ScalarKind.BOOLEAN: bool,
    ScalarKind.DATE: datetime,
    ScalarKind.BINARY: bytes,
    ScalarKind.UUID: UUID,
}


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_date(value: datetime, timespec: str = "auto") -> str:
    """
    Format a timestamp as ISO-8601 in UTC with a trailing Z.

    Args:
        value: Timestamp to format (naive values are taken as UTC)
        timespec: "auto", "seconds", "milliseconds" or "microseconds"

    Returns:
        e.g. "2021-05-01T12:00:00Z" or "2021-05-01T12:00:00.250000Z"
    """
    text = _as_utc(value).isoformat(timespec=timespec)
    return text.replace("+00:00", "Z")


class ScalarCodec:
    """
    Converts values of one scalar kind between JSON and Python.

    Usage:
        codec = ScalarCodec.for_kind(ScalarKind.DATE)
        when = codec.decode("2021-05-01T12:00:00Z")
        codec.encode(when)  # "2021-05-01T12:00:00Z"
    """

    _cache: dict[ScalarKind, ScalarCodec] = {}

    def __init__(self, kind: ScalarKind):
        self.kind = kind
        self._wire_adapter = TypeAdapter(_WIRE_TYPES[kind])
        self._python_adapter = TypeAdapter(_PYTHON_TYPES[kind])
        self._format_adapter = TypeAdapter(IsoTimestamp) if kind == ScalarKind.DATE else None

    @classmethod
    def for_kind(cls, kind: ScalarKind) -> ScalarCodec:
        """Get the shared codec for a kind."""
        codec = cls._cache.get(kind)
        if codec is None:
            codec = cls(kind)
            cls._cache[kind] = codec
        return codec

    def decode(self, value: Any) -> Any:
        """
        Convert a JSON value to the Python value for this kind.

        Raises:
            ScalarFormatError: If the value has the wrong JSON type or format
        """
        if self.kind in _STRING_ENCODED:
            if not isinstance(value, str):
                raise ScalarFormatError(
                    f"expected {self.kind.value} string, got {type(value).__name__}"
                )
            strict = False
        elif self.kind == ScalarKind.NUMBER and isinstance(value, bool):
            raise ScalarFormatError("expected number, got bool")
        else:
            strict = True

        try:
            if self._format_adapter is not None:
                self._format_adapter.validate_python(value)
            result = self._wire_adapter.validate_python(value, strict=strict)
        except ValidationError as e:
            raise ScalarFormatError(_first_error(e)) from e

        if self.kind == ScalarKind.DATE:
            return _as_utc(result)
        return result

    def validate(self, value: Any) -> Any:
        """
        Check a Python value written directly to an entity.

        Raises:
            ScalarFormatError: If the value is not of this kind's Python type
        """
        try:
            result = self._python_adapter.validate_python(value, strict=True)
        except ValidationError as e:
            raise ScalarFormatError(_first_error(e)) from e

        if self.kind == ScalarKind.DATE:
            return _as_utc(result)
        return result

    def encode(self, value: Any, timespec: str = "auto") -> Any:
        """Convert a stored Python value to its JSON form."""
        if value is None:
            return None
        if self.kind == ScalarKind.DATE:
            return format_date(value, timespec)
        if self.kind == ScalarKind.BINARY:
            return base64.b64encode(value).decode("ascii")
        if self.kind == ScalarKind.UUID:
            return str(value)
        return value


def _first_error(error: ValidationError) -> Optional[str]:
    """Condense a pydantic error into one line."""
    details = error.errors()
    if not details:
        return str(error)
    return details[0].get("msg", str(error))
