"""
XSD datatype registry and literal parsing.

Maps datatype IRIs to a classification (numeric / integer / float /
temporal) and parses lexical forms into the typed fast-path columns of the
triples table. Only four families have a fast-path column:

    integer, int, long      -> object_integer  (signed 64-bit)
    decimal, double, float  -> object_number   (IEEE-754 double)
    boolean                 -> object_boolean  (0 / 1)
    dateTime                -> object_datetime (Unix epoch seconds)

Every other datatype is stored as a generic literal with no typed column.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from rdf_eavto.namespaces import NAMESPACES

XSD_NAMESPACE = NAMESPACES["xsd"]

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_FRACTION_RE = re.compile(r"\.(\d+)(?=[+-]\d\d:\d\d$)")
_DECIMAL_RE = re.compile(
    r"^(?:[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?|[+-]?INF|NaN)$"
)
_BOOLEAN_LEXICAL = {"true": 1, "1": 1, "false": 0, "0": 0}


class XsdType(Enum):
    """Standard XML Schema datatypes, valued by their compressed IRI."""

    # String types
    STRING = "xsd:string"
    NORMALIZED_STRING = "xsd:normalizedString"
    TOKEN = "xsd:token"
    LANGUAGE = "xsd:language"
    NAME = "xsd:Name"
    NCNAME = "xsd:NCName"

    # Integer types
    INTEGER = "xsd:integer"
    INT = "xsd:int"
    LONG = "xsd:long"
    SHORT = "xsd:short"
    BYTE = "xsd:byte"
    NON_NEGATIVE_INTEGER = "xsd:nonNegativeInteger"
    POSITIVE_INTEGER = "xsd:positiveInteger"
    NON_POSITIVE_INTEGER = "xsd:nonPositiveInteger"
    NEGATIVE_INTEGER = "xsd:negativeInteger"
    UNSIGNED_LONG = "xsd:unsignedLong"
    UNSIGNED_INT = "xsd:unsignedInt"
    UNSIGNED_SHORT = "xsd:unsignedShort"
    UNSIGNED_BYTE = "xsd:unsignedByte"

    # Floating point types
    DECIMAL = "xsd:decimal"
    FLOAT = "xsd:float"
    DOUBLE = "xsd:double"

    BOOLEAN = "xsd:boolean"

    # Temporal types
    DATETIME = "xsd:dateTime"
    DATE = "xsd:date"
    TIME = "xsd:time"
    DURATION = "xsd:duration"

    # Other
    ANY_URI = "xsd:anyURI"
    BASE64_BINARY = "xsd:base64Binary"
    HEX_BINARY = "xsd:hexBinary"

    @property
    def iri(self) -> str:
        """Compressed IRI, e.g. ``xsd:integer``."""
        return self.value

    @property
    def full_iri(self) -> str:
        return XSD_NAMESPACE + self.local_name

    @property
    def local_name(self) -> str:
        return self.value.split(":", 1)[1]

    @classmethod
    def from_iri(cls, iri: Optional[str]) -> Optional["XsdType"]:
        """
        Look up a datatype by IRI.

        Accepts the compressed form (``xsd:integer``), the full form and the
        bare local name (``integer``). Returns None for unknown datatypes.
        """
        if not iri:
            return None
        if iri.startswith(XSD_NAMESPACE):
            local = iri[len(XSD_NAMESPACE):]
        elif iri.startswith("xsd:"):
            local = iri[4:]
        else:
            local = iri
        return _BY_LOCAL_NAME.get(local)

    def is_integer(self) -> bool:
        return self in _INTEGER_TYPES

    def is_float(self) -> bool:
        return self in _FLOAT_TYPES

    def is_numeric(self) -> bool:
        return self.is_integer() or self.is_float()

    def is_temporal(self) -> bool:
        return self in _TEMPORAL_TYPES

    def __str__(self) -> str:
        return self.value


_BY_LOCAL_NAME = {member.local_name: member for member in XsdType}

_INTEGER_TYPES = frozenset({
    XsdType.INTEGER, XsdType.INT, XsdType.LONG, XsdType.SHORT, XsdType.BYTE,
    XsdType.NON_NEGATIVE_INTEGER, XsdType.POSITIVE_INTEGER,
    XsdType.NON_POSITIVE_INTEGER, XsdType.NEGATIVE_INTEGER,
    XsdType.UNSIGNED_LONG, XsdType.UNSIGNED_INT, XsdType.UNSIGNED_SHORT,
    XsdType.UNSIGNED_BYTE,
})
_FLOAT_TYPES = frozenset({XsdType.DECIMAL, XsdType.FLOAT, XsdType.DOUBLE})
_TEMPORAL_TYPES = frozenset({
    XsdType.DATETIME, XsdType.DATE, XsdType.TIME, XsdType.DURATION,
})


# =============================================================================
# Fast-path columns
# =============================================================================

# Typed column -> datatypes (compressed) that must populate it.
FAST_PATH_COLUMNS: dict[str, tuple[str, ...]] = {
    "object_integer": (XsdType.INTEGER.iri, XsdType.INT.iri, XsdType.LONG.iri),
    "object_number": (XsdType.DECIMAL.iri, XsdType.DOUBLE.iri, XsdType.FLOAT.iri),
    "object_boolean": (XsdType.BOOLEAN.iri,),
    "object_datetime": (XsdType.DATETIME.iri,),
}

FAST_PATH_DATATYPES: dict[str, str] = {
    datatype: column
    for column, datatypes in FAST_PATH_COLUMNS.items()
    for datatype in datatypes
}


def fast_path_column(datatype: Optional[str]) -> Optional[str]:
    """Name of the typed column a (compressed) datatype populates, if any."""
    if datatype is None:
        return None
    return FAST_PATH_DATATYPES.get(datatype)


class LiteralParseError(ValueError):
    """A lexical form is not valid for its datatype."""


TypedValue = Union[int, float]


def parse_integer(lexical: str) -> int:
    if not _INTEGER_RE.match(lexical):
        raise LiteralParseError(f"not an integer: {lexical!r}")
    value = int(lexical)
    if not INT64_MIN <= value <= INT64_MAX:
        raise LiteralParseError(f"integer out of 64-bit range: {lexical!r}")
    return value


def parse_number(lexical: str) -> float:
    if not _DECIMAL_RE.match(lexical):
        raise LiteralParseError(f"not a number: {lexical!r}")
    return float(lexical)


def parse_boolean(lexical: str) -> int:
    try:
        return _BOOLEAN_LEXICAL[lexical]
    except KeyError:
        raise LiteralParseError(
            f"invalid boolean {lexical!r}, expected 'true', 'false', '1' or '0'"
        ) from None


def parse_datetime(lexical: str) -> int:
    """
    Parse an ISO-8601 timestamp with offset into Unix epoch seconds.

    ``2025-01-28T18:38:46Z`` and ``2025-01-28T18:38:46+02:00`` are accepted;
    timestamps without an offset are rejected. Fractional seconds are
    truncated to microseconds and the result is floored, so instants before
    the epoch round towards negative infinity.
    """
    text = lexical.strip()
    if text != lexical or "T" not in text:
        raise LiteralParseError(f"not an ISO-8601 dateTime: {lexical!r}")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise LiteralParseError(f"not an ISO-8601 dateTime: {lexical!r}") from None
    if parsed.tzinfo is None:
        raise LiteralParseError(f"dateTime without offset: {lexical!r}")
    return math.floor(parsed.timestamp())


_PARSERS = {
    "object_integer": parse_integer,
    "object_number": parse_number,
    "object_boolean": parse_boolean,
    "object_datetime": parse_datetime,
}


def parse_typed(lexical: str, datatype: Optional[str]) -> Optional[tuple[str, TypedValue]]:
    """
    Parse a literal into its fast-path column.

    Returns ``(column, value)`` for fast-path datatypes and None for every
    other datatype. Raises LiteralParseError when the lexical form does not
    fit. There is no silent coercion.
    """
    column = fast_path_column(datatype)
    if column is None:
        return None
    return column, _PARSERS[column](lexical)
