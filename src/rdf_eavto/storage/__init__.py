"""
Storage layer: DuckDB schema, writer, reader and statistics.

Everything below this package works on compressed IRIs; ``TripleStore``
is the only place that expands them.
"""

from rdf_eavto.storage.connection import Backend
from rdf_eavto.storage.schema import SCHEMA_VERSION, ensure_schema
from rdf_eavto.storage.xsd import XsdType, LiteralParseError, parse_typed

__all__ = [
    "Backend",
    "SCHEMA_VERSION",
    "ensure_schema",
    "XsdType",
    "LiteralParseError",
    "parse_typed",
]
