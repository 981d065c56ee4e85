"""
rdf-eavto: an embedded, append-only RDF triple store.

Every fact is an Entity, Attribute, Value, Transaction, Origin quintuple
kept in a DuckDB log. Facts are never updated in place; retraction and
supersession are recorded by later transactions, so any past snapshot and
the full history of an entity can be rebuilt.
"""

__version__ = "0.1.0"

from rdf_eavto.config import StoreConfig
from rdf_eavto.errors import (
    EAVTOError,
    ImportFailedError,
    NotInitializedError,
    StorageError,
    ValidationError,
    Violation,
)
from rdf_eavto.models import (
    IRI,
    ApplicableProperty,
    Blank,
    Boolean,
    HistoryEntry,
    Instant,
    Integer,
    Literal,
    Number,
    Origin,
    ResultSet,
    RetractPattern,
    SearchHit,
    TransactionRecord,
    Triple,
    TripleRow,
    Value,
)
from rdf_eavto.namespaces import compress, expand
from rdf_eavto.storage.stats import DbStats, NodeStats
from rdf_eavto.storage.turtle import ImportStats
from rdf_eavto.store import TripleStore

__all__ = [
    "TripleStore",
    "StoreConfig",
    # Values and rows
    "Value",
    "IRI",
    "Blank",
    "Literal",
    "Integer",
    "Number",
    "Boolean",
    "Instant",
    "Triple",
    "RetractPattern",
    "TripleRow",
    "ResultSet",
    "HistoryEntry",
    "Origin",
    "TransactionRecord",
    "SearchHit",
    "ApplicableProperty",
    # Statistics
    "DbStats",
    "NodeStats",
    "ImportStats",
    # IRI codec
    "compress",
    "expand",
    # Errors
    "EAVTOError",
    "StorageError",
    "ValidationError",
    "Violation",
    "NotInitializedError",
    "ImportFailedError",
]
