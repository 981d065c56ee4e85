"""
Aggregate counters over the triples log.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import duckdb

from rdf_eavto.models import ObjectType
from rdf_eavto.storage.schema import get_metadata

CHILD_PREDICATES = ("rdfs:subClassOf", "rdfs:subPropertyOf", "skos:broader")
SYNONYM_PREDICATES = ("skos:altLabel",)
RELATED_PREDICATES = (
    "skos:related",
    "rdfs:seeAlso",
    "foundation:antonym",
    "foundation:causes",
    "foundation:entails",
)
EXAMPLE_PREDICATES = ("skos:example",)


@dataclass
class DbStats:
    total_triples: int
    active_triples: int
    total_transactions: int
    entities_count: int
    ontology_imported: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class NodeStats:
    """Neighbourhood counts of one entity over the active facts."""
    children: int = 0
    backlinks: int = 0
    synonyms: int = 0
    related: int = 0
    examples: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def db_stats(conn: duckdb.DuckDBPyConnection) -> DbStats:
    total, active, entities = conn.execute(
        """
        SELECT
            COUNT(*),
            COUNT(*) FILTER (WHERE retracted = 0),
            COUNT(DISTINCT subject) FILTER (WHERE retracted = 0)
        FROM triples
        """
    ).fetchone()
    transactions = conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]
    return DbStats(
        total_triples=total,
        active_triples=active,
        total_transactions=transactions,
        entities_count=entities,
        ontology_imported=get_metadata(conn, "ontology_imported") == "true",
    )


def _marks(values: tuple[str, ...]) -> str:
    return ", ".join("?" for _ in values)


def node_stats(conn: duckdb.DuckDBPyConnection, subject: str) -> NodeStats:
    iri = ObjectType.IRI.value
    children, backlinks = conn.execute(
        f"""
        SELECT
            COUNT(DISTINCT subject) FILTER (WHERE predicate IN ({_marks(CHILD_PREDICATES)})),
            COUNT(*)
        FROM triples
        WHERE object = ? AND object_type = ? AND retracted = 0
        """,
        [*CHILD_PREDICATES, subject, iri],
    ).fetchone()
    synonyms, related, examples = conn.execute(
        f"""
        SELECT
            COUNT(*) FILTER (WHERE predicate IN ({_marks(SYNONYM_PREDICATES)})),
            COUNT(*) FILTER (WHERE predicate IN ({_marks(RELATED_PREDICATES)})),
            COUNT(*) FILTER (WHERE predicate IN ({_marks(EXAMPLE_PREDICATES)}))
        FROM triples
        WHERE subject = ? AND retracted = 0
        """,
        [*SYNONYM_PREDICATES, *RELATED_PREDICATES, *EXAMPLE_PREDICATES, subject],
    ).fetchone()
    return NodeStats(
        children=children,
        backlinks=backlinks,
        synonyms=synonyms,
        related=related,
        examples=examples,
    )
