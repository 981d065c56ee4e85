"""
Read-only projections of the triples log.

All functions take a DuckDB connection (held under the backend lock) and
compressed IRIs, and return rows in compressed form. Current-snapshot
queries filter on ``retracted = 0``; ``at_time`` and ``history`` rebuild the
timeline from the retractions table instead.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Optional

import duckdb

from rdf_eavto.models import (
    ApplicableProperty,
    HistoryEntry,
    ObjectType,
    Origin,
    ResultSet,
    SearchHit,
    TRIPLE_COLUMNS,
    TransactionRecord,
    TripleRow,
)

logger = logging.getLogger(__name__)

_COLUMNS = ", ".join(TRIPLE_COLUMNS)
_COLUMNS_T = ", ".join(f"t.{name}" for name in TRIPLE_COLUMNS)

RDF_TYPE = "rdf:type"
RDFS_LABEL = "rdfs:label"
RDFS_COMMENT = "rdfs:comment"
RDFS_DOMAIN = "rdfs:domain"
RDFS_RANGE = "rdfs:range"
RDFS_SUBCLASS_OF = "rdfs:subClassOf"
ICON_PREDICATE = "foundation:icon"
FUNCTIONAL_PROPERTY = "owl:FunctionalProperty"
LITERAL_RANGES = ("rdfs:Literal", "rdf:langString", "rdf:XMLLiteral")

CLASS_TYPES = ("owl:Class", "rdfs:Class")

DEFAULT_ICONS: dict[str, str] = {
    "owl:Thing": "workspaces",
    "rdfs:Class": "grid_view",
    "owl:Class": "grid_view",
    "rdf:Property": "settings_ethernet",
    "owl:ObjectProperty": "link",
    "owl:DatatypeProperty": "text_fields",
}


def _result(conn: duckdb.DuckDBPyConnection, sql: str, params: list) -> ResultSet:
    rows = conn.execute(sql, params).fetchall()
    return ResultSet([TripleRow.from_record(row) for row in rows])


def _active(include_retracted: bool) -> str:
    return "" if include_retracted else " AND retracted = 0"


# =============================================================================
# Current snapshot
# =============================================================================

def by_entity(
    conn: duckdb.DuckDBPyConnection,
    subject: str,
    include_retracted: bool = False,
) -> ResultSet:
    return _result(
        conn,
        f"SELECT {_COLUMNS} FROM triples WHERE subject = ?{_active(include_retracted)} "
        "ORDER BY tx DESC, id",
        [subject],
    )


def by_predicate(
    conn: duckdb.DuckDBPyConnection,
    predicate: str,
    include_retracted: bool = False,
) -> ResultSet:
    return _result(
        conn,
        f"SELECT {_COLUMNS} FROM triples WHERE predicate = ?{_active(include_retracted)} "
        "ORDER BY tx DESC, id",
        [predicate],
    )


def by_entity_predicate(
    conn: duckdb.DuckDBPyConnection,
    subject: str,
    predicate: str,
    include_retracted: bool = False,
) -> ResultSet:
    return _result(
        conn,
        f"SELECT {_COLUMNS} FROM triples "
        f"WHERE subject = ? AND predicate = ?{_active(include_retracted)} "
        "ORDER BY tx DESC, id",
        [subject, predicate],
    )


def by_origin(
    conn: duckdb.DuckDBPyConnection,
    origin_id: int,
    include_retracted: bool = False,
) -> ResultSet:
    return _result(
        conn,
        f"SELECT {_COLUMNS} FROM triples WHERE origin_id = ?{_active(include_retracted)} "
        "ORDER BY tx DESC, id",
        [origin_id],
    )


def backlinks(conn: duckdb.DuckDBPyConnection, target: str) -> ResultSet:
    """Active rows pointing at ``target`` through an IRI object."""
    return _result(
        conn,
        f"SELECT {_COLUMNS} FROM triples "
        "WHERE object = ? AND object_type = ? AND retracted = 0 "
        "ORDER BY predicate, subject, id",
        [target, ObjectType.IRI.value],
    )


# =============================================================================
# Temporal
# =============================================================================

def at_time(conn: duckdb.DuckDBPyConnection, subject: str, tx: int) -> ResultSet:
    """
    Snapshot of ``subject`` as of ``tx``.

    A row is visible when it was asserted at or before ``tx`` and no
    tombstone for it exists at or before ``tx``. For each predicate the
    latest visible row wins.
    """
    rows = conn.execute(
        f"""
        SELECT {_COLUMNS_T}
        FROM triples t
        WHERE t.subject = ?
          AND t.tx <= ?
          AND NOT EXISTS (
              SELECT 1 FROM retractions r
              WHERE r.triple_id = t.id AND r.tx <= ?
          )
        ORDER BY t.predicate, t.tx DESC, t.id DESC
        """,
        [subject, tx, tx],
    ).fetchall()

    snapshot: list[TripleRow] = []
    seen: set[str] = set()
    for record in rows:
        row = TripleRow.from_record(record)
        if row.predicate in seen:
            continue
        seen.add(row.predicate)
        snapshot.append(row)
    return ResultSet(snapshot)


def history(conn: duckdb.DuckDBPyConnection, subject: str) -> list[HistoryEntry]:
    """
    Timeline of ``subject``: one entry per transaction that asserted or
    retracted any of its rows, ascending by tx.
    """
    entries: dict[int, HistoryEntry] = {}

    asserted = conn.execute(
        f"SELECT {_COLUMNS} FROM triples WHERE subject = ? ORDER BY tx, id",
        [subject],
    ).fetchall()
    for record in asserted:
        row = TripleRow.from_record(record)
        entries.setdefault(row.tx, HistoryEntry(row.tx)).triples.append(row)

    retracted = conn.execute(
        f"""
        SELECT r.tx, {_COLUMNS_T}
        FROM retractions r
        JOIN triples t ON t.id = r.triple_id
        WHERE t.subject = ?
        ORDER BY r.tx, t.id
        """,
        [subject],
    ).fetchall()
    for record in retracted:
        tx, row = record[0], TripleRow.from_record(record[1:])
        entries.setdefault(tx, HistoryEntry(tx)).retracted.append(row)

    return [entries[tx] for tx in sorted(entries)]


# =============================================================================
# Node helpers
# =============================================================================

def _first_literal(conn: duckdb.DuckDBPyConnection, subject: str, predicate: str) -> Optional[str]:
    row = conn.execute(
        """
        SELECT object_value FROM triples
        WHERE subject = ? AND predicate = ? AND object_type = ? AND retracted = 0
        ORDER BY tx DESC, id
        LIMIT 1
        """,
        [subject, predicate, ObjectType.LITERAL.value],
    ).fetchone()
    return row[0] if row else None


def label(conn: duckdb.DuckDBPyConnection, subject: str) -> Optional[str]:
    return _first_literal(conn, subject, RDFS_LABEL)


def icon(conn: duckdb.DuckDBPyConnection, subject: str) -> Optional[str]:
    """Explicit ``foundation:icon``, else the built-in icon for core terms."""
    explicit = _first_literal(conn, subject, ICON_PREDICATE)
    if explicit is not None:
        return explicit
    return DEFAULT_ICONS.get(subject)


def is_instance(conn: duckdb.DuckDBPyConnection, subject: str) -> bool:
    """True when ``subject`` has an active rdf:type that is not a class type."""
    row = conn.execute(
        f"""
        SELECT COUNT(*) FROM triples
        WHERE subject = ? AND predicate = ? AND retracted = 0
          AND object NOT IN ({", ".join("?" for _ in CLASS_TYPES)})
        """,
        [subject, RDF_TYPE, *CLASS_TYPES],
    ).fetchone()
    return row[0] > 0


# =============================================================================
# Classes, individuals and properties
# =============================================================================

def local_name(iri: str) -> str:
    """Last segment of an IRI after ``/``, ``#`` or ``:``."""
    for sep in ("#", "/", ":"):
        iri = iri.rsplit(sep, 1)[-1]
    return iri


def _objects(conn: duckdb.DuckDBPyConnection, subject: str, predicate: str) -> list[str]:
    rows = conn.execute(
        """
        SELECT object FROM triples
        WHERE subject = ? AND predicate = ? AND object_type = ? AND retracted = 0
        ORDER BY tx DESC, id
        """,
        [subject, predicate, ObjectType.IRI.value],
    ).fetchall()
    return [row[0] for row in rows]


def _search(
    conn: duckdb.DuckDBPyConnection,
    term: str,
    limit: int,
    is_class: bool,
) -> list[SearchHit]:
    needle = term.strip().lower()
    if not needle or limit <= 0:
        return []
    # Classes have a class type; individuals have any other type.
    membership = "IN" if is_class else "NOT IN"
    rows = conn.execute(
        f"""
        SELECT c.subject, l.object_value
        FROM (
            SELECT DISTINCT subject FROM triples
            WHERE predicate = ? AND object_type = ? AND retracted = 0
              AND object {membership} ({", ".join("?" for _ in CLASS_TYPES)})
              AND NOT starts_with(subject, '_:')
        ) c
        LEFT JOIN triples l
          ON l.subject = c.subject AND l.predicate = ?
         AND l.object_type = ? AND l.retracted = 0
        ORDER BY c.subject, l.tx DESC, l.id
        """,
        [RDF_TYPE, ObjectType.IRI.value, *CLASS_TYPES, RDFS_LABEL, ObjectType.LITERAL.value],
    ).fetchall()

    ranked = []
    seen = set()
    for subject, text in rows:
        if subject in seen:
            continue
        seen.add(subject)
        text = text if text is not None else local_name(subject)
        lowered = text.lower()
        if needle not in lowered:
            continue
        if lowered == needle:
            score = 0
        elif lowered.startswith(needle):
            score = 1
        else:
            score = 2
        ranked.append((score, len(text), text, subject))

    ranked.sort()
    return [
        SearchHit(id=subject, label=text, icon=icon(conn, subject), is_class=is_class)
        for _, _, text, subject in ranked[:limit]
    ]


def search_classes(conn: duckdb.DuckDBPyConnection, term: str, limit: int = 10) -> list[SearchHit]:
    """
    Classes whose label contains ``term``, case-insensitively.

    Exact matches rank first, then prefix matches, then the rest; ties go to
    the shorter label and then alphabetical order. A class without a label
    is matched on its local name.
    """
    return _search(conn, term, limit, is_class=True)


def search_individuals(
    conn: duckdb.DuckDBPyConnection,
    term: str,
    limit: int = 10,
) -> list[SearchHit]:
    """Individuals whose label contains ``term``, ranked like ``search_classes``."""
    return _search(conn, term, limit, is_class=False)


def instances(conn: duckdb.DuckDBPyConnection, class_iri: str) -> list[str]:
    """Subjects with an active ``rdf:type`` of ``class_iri``."""
    rows = conn.execute(
        """
        SELECT DISTINCT subject FROM triples
        WHERE predicate = ? AND object = ? AND object_type = ? AND retracted = 0
        ORDER BY subject
        """,
        [RDF_TYPE, class_iri, ObjectType.IRI.value],
    ).fetchall()
    return [row[0] for row in rows]


def superclasses(conn: duckdb.DuckDBPyConnection, class_iri: str) -> list[str]:
    """``class_iri`` followed by its ``rdfs:subClassOf`` ancestors, nearest first."""
    order = [class_iri]
    queue = deque([class_iri])
    while queue:
        current = queue.popleft()
        for parent in _objects(conn, current, RDFS_SUBCLASS_OF):
            if parent not in order:
                order.append(parent)
                queue.append(parent)
    return order


def applicable_properties(
    conn: duckdb.DuckDBPyConnection,
    class_iri: str,
) -> list[ApplicableProperty]:
    """
    Properties whose ``rdfs:domain`` is ``class_iri`` or a superclass.

    A property reachable through several classes is reported once, under
    the nearest one. Results are sorted by label.
    """
    found: dict[str, ApplicableProperty] = {}
    for source in superclasses(conn, class_iri):
        rows = conn.execute(
            """
            SELECT DISTINCT subject FROM triples
            WHERE predicate = ? AND object = ? AND object_type = ? AND retracted = 0
            ORDER BY subject
            """,
            [RDFS_DOMAIN, source, ObjectType.IRI.value],
        ).fetchall()
        for (prop,) in rows:
            if prop in found:
                continue
            ranges = _objects(conn, prop, RDFS_RANGE)
            range_iri = ranges[0] if ranges else None
            if range_iri is not None and (
                range_iri.startswith("xsd:") or range_iri in LITERAL_RANGES
            ):
                kind = "datatype"
            else:
                kind = "object"
            found[prop] = ApplicableProperty(
                id=prop,
                label=label(conn, prop) or local_name(prop),
                kind=kind,
                source_class=source,
                source_label=label(conn, source) or local_name(source),
                inherited=source != class_iri,
                range=range_iri,
                range_label=(label(conn, range_iri) or local_name(range_iri)) if range_iri else None,
                description=_first_literal(conn, prop, RDFS_COMMENT),
                functional=FUNCTIONAL_PROPERTY in _objects(conn, prop, RDF_TYPE),
            )
    return sorted(found.values(), key=lambda p: (p.label, p.id))


def origins(conn: duckdb.DuckDBPyConnection) -> list[Origin]:
    rows = conn.execute("SELECT id, name, description FROM origins ORDER BY id").fetchall()
    return [Origin(*row) for row in rows]


def origin_by_name(conn: duckdb.DuckDBPyConnection, name: str) -> Optional[Origin]:
    row = conn.execute(
        "SELECT id, name, description FROM origins WHERE name = ?", [name]
    ).fetchone()
    return Origin(*row) if row else None


def transaction(conn: duckdb.DuckDBPyConnection, tx: int) -> Optional[TransactionRecord]:
    row = conn.execute(
        "SELECT tx, origin, created_at FROM transactions WHERE tx = ?", [tx]
    ).fetchone()
    return TransactionRecord(*row) if row else None


def transactions(
    conn: duckdb.DuckDBPyConnection,
    limit: Optional[int] = None,
) -> list[TransactionRecord]:
    """Transactions, newest first."""
    sql = "SELECT tx, origin, created_at FROM transactions ORDER BY tx DESC"
    params: list = []
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return [TransactionRecord(*row) for row in conn.execute(sql, params).fetchall()]
