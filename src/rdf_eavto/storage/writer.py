"""
Single-writer path: assertions and retractions.

Every public function here must run inside one storage transaction
(``Backend.transaction()``) and works on compressed IRIs only. Each call:

1. appends a transactions row and captures its ``tx``
2. gets or creates the origin row
3. appends triples rows and/or retraction tombstones
4. validates typed-column coherence before the caller commits

Literal parse failures and coherence failures raise ValidationError; the
enclosing transaction then rolls back the whole batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import duckdb

from rdf_eavto.errors import ValidationError, Violation
from rdf_eavto.models import (
    LANG_STRING,
    ObjectColumns,
    RetractPattern,
    TRIPLE_COLUMNS,
    Triple,
    TripleRow,
    Value,
)
from rdf_eavto.storage.schema import now_millis
from rdf_eavto.storage.xsd import (
    FAST_PATH_COLUMNS,
    INT64_MAX,
    INT64_MIN,
    LiteralParseError,
    parse_typed,
)

logger = logging.getLogger(__name__)

_INSERT_COLUMNS = TRIPLE_COLUMNS
_INSERT_SQL = (
    f"INSERT INTO triples ({', '.join(_INSERT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _INSERT_COLUMNS)})"
)
_SELECT_SQL = f"SELECT {', '.join(TRIPLE_COLUMNS)} FROM triples"


@dataclass(frozen=True)
class TxContext:
    """Identity of the transaction being written."""
    tx: int
    origin_id: int
    created_at: int


# =============================================================================
# Transactions and origins
# =============================================================================

def begin_tx(conn: duckdb.DuckDBPyConnection, origin: str) -> TxContext:
    """Append a transactions row and resolve the origin."""
    created_at = now_millis()
    tx = conn.execute(
        "SELECT COALESCE(MAX(tx), 0) + 1 FROM transactions"
    ).fetchone()[0]
    conn.execute(
        "INSERT INTO transactions (tx, origin, created_at) VALUES (?, ?, ?)",
        [tx, origin, created_at],
    )
    origin_id = get_or_create_origin(conn, origin)
    return TxContext(tx=tx, origin_id=origin_id, created_at=created_at)


def get_or_create_origin(
    conn: duckdb.DuckDBPyConnection,
    name: str,
    description: Optional[str] = None,
) -> int:
    """Origin id for ``name``, creating the row on first use."""
    row = conn.execute("SELECT id FROM origins WHERE name = ?", [name]).fetchone()
    if row is not None:
        return row[0]
    origin_id = conn.execute("SELECT COALESCE(MAX(id), 0) + 1 FROM origins").fetchone()[0]
    conn.execute(
        "INSERT INTO origins (id, name, description) VALUES (?, ?, ?)",
        [origin_id, name, description],
    )
    logger.debug("Created origin %s (%r)", origin_id, name)
    return origin_id


# =============================================================================
# Encoding
# =============================================================================

def encode_object(triple: Triple) -> ObjectColumns:
    """
    Derive the storage columns for a triple's object.

    Generic literals with a fast-path datatype are parsed into their typed
    column, and a language tag always stores datatype ``rdf:langString``.
    Raises LiteralParseError when the lexical form does not fit.
    """
    columns = triple.object.columns()
    if columns.object_language is not None:
        return columns._replace(object_datatype=LANG_STRING)
    if columns.object_integer is not None and not INT64_MIN <= columns.object_integer <= INT64_MAX:
        raise LiteralParseError(f"integer out of 64-bit range: {columns.object_integer}")
    if columns.object_value is None or columns.object_datatype is None:
        return columns
    if any(getattr(columns, name) is not None for name in FAST_PATH_COLUMNS):
        return columns
    parsed = parse_typed(columns.object_value, columns.object_datatype)
    if parsed is None:
        return columns
    column, value = parsed
    return columns._replace(**{column: value})


def canonical_value(value: Value) -> Value:
    """
    The value as it would read back after storage.

    ``Literal("5", "xsd:integer")`` becomes ``Integer(5)``; literals that
    fail to parse are returned unchanged and match nothing typed.
    """
    try:
        return encode_object(Triple("", "", value)).decode()
    except LiteralParseError:
        return value


def _encode_batch(
    triples: Sequence[Triple],
    ctx: TxContext,
    first_id: int,
) -> list[tuple]:
    records = []
    violations = []
    for offset, triple in enumerate(triples):
        if not triple.subject or not triple.predicate:
            violations.append(Violation(
                triple.subject, triple.predicate, triple.object.datatype,
                triple.object.lexical, "subject and predicate must not be empty",
            ))
            continue
        try:
            columns = encode_object(triple)
        except LiteralParseError as exc:
            violations.append(Violation(
                triple.subject, triple.predicate, triple.object.datatype,
                triple.object.lexical, str(exc),
            ))
            continue
        values = columns._asdict()
        values.update(
            id=first_id + offset,
            subject=triple.subject,
            predicate=triple.predicate,
            tx=ctx.tx,
            origin_id=ctx.origin_id,
            retracted=0,
            created_at=ctx.created_at,
        )
        records.append(tuple(values[name] for name in _INSERT_COLUMNS))

    if violations:
        _log_violations(violations)
        raise ValidationError(violations)
    return records


def _log_violations(violations: list[Violation]) -> None:
    logger.warning("Rejecting batch with %d invalid literal(s)", len(violations))
    for index, violation in enumerate(violations[:5], start=1):
        logger.warning("  #%d: %s", index, violation)
    if len(violations) > 5:
        logger.warning("  ... and %d more", len(violations) - 5)


def _insert_rows(
    conn: duckdb.DuckDBPyConnection,
    triples: Sequence[Triple],
    ctx: TxContext,
) -> int:
    if not triples:
        return 0
    first_id = conn.execute("SELECT COALESCE(MAX(id), 0) + 1 FROM triples").fetchone()[0]
    records = _encode_batch(triples, ctx, first_id)
    conn.executemany(_INSERT_SQL, records)
    return len(records)


# =============================================================================
# Validation
# =============================================================================

def _coherence_condition() -> tuple[str, list[str]]:
    """
    SQL condition matching rows whose typed columns disagree with their
    datatype: a fast-path datatype with its column NULL, or a typed column
    populated for any other datatype.
    """
    clauses = []
    params: list[str] = []
    for column, datatypes in FAST_PATH_COLUMNS.items():
        marks = ", ".join("?" for _ in datatypes)
        clauses.append(f"(object_datatype IN ({marks}) AND {column} IS NULL)")
        params.extend(datatypes)
        clauses.append(
            f"((object_datatype IS NULL OR object_datatype NOT IN ({marks})) "
            f"AND {column} IS NOT NULL)"
        )
        params.extend(datatypes)
    return " OR ".join(clauses), params


_COHERENCE_SQL, _COHERENCE_PARAMS = _coherence_condition()


def find_incoherent_rows(
    conn: duckdb.DuckDBPyConnection,
    tx: Optional[int] = None,
) -> list[TripleRow]:
    """Rows violating typed-column coherence, optionally limited to one tx."""
    sql = f"{_SELECT_SQL} WHERE ({_COHERENCE_SQL})"
    params: list = list(_COHERENCE_PARAMS)
    if tx is not None:
        sql += " AND tx = ?"
        params.append(tx)
    rows = conn.execute(sql + " ORDER BY id", params).fetchall()
    return [TripleRow.from_record(row) for row in rows]


def validate_tx(conn: duckdb.DuckDBPyConnection, tx: int) -> None:
    """Post-condition scan run before commit."""
    bad = find_incoherent_rows(conn, tx)
    if not bad:
        return
    violations = [
        Violation(
            row.subject, row.predicate, row.object_datatype, row.object_value,
            "typed column does not match datatype",
        )
        for row in bad
    ]
    _log_violations(violations)
    raise ValidationError(violations)


# =============================================================================
# Public write operations
# =============================================================================

def assert_triples(
    conn: duckdb.DuckDBPyConnection,
    triples: Sequence[Triple],
    origin: str,
) -> int:
    """Append a batch of triples under one tx. Returns the tx."""
    ctx = begin_tx(conn, origin)
    inserted = _insert_rows(conn, triples, ctx)
    validate_tx(conn, ctx.tx)
    logger.debug("tx %s: asserted %d triple(s) from %r", ctx.tx, inserted, origin)
    return ctx.tx


def _matching_rows(
    conn: duckdb.DuckDBPyConnection,
    pattern: RetractPattern,
) -> list[TripleRow]:
    rows = conn.execute(
        f"{_SELECT_SQL} WHERE subject = ? AND predicate = ? AND retracted = 0 ORDER BY id",
        [pattern.subject, pattern.predicate],
    ).fetchall()
    matches = [TripleRow.from_record(row) for row in rows]
    if pattern.value is not None:
        wanted = canonical_value(pattern.value)
        matches = [row for row in matches if row.value == wanted]
    return matches


def _retract_ids(
    conn: duckdb.DuckDBPyConnection,
    ids: Iterable[int],
    ctx: TxContext,
) -> int:
    ids = sorted(set(ids))
    if not ids:
        return 0
    conn.executemany(
        "UPDATE triples SET retracted = 1 WHERE id = ? AND retracted = 0",
        [(triple_id,) for triple_id in ids],
    )
    conn.executemany(
        "INSERT INTO retractions (triple_id, tx, origin_id, created_at) VALUES (?, ?, ?, ?)",
        [(triple_id, ctx.tx, ctx.origin_id, ctx.created_at) for triple_id in ids],
    )
    return len(ids)


def _retract_patterns(
    conn: duckdb.DuckDBPyConnection,
    patterns: Iterable[RetractPattern],
    ctx: TxContext,
) -> int:
    ids: list[int] = []
    for pattern in patterns:
        ids.extend(row.id for row in _matching_rows(conn, pattern))
    return _retract_ids(conn, ids, ctx)


def retract_triples(
    conn: duckdb.DuckDBPyConnection,
    patterns: Sequence[RetractPattern],
    origin: str,
) -> int:
    """
    Retract every active row matching the patterns. Returns the tx.

    Patterns matching nothing are not an error; the transaction row is
    still written so the retraction exists on the timeline.
    """
    ctx = begin_tx(conn, origin)
    retracted = _retract_patterns(conn, patterns, ctx)
    logger.debug("tx %s: retracted %d row(s) for %r", ctx.tx, retracted, origin)
    return ctx.tx


def replace_triples(
    conn: duckdb.DuckDBPyConnection,
    triples: Sequence[Triple],
    origin: str,
) -> int:
    """
    Update: retract the active values of every (subject, predicate) in the
    batch, then assert the batch, all under one tx. Returns the tx.
    """
    ctx = begin_tx(conn, origin)
    keys = dict.fromkeys((t.subject, t.predicate) for t in triples)
    retracted = _retract_patterns(
        conn, (RetractPattern(s, p) for s, p in keys), ctx
    )
    inserted = _insert_rows(conn, triples, ctx)
    validate_tx(conn, ctx.tx)
    logger.debug(
        "tx %s: replaced %d row(s) with %d from %r", ctx.tx, retracted, inserted, origin
    )
    return ctx.tx


def retract_origin_rows(
    conn: duckdb.DuckDBPyConnection,
    ctx: TxContext,
    origin_name: str,
) -> int:
    """Retract, within ``ctx``, every active row asserted under ``origin_name``."""
    rows = conn.execute(
        """
        SELECT t.id
        FROM triples t
        JOIN origins o ON o.id = t.origin_id
        WHERE o.name = ? AND t.retracted = 0
        """,
        [origin_name],
    ).fetchall()
    return _retract_ids(conn, (row[0] for row in rows), ctx)


def retract_origin(
    conn: duckdb.DuckDBPyConnection,
    origin_name: str,
    origin: str,
) -> int:
    """Retract everything asserted under ``origin_name``. Returns the tx."""
    ctx = begin_tx(conn, origin)
    retracted = retract_origin_rows(conn, ctx, origin_name)
    logger.debug("tx %s: retracted %d row(s) of origin %r", ctx.tx, retracted, origin_name)
    return ctx.tx


def insert_triples(
    conn: duckdb.DuckDBPyConnection,
    triples: Sequence[Triple],
    ctx: TxContext,
) -> int:
    """Append rows within an already open ``ctx`` and validate them."""
    inserted = _insert_rows(conn, triples, ctx)
    validate_tx(conn, ctx.tx)
    return inserted
