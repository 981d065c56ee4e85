"""
Database schema for the EAVTO store.

Tables:
- transactions:   one row per assert / retract batch (tx is the logical clock)
- origins:        provenance tags, unique by name
- triples:        the append-only log; only ``retracted`` ever changes (0 -> 1)
- retractions:    append-only tombstones (triple_id, tx) used for snapshots
- metadata:       schema_version, created_at, ontology_imported
- ontology_files: checksums of imported RDF files

All IRIs are stored compressed (``rdfs:label``). No foreign keys are
declared; the writer keeps references consistent.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import duckdb

from rdf_eavto.errors import StorageError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

WELL_KNOWN_ORIGINS: tuple[tuple[int, str, str], ...] = (
    (1, "rdf:core", "RDF/RDFS/OWL core ontology"),
    (2, "foundation:CurrentUser", "Data provided by the current user"),
    (3, "foundation:FOUNDATION", "Data collected automatically by the application"),
)

# Version 1 layout: the log without tombstones or file tracking.
_BASE_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS transactions (
        tx BIGINT PRIMARY KEY,
        origin VARCHAR NOT NULL,
        created_at BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS origins (
        id BIGINT PRIMARY KEY,
        name VARCHAR NOT NULL UNIQUE,
        description VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS triples (
        id BIGINT PRIMARY KEY,
        subject VARCHAR NOT NULL,
        predicate VARCHAR NOT NULL,
        object_type VARCHAR NOT NULL CHECK (object_type IN ('iri', 'literal', 'blank')),
        object VARCHAR,
        object_value VARCHAR,
        object_datatype VARCHAR,
        object_language VARCHAR,
        object_integer BIGINT,
        object_number DOUBLE,
        object_datetime BIGINT,
        object_boolean INTEGER,
        tx BIGINT NOT NULL,
        origin_id BIGINT NOT NULL,
        retracted INTEGER NOT NULL DEFAULT 0,
        created_at BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS metadata (
        key VARCHAR PRIMARY KEY,
        value VARCHAR NOT NULL,
        updated_at BIGINT NOT NULL
    )
    """,
]

_BASE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_triples_subject ON triples(subject)",
    "CREATE INDEX IF NOT EXISTS idx_triples_predicate ON triples(predicate)",
    "CREATE INDEX IF NOT EXISTS idx_triples_object ON triples(object)",
    "CREATE INDEX IF NOT EXISTS idx_triples_tx ON triples(tx)",
    "CREATE INDEX IF NOT EXISTS idx_triples_origin ON triples(origin_id)",
    "CREATE INDEX IF NOT EXISTS idx_triples_subject_predicate ON triples(subject, predicate)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_origin ON transactions(origin)",
]

_V2_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS retractions (
        triple_id BIGINT NOT NULL,
        tx BIGINT NOT NULL,
        origin_id BIGINT NOT NULL,
        created_at BIGINT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_retractions_triple ON retractions(triple_id)",
    "CREATE INDEX IF NOT EXISTS idx_retractions_tx ON retractions(tx)",
    """
    CREATE TABLE IF NOT EXISTS ontology_files (
        file_path VARCHAR PRIMARY KEY,
        file_name VARCHAR NOT NULL,
        last_modified BIGINT NOT NULL,
        last_imported BIGINT NOT NULL,
        checksum VARCHAR NOT NULL,
        triple_count BIGINT NOT NULL,
        origin VARCHAR NOT NULL
    )
    """,
]


def now_millis() -> int:
    return int(time.time() * 1000)


def table_exists(conn: duckdb.DuckDBPyConnection, name: str) -> bool:
    row = conn.execute(
        "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
        [name],
    ).fetchone()
    return row[0] > 0


def get_metadata(conn: duckdb.DuckDBPyConnection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", [key]).fetchone()
    return row[0] if row else None


def set_metadata(conn: duckdb.DuckDBPyConnection, key: str, value: str) -> None:
    now = now_millis()
    if get_metadata(conn, key) is None:
        conn.execute(
            "INSERT INTO metadata (key, value, updated_at) VALUES (?, ?, ?)",
            [key, value, now],
        )
    else:
        conn.execute(
            "UPDATE metadata SET value = ?, updated_at = ? WHERE key = ?",
            [value, now, key],
        )


def schema_version(conn: duckdb.DuckDBPyConnection) -> int:
    """Stored schema version, 0 for an empty database."""
    if not table_exists(conn, "metadata"):
        return 0
    value = get_metadata(conn, "schema_version")
    return int(value) if value is not None else 0


def create_base_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the version 1 layout."""
    for statement in _BASE_TABLES + _BASE_INDEXES:
        conn.execute(statement)
    now = str(now_millis())
    set_metadata(conn, "schema_version", "1")
    set_metadata(conn, "created_at", now)
    set_metadata(conn, "ontology_imported", "false")


def seed_origins(conn: duckdb.DuckDBPyConnection) -> None:
    for origin_id, name, description in WELL_KNOWN_ORIGINS:
        exists = conn.execute(
            "SELECT COUNT(*) FROM origins WHERE name = ?", [name]
        ).fetchone()[0]
        if not exists:
            conn.execute(
                "INSERT INTO origins (id, name, description) VALUES (?, ?, ?)",
                [origin_id, name, description],
            )


def _migrate_1_to_2(conn: duckdb.DuckDBPyConnection) -> None:
    """
    Add retraction tombstones and file tracking.

    Rows retracted before this migration have no recorded retraction tx;
    they get a tombstone at the latest transaction, so snapshots taken
    before that point still show them.
    """
    for statement in _V2_TABLES:
        conn.execute(statement)
    latest = conn.execute("SELECT COALESCE(MAX(tx), 0) FROM transactions").fetchone()[0]
    backfilled = conn.execute(
        """
        INSERT INTO retractions (triple_id, tx, origin_id, created_at)
        SELECT id, CAST(? AS BIGINT), origin_id, CAST(? AS BIGINT)
        FROM triples
        WHERE retracted = 1
        """,
        [latest, now_millis()],
    ).fetchone()
    logger.info(
        "Backfilled %s retraction tombstone(s) at tx %s",
        backfilled[0] if backfilled else 0,
        latest,
    )


MIGRATIONS: dict[int, Callable[[duckdb.DuckDBPyConnection], None]] = {
    1: _migrate_1_to_2,
}


def ensure_schema(conn: duckdb.DuckDBPyConnection, seed: bool = True) -> bool:
    """
    Create or migrate the schema. Must run inside a storage transaction.

    Returns True when the database was created from scratch.
    """
    version = schema_version(conn)
    created = version == 0

    if version > SCHEMA_VERSION:
        raise StorageError(
            f"Database schema version {version} is newer than supported "
            f"version {SCHEMA_VERSION}"
        )

    if created:
        logger.info("Creating schema version %s", SCHEMA_VERSION)
        create_base_schema(conn)
        version = 1

    while version < SCHEMA_VERSION:
        if not created:
            logger.info("Migrating schema %s -> %s", version, version + 1)
        MIGRATIONS[version](conn)
        version += 1
        set_metadata(conn, "schema_version", str(version))

    if created and seed:
        seed_origins(conn)

    return created
