"""Tests for database creation, seeding and migration."""

import duckdb
import pytest

from rdf_eavto import StoreConfig, StorageError, TripleStore
from rdf_eavto.errors import NotInitializedError
from rdf_eavto.storage import SCHEMA_VERSION
from rdf_eavto.storage.connection import Backend
from rdf_eavto.storage.schema import (
    WELL_KNOWN_ORIGINS,
    create_base_schema,
    get_metadata,
    schema_version,
    seed_origins,
    set_metadata,
    table_exists,
)

from conftest import fnd


def _tables(conn):
    return {
        row[0]
        for row in conn.execute(
            "SELECT table_name FROM information_schema.tables"
        ).fetchall()
    }


class TestCreate:
    """Creating a new database."""

    def test_fresh_database(self, db_path):
        """Opening a missing file creates the full schema."""
        backend = Backend(StoreConfig(db_path=db_path)).open()
        try:
            assert backend.created
            assert db_path.exists()
            with backend.read() as conn:
                assert {"triples", "transactions", "origins", "metadata",
                        "retractions", "ontology_files"} <= _tables(conn)
                assert schema_version(conn) == SCHEMA_VERSION
                assert get_metadata(conn, "ontology_imported") == "false"
                assert get_metadata(conn, "created_at") is not None
        finally:
            backend.close()

    def test_creates_parent_directory(self, temp_dir):
        """Missing parent directories are created."""
        path = temp_dir / "nested" / "dir" / "eavto.duckdb"
        with TripleStore(StoreConfig(db_path=path)) as store:
            assert store.created
        assert path.exists()

    def test_reopen_is_not_created(self, db_path):
        """An existing file is opened, not recreated."""
        with TripleStore(db_path=db_path):
            pass
        with TripleStore(db_path=db_path) as store:
            assert not store.created

    def test_in_memory(self):
        """:memory: gives an empty working store."""
        with TripleStore(db_path=":memory:") as store:
            assert store.created
            assert store.stats().total_triples == 0


class TestSeeding:
    """Well-known origins seeded on creation."""

    def test_well_known_origins(self, store):
        """The seeded origins take ids 1 to 3."""
        origins = store.list_origins()
        assert [(o.id, o.name) for o in origins] == [
            (origin_id, name) for origin_id, name, _ in WELL_KNOWN_ORIGINS
        ]

    def test_seed_is_idempotent(self, store, db_path):
        """Reopening does not seed twice."""
        store.close()
        store.open()
        assert len(store.list_origins()) == len(WELL_KNOWN_ORIGINS)

    def test_seeding_disabled(self, db_path):
        """seed_origins=False leaves the table empty."""
        with TripleStore(StoreConfig(db_path=db_path, seed_origins=False)) as store:
            assert store.list_origins() == []

    def test_user_origin_ids_follow_seeded(self, store):
        """The first user origin gets the next id."""
        store.assert_triples([], origin="setup")
        assert store.get_origin("setup").id == len(WELL_KNOWN_ORIGINS) + 1


class TestMetadata:
    """Key/value metadata table."""

    def test_set_updates_existing_key(self, store):
        """Setting a key twice keeps one row."""
        with store._backend.transaction() as conn:
            set_metadata(conn, "custom", "1")
            set_metadata(conn, "custom", "2")
            assert get_metadata(conn, "custom") == "2"
            count = conn.execute(
                "SELECT COUNT(*) FROM metadata WHERE key = 'custom'"
            ).fetchone()[0]
        assert count == 1


class TestMigration:
    """Upgrading older schema versions."""

    def _make_v1_database(self, db_path):
        """A version 1 file with one live and one retracted row."""
        conn = duckdb.connect(str(db_path))
        conn.begin()
        create_base_schema(conn)
        seed_origins(conn)
        conn.execute("INSERT INTO transactions VALUES (1, 'setup', 0), (2, 'setup', 0)")
        conn.execute("INSERT INTO origins VALUES (4, 'setup', NULL)")
        conn.execute(
            """
            INSERT INTO triples (id, subject, predicate, object_type, object_value,
                                 object_datatype, tx, origin_id, retracted, created_at)
            VALUES
                (1, 'foundation:A', 'foundation:name', 'literal', 'old', 'xsd:string', 1, 4, 1, 0),
                (2, 'foundation:A', 'foundation:name', 'literal', 'new', 'xsd:string', 2, 4, 0, 0)
            """
        )
        conn.commit()
        assert not table_exists(conn, "retractions")
        conn.close()

    def test_migrates_v1(self, db_path):
        """Retracted v1 rows get tombstones at the next tx."""
        self._make_v1_database(db_path)
        backend = Backend(StoreConfig(db_path=db_path)).open()
        try:
            assert not backend.created
            with backend.read() as conn:
                assert schema_version(conn) == SCHEMA_VERSION
                tombstones = conn.execute(
                    "SELECT triple_id, tx FROM retractions"
                ).fetchall()
            assert tombstones == [(1, 2)]
        finally:
            backend.close()

    def test_migrated_history_is_queryable(self, db_path):
        """Queries work on a migrated file."""
        self._make_v1_database(db_path)
        with TripleStore(db_path=db_path) as store:
            current = store.get_by_entity(fnd("A"))
            assert [t.object_value for t in current] == ["new"]
            assert [e.tx for e in store.get_history(fnd("A"))] == [1, 2]

    def test_newer_schema_is_rejected(self, db_path):
        """A schema newer than the code refuses to open."""
        with TripleStore(db_path=db_path) as store:
            with store._backend.transaction() as conn:
                set_metadata(conn, "schema_version", str(SCHEMA_VERSION + 1))
        with pytest.raises(StorageError, match="newer"):
            TripleStore(db_path=db_path).open()


class TestLifecycle:
    """Open and close state of the store."""

    def test_not_initialized(self, db_path):
        """Queries before open raise NotInitializedError."""
        store = TripleStore(db_path=db_path)
        with pytest.raises(NotInitializedError, match="Database not initialized"):
            store.get_by_entity(fnd("A"))

    def test_closed_store(self, store):
        """Queries after close raise NotInitializedError."""
        store.close()
        assert not store.is_open
        with pytest.raises(NotInitializedError):
            store.stats()

    def test_close_twice(self, store):
        """Closing twice is harmless."""
        store.close()
        store.close()

    def test_db_path_leaves_config_untouched(self, temp_dir):
        """The db_path shortcut does not modify the caller's config."""
        config = StoreConfig(db_path=temp_dir / "configured.duckdb")
        store = TripleStore(config, db_path=temp_dir / "override.duckdb")
        assert store.path == temp_dir / "override.duckdb"
        assert config.db_path == temp_dir / "configured.duckdb"
