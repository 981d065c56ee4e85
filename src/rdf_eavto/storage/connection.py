"""
Backend handle for the embedded DuckDB database.

One connection per database, guarded by a re-entrant lock: every store
operation holds the lock for its whole duration, so writers are exclusive
and readers observe everything a finished writer did.

Usage:
    backend = Backend(StoreConfig(db_path="graph.duckdb"))
    backend.open()
    with backend.transaction() as conn:
        conn.execute("INSERT ...")
    # Commits on clean exit, rolls back on exception
    with backend.read() as conn:
        conn.execute("SELECT ...").fetchall()
    backend.close()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import Generator, Optional, Union

import duckdb

from rdf_eavto.config import MEMORY_PATH, StoreConfig
from rdf_eavto.errors import NotInitializedError, StorageError
from rdf_eavto.storage.schema import ensure_schema

logger = logging.getLogger(__name__)


class Backend:
    """Owns the DuckDB connection and its storage transactions."""

    def __init__(self, config: Optional[StoreConfig] = None):
        self._config = config or StoreConfig()
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = RLock()
        self._in_transaction = False
        self._created = False

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def path(self) -> Union[str, Path]:
        return self._config.resolve_db_path()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def created(self) -> bool:
        """True when ``open()`` created a fresh database."""
        return self._created

    def open(self) -> "Backend":
        """
        Open (and if needed create and migrate) the database.

        Schema creation and migration run in one exclusive transaction
        before any user operation.
        """
        with self._lock:
            if self._conn is not None:
                return self

            path = self.path
            if path != MEMORY_PATH:
                Path(path).parent.mkdir(parents=True, exist_ok=True)

            duck_config = {}
            if self._config.threads:
                duck_config["threads"] = self._config.threads

            try:
                self._conn = duckdb.connect(str(path), config=duck_config)
            except duckdb.Error as exc:
                raise StorageError(f"Cannot open database at {path}: {exc}") from exc

            try:
                with self.transaction() as conn:
                    self._created = ensure_schema(conn, seed=self._config.seed_origins)
            except Exception:
                self._conn.close()
                self._conn = None
                raise

            logger.info(
                "%s database at %s",
                "Created" if self._created else "Opened",
                path,
            )
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None
                logger.debug("Closed database at %s", self.path)

    def _require_conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise NotInitializedError()
        return self._conn

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Run a block inside one storage transaction.

        Commits on clean exit. Any exception rolls back; DuckDB errors are
        re-raised as StorageError, domain errors unchanged. Nested use joins
        the enclosing transaction.
        """
        with self._lock:
            conn = self._require_conn()
            if self._in_transaction:
                yield conn
                return

            self._in_transaction = True
            try:
                conn.begin()
                try:
                    yield conn
                except BaseException:
                    conn.rollback()
                    raise
                conn.commit()
            except duckdb.Error as exc:
                raise StorageError(str(exc)) from exc
            finally:
                self._in_transaction = False

    @contextmanager
    def read(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Hold the connection for a read-only block."""
        with self._lock:
            conn = self._require_conn()
            try:
                yield conn
            except duckdb.Error as exc:
                raise StorageError(str(exc)) from exc

    def __enter__(self) -> "Backend":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


