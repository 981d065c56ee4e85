"""
TripleStore: the caller-facing API of the EAVTO store.

Callers speak full IRIs. The store compresses every IRI on the way in,
runs the storage operation under the backend lock, and expands every IRI
on the way out. Nothing below this module sees an expanded IRI.

Example:
    >>> from rdf_eavto import IRI, Triple, TripleStore
    >>> FOUNDATION = "http://foundation.local/ontology/"
    >>> with TripleStore(db_path=":memory:") as store:
    ...     tx = store.assert_triples(
    ...         [Triple.of(FOUNDATION + "Alice", FOUNDATION + "name", "Alice")],
    ...         origin="setup",
    ...     )
    ...     store.get_by_entity(FOUNDATION + "Alice").count
    1
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional, Union

from rdf_eavto.config import StoreConfig
from rdf_eavto.models import (
    ApplicableProperty,
    HistoryEntry,
    Origin,
    ResultSet,
    RetractPattern,
    SearchHit,
    TransactionRecord,
    Triple,
)
from rdf_eavto.namespaces import compress, expand
from rdf_eavto.storage import queries, stats, writer
from rdf_eavto.storage.connection import Backend
from rdf_eavto.storage.stats import DbStats, NodeStats
from rdf_eavto.storage.turtle import ImportStats, RdfFile, import_rdf_file

logger = logging.getLogger(__name__)


class TripleStore:
    """
    Append-only EAVTO triple store over an embedded DuckDB file.

    Args:
        config: Store configuration. Defaults to ``StoreConfig()``.
        db_path: Shortcut overriding ``config.db_path``.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        db_path: Optional[Union[str, Path]] = None,
    ):
        config = config or StoreConfig()
        if db_path is not None:
            config = replace(config, db_path=db_path)
        self._backend = Backend(config)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def config(self) -> StoreConfig:
        return self._backend.config

    @property
    def path(self) -> Union[str, Path]:
        return self._backend.path

    @property
    def is_open(self) -> bool:
        return self._backend.is_open

    @property
    def created(self) -> bool:
        """True when the last ``open()`` created a fresh database."""
        return self._backend.created

    def open(self) -> "TripleStore":
        self._backend.open()
        return self

    def close(self) -> None:
        self._backend.close()

    def __enter__(self) -> "TripleStore":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    # =========================================================================
    # Writer
    # =========================================================================

    def assert_triples(self, triples: Iterable[Triple], origin: str) -> int:
        """
        Append a batch of triples under one transaction.

        Returns the new tx. Raises ValidationError (nothing written) when a
        typed literal does not parse.
        """
        batch = [t.map_iris(compress) for t in triples]
        with self._backend.transaction() as conn:
            return writer.assert_triples(conn, batch, origin)

    def retract_triples(self, patterns: Iterable[RetractPattern], origin: str) -> int:
        """Retract every active row matching the patterns. Returns the tx."""
        batch = [p.map_iris(compress) for p in patterns]
        with self._backend.transaction() as conn:
            return writer.retract_triples(conn, batch, origin)

    def replace(self, triples: Iterable[Triple], origin: str) -> int:
        """
        Update: supersede the current values of each (subject, predicate)
        in the batch with the batch's values, under one tx.
        """
        batch = [t.map_iris(compress) for t in triples]
        with self._backend.transaction() as conn:
            return writer.replace_triples(conn, batch, origin)

    def retract_origin(self, origin_name: str, origin: str) -> int:
        """Retract every active row asserted under ``origin_name``."""
        with self._backend.transaction() as conn:
            return writer.retract_origin(conn, origin_name, origin)

    def import_file(self, path: Union[str, Path], origin: Optional[str] = None) -> ImportStats:
        """
        Import a Turtle, N-Triples or RDF/XML file (``.gz`` allowed).

        Unchanged files are skipped; changed files replace their previous
        import.
        """
        rdf_file = RdfFile.load(path)
        with self._backend.transaction() as conn:
            return import_rdf_file(conn, rdf_file, origin)

    # =========================================================================
    # Reader
    # =========================================================================

    def get_by_entity(self, subject: str, include_retracted: bool = False) -> ResultSet:
        with self._backend.read() as conn:
            result = queries.by_entity(conn, compress(subject), include_retracted)
        return result.map_iris(expand)

    def get_by_predicate(self, predicate: str, include_retracted: bool = False) -> ResultSet:
        with self._backend.read() as conn:
            result = queries.by_predicate(conn, compress(predicate), include_retracted)
        return result.map_iris(expand)

    def get_by_entity_predicate(
        self,
        subject: str,
        predicate: str,
        include_retracted: bool = False,
    ) -> ResultSet:
        with self._backend.read() as conn:
            result = queries.by_entity_predicate(
                conn, compress(subject), compress(predicate), include_retracted
            )
        return result.map_iris(expand)

    def get_by_origin(self, origin_id: int, include_retracted: bool = False) -> ResultSet:
        with self._backend.read() as conn:
            result = queries.by_origin(conn, origin_id, include_retracted)
        return result.map_iris(expand)

    def get_at_time(self, subject: str, tx: int) -> ResultSet:
        """Snapshot of ``subject`` as of transaction ``tx``."""
        with self._backend.read() as conn:
            result = queries.at_time(conn, compress(subject), tx)
        return result.map_iris(expand)

    def get_history(self, subject: str) -> list[HistoryEntry]:
        with self._backend.read() as conn:
            entries = queries.history(conn, compress(subject))
        return [entry.map_iris(expand) for entry in entries]

    def get_backlinks(self, target: str) -> ResultSet:
        with self._backend.read() as conn:
            result = queries.backlinks(conn, compress(target))
        return result.map_iris(expand)

    def get_label(self, subject: str) -> Optional[str]:
        with self._backend.read() as conn:
            return queries.label(conn, compress(subject))

    def get_icon(self, subject: str) -> Optional[str]:
        with self._backend.read() as conn:
            return queries.icon(conn, compress(subject))

    def is_instance(self, subject: str) -> bool:
        with self._backend.read() as conn:
            return queries.is_instance(conn, compress(subject))

    def search_classes(self, term: str, limit: int = 10) -> list[SearchHit]:
        """Classes whose label contains ``term``, best matches first."""
        with self._backend.read() as conn:
            hits = queries.search_classes(conn, term, limit)
        return [hit.map_iris(expand) for hit in hits]

    def search_individuals(self, term: str, limit: int = 10) -> list[SearchHit]:
        with self._backend.read() as conn:
            hits = queries.search_individuals(conn, term, limit)
        return [hit.map_iris(expand) for hit in hits]

    def get_instances(self, class_iri: str) -> list[str]:
        with self._backend.read() as conn:
            subjects = queries.instances(conn, compress(class_iri))
        return [expand(s) for s in subjects]

    def get_applicable_properties(self, class_iri: str) -> list[ApplicableProperty]:
        """Properties whose domain is ``class_iri`` or one of its superclasses."""
        with self._backend.read() as conn:
            props = queries.applicable_properties(conn, compress(class_iri))
        return [prop.map_iris(expand) for prop in props]

    def list_origins(self) -> list[Origin]:
        with self._backend.read() as conn:
            return queries.origins(conn)

    def get_origin(self, name: str) -> Optional[Origin]:
        with self._backend.read() as conn:
            return queries.origin_by_name(conn, name)

    def get_transaction(self, tx: int) -> Optional[TransactionRecord]:
        with self._backend.read() as conn:
            return queries.transaction(conn, tx)

    def list_transactions(self, limit: Optional[int] = None) -> list[TransactionRecord]:
        with self._backend.read() as conn:
            return queries.transactions(conn, limit)

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> DbStats:
        with self._backend.read() as conn:
            return stats.db_stats(conn)

    def node_stats(self, subject: str) -> NodeStats:
        with self._backend.read() as conn:
            return stats.node_stats(conn, compress(subject))
