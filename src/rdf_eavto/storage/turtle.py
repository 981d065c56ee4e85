"""
RDF file import.

Parses Turtle, N-Triples or RDF/XML (optionally gzipped) with Oxigraph's
parser and appends the triples as one transaction. Imported files are
tracked in ``ontology_files`` by SHA-256 checksum:

- unchanged file: skipped, nothing written
- changed file: the previous import's rows are retracted and the new
  content asserted, both under the same tx
"""

from __future__ import annotations

import gzip
import hashlib
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional, Union

import duckdb
from pyoxigraph import BlankNode, Literal as OxLiteral, NamedNode, RdfFormat, parse

from rdf_eavto.errors import ImportFailedError
from rdf_eavto.models import IRI, Blank, Literal, Triple, Value
from rdf_eavto.namespaces import compress
from rdf_eavto.storage.schema import now_millis, set_metadata
from rdf_eavto.storage.writer import begin_tx, insert_triples, retract_origin_rows

logger = logging.getLogger(__name__)

# suffix -> (parser format, display name)
FORMATS: dict[str, tuple[RdfFormat, str]] = {
    ".ttl": (RdfFormat.TURTLE, "Turtle"),
    ".turtle": (RdfFormat.TURTLE, "Turtle"),
    ".nt": (RdfFormat.N_TRIPLES, "N-Triples"),
    ".ntriples": (RdfFormat.N_TRIPLES, "N-Triples"),
    ".rdf": (RdfFormat.RDF_XML, "RDF/XML"),
    ".owl": (RdfFormat.RDF_XML, "RDF/XML"),
}


@dataclass
class ImportStats:
    """Outcome of one file import."""
    file: str
    format: str
    triples_processed: int
    tx: Optional[int] = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def detect_format(path: Path) -> tuple[RdfFormat, str, bool]:
    """Parser format, display name and gzip flag from the file suffixes."""
    name = path.name.lower()
    gzipped = name.endswith(".gz")
    if gzipped:
        name = name[:-3]
    suffix = Path(name).suffix
    try:
        rdf_format, label = FORMATS[suffix]
    except KeyError:
        raise ImportFailedError(f"Unsupported RDF file type: {path.name}") from None
    return rdf_format, label, gzipped


@dataclass
class RdfFile:
    """A file read from disk, not yet parsed."""
    path: Path
    rdf_format: RdfFormat
    format_name: str
    content: bytes
    checksum: str
    last_modified: int

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RdfFile":
        path = Path(path).resolve()
        rdf_format, label, gzipped = detect_format(path)
        try:
            raw = path.read_bytes()
            content = gzip.decompress(raw) if gzipped else raw
            last_modified = int(path.stat().st_mtime * 1000)
        except (OSError, EOFError) as exc:
            raise ImportFailedError(f"Cannot read {path}: {exc}") from exc
        return cls(
            path=path,
            rdf_format=rdf_format,
            format_name=label,
            content=content,
            checksum=hashlib.sha256(raw).hexdigest(),
            last_modified=last_modified,
        )

    def parse(self) -> list[Triple]:
        """Parse into triples with compressed IRIs."""
        triples = []
        skipped = 0
        try:
            for quad in parse(self.content, self.rdf_format, base_iri=self.path.as_uri()):
                subject = _subject_label(quad.subject)
                obj = _object_value(quad.object)
                if subject is None or obj is None:
                    skipped += 1
                    continue
                triples.append(Triple(subject, compress(quad.predicate.value), obj))
        except (SyntaxError, ValueError) as exc:
            raise ImportFailedError(f"Cannot parse {self.name}: {exc}") from exc
        if skipped:
            logger.warning("Skipped %d quoted triple(s) in %s", skipped, self.name)
        return triples


def _subject_label(term) -> Optional[str]:
    if isinstance(term, NamedNode):
        return compress(term.value)
    if isinstance(term, BlankNode):
        return f"_:{term.value}"
    return None


def _object_value(term) -> Optional[Value]:
    if isinstance(term, NamedNode):
        return IRI(compress(term.value))
    if isinstance(term, BlankNode):
        return Blank(f"_:{term.value}")
    if isinstance(term, OxLiteral):
        return Literal(term.value, compress(term.datatype.value), term.language)
    return None


# =============================================================================
# File tracking
# =============================================================================

def tracked_file(conn: duckdb.DuckDBPyConnection, path: Path) -> Optional[dict[str, Any]]:
    row = conn.execute(
        """
        SELECT file_path, file_name, last_modified, last_imported, checksum,
               triple_count, origin
        FROM ontology_files WHERE file_path = ?
        """,
        [str(path)],
    ).fetchone()
    if row is None:
        return None
    keys = (
        "file_path", "file_name", "last_modified", "last_imported",
        "checksum", "triple_count", "origin",
    )
    return dict(zip(keys, row))


def _track_file(
    conn: duckdb.DuckDBPyConnection,
    rdf_file: RdfFile,
    triple_count: int,
    origin: str,
    exists: bool,
) -> None:
    now = now_millis()
    if exists:
        conn.execute(
            """
            UPDATE ontology_files
            SET file_name = ?, last_modified = ?, last_imported = ?, checksum = ?,
                triple_count = ?, origin = ?
            WHERE file_path = ?
            """,
            [rdf_file.name, rdf_file.last_modified, now, rdf_file.checksum,
             triple_count, origin, str(rdf_file.path)],
        )
    else:
        conn.execute(
            """
            INSERT INTO ontology_files
                (file_path, file_name, last_modified, last_imported, checksum,
                 triple_count, origin)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [str(rdf_file.path), rdf_file.name, rdf_file.last_modified, now,
             rdf_file.checksum, triple_count, origin],
        )


def import_rdf_file(
    conn: duckdb.DuckDBPyConnection,
    rdf_file: RdfFile,
    origin: Optional[str] = None,
) -> ImportStats:
    """
    Import a loaded file. Must run inside a storage transaction.

    ``origin`` defaults to ``import:<file name>``.
    """
    origin = origin or f"import:{rdf_file.name}"
    previous = tracked_file(conn, rdf_file.path)

    if previous is not None and previous["checksum"] == rdf_file.checksum:
        logger.info("Skipping %s: unchanged since last import", rdf_file.name)
        return ImportStats(
            file=rdf_file.name,
            format=rdf_file.format_name,
            triples_processed=previous["triple_count"],
            skipped=True,
        )

    triples = rdf_file.parse()
    ctx = begin_tx(conn, origin)
    if previous is not None:
        retracted = retract_origin_rows(conn, ctx, previous["origin"])
        logger.info(
            "%s changed: retracted %d row(s) from the previous import",
            rdf_file.name, retracted,
        )
    insert_triples(conn, triples, ctx)
    _track_file(conn, rdf_file, len(triples), origin, exists=previous is not None)
    set_metadata(conn, "ontology_imported", "true")

    logger.info(
        "Imported %d triple(s) from %s (%s) at tx %s",
        len(triples), rdf_file.name, rdf_file.format_name, ctx.tx,
    )
    return ImportStats(
        file=rdf_file.name,
        format=rdf_file.format_name,
        triples_processed=len(triples),
        tx=ctx.tx,
    )
