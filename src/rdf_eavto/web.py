"""
HTTP API for the EAVTO store.

FastAPI router exposing the caller-facing operations:
- assert / retract / replace / import
- entity, predicate, origin, snapshot and history queries
- database and node statistics

All IRIs on the wire are full IRIs.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Iterator, List, Literal as TypeLiteral, Optional, Union

from fastapi import APIRouter, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from rdf_eavto import __version__
from rdf_eavto.errors import (
    ImportFailedError,
    NotInitializedError,
    StorageError,
    ValidationError,
)
from rdf_eavto.models import (
    IRI,
    Blank,
    Literal,
    RetractPattern,
    Triple,
    Value,
    to_value,
)
from rdf_eavto.store import TripleStore

logger = logging.getLogger(__name__)


# =============================================================================
# Wire models
# =============================================================================

class ObjectInput(BaseModel):
    """Object of a triple: IRI, blank node or literal."""
    type: TypeLiteral["iri", "blank", "literal"] = "literal"
    value: Union[bool, int, float, str]
    datatype: Optional[str] = Field(default=None, description="Datatype IRI")
    language: Optional[str] = None

    def to_value(self) -> Value:
        if self.type == "iri":
            return IRI(str(self.value))
        if self.type == "blank":
            return Blank(str(self.value))
        if self.datatype is None and self.language is None:
            return to_value(self.value)
        if isinstance(self.value, bool):
            lexical = "true" if self.value else "false"
        else:
            lexical = str(self.value)
        return Literal(lexical, self.datatype, self.language)


class TripleInput(BaseModel):
    subject: str
    predicate: str
    object: ObjectInput

    def to_triple(self) -> Triple:
        return Triple(self.subject, self.predicate, self.object.to_value())


class AssertRequest(BaseModel):
    triples: List[TripleInput]
    origin: str = Field(..., description="Provenance tag, e.g. 'setup'")


class PatternInput(BaseModel):
    subject: str
    predicate: str
    object: Optional[ObjectInput] = Field(
        default=None, description="Only retract this value"
    )

    def to_pattern(self) -> RetractPattern:
        value = self.object.to_value() if self.object is not None else None
        return RetractPattern(self.subject, self.predicate, value)


class RetractRequest(BaseModel):
    patterns: List[PatternInput]
    origin: str


class ImportRequest(BaseModel):
    path: str = Field(..., description="Server-side path of an RDF file")
    origin: Optional[str] = None


class TxResponse(BaseModel):
    tx: int


class TripleOut(BaseModel):
    subject: str
    predicate: str
    object: Optional[str]
    object_type: str
    datatype: Optional[str] = None
    language: Optional[str] = None
    tx: int
    origin_id: int
    retracted: bool


class ResultSetOut(BaseModel):
    triples: List[TripleOut]
    count: int


class HistoryEntryOut(BaseModel):
    tx: int
    triples: List[TripleOut]
    retracted: List[TripleOut]


# =============================================================================
# Router
# =============================================================================

@contextmanager
def domain_errors() -> Iterator[None]:
    """Translate store errors into HTTP errors."""
    try:
        yield
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "violations": [asdict(v) for v in exc.violations],
            },
        ) from exc
    except NotInitializedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ImportFailedError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        logger.exception("Storage failure")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def create_router(store: TripleStore) -> APIRouter:
    """Create the EAVTO router bound to an open store."""
    router = APIRouter(tags=["EAVTO"])

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @router.post("/assert", response_model=TxResponse)
    def assert_triples(request: AssertRequest):
        with domain_errors():
            tx = store.assert_triples(
                [t.to_triple() for t in request.triples], request.origin
            )
        return TxResponse(tx=tx)

    @router.post("/retract", response_model=TxResponse)
    def retract_triples(request: RetractRequest):
        with domain_errors():
            tx = store.retract_triples(
                [p.to_pattern() for p in request.patterns], request.origin
            )
        return TxResponse(tx=tx)

    @router.post("/replace", response_model=TxResponse)
    def replace_triples(request: AssertRequest):
        """Supersede current values of each (subject, predicate) in the batch."""
        with domain_errors():
            tx = store.replace([t.to_triple() for t in request.triples], request.origin)
        return TxResponse(tx=tx)

    @router.post("/import")
    def import_file(request: ImportRequest):
        with domain_errors():
            result = store.import_file(request.path, request.origin)
        return result.to_dict()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @router.get("/entities/by-iri", response_model=ResultSetOut)
    def get_by_entity(
        iri: str = Query(..., description="Subject IRI"),
        include_retracted: bool = False,
    ):
        with domain_errors():
            return store.get_by_entity(iri, include_retracted).to_wire()

    @router.get("/predicates", response_model=ResultSetOut)
    def get_by_predicate(iri: str = Query(...), include_retracted: bool = False):
        with domain_errors():
            return store.get_by_predicate(iri, include_retracted).to_wire()

    @router.get("/entity-predicate", response_model=ResultSetOut)
    def get_by_entity_predicate(
        subject: str = Query(...),
        predicate: str = Query(...),
        include_retracted: bool = False,
    ):
        with domain_errors():
            return store.get_by_entity_predicate(
                subject, predicate, include_retracted
            ).to_wire()

    @router.get("/at-time", response_model=ResultSetOut)
    def get_at_time(iri: str = Query(...), tx: int = Query(..., ge=0)):
        with domain_errors():
            return store.get_at_time(iri, tx).to_wire()

    @router.get("/origins/{origin_id}/triples", response_model=ResultSetOut)
    def get_by_origin(origin_id: int, include_retracted: bool = False):
        with domain_errors():
            return store.get_by_origin(origin_id, include_retracted).to_wire()

    @router.get("/origins")
    def list_origins():
        with domain_errors():
            return [asdict(o) for o in store.list_origins()]

    @router.get("/history", response_model=List[HistoryEntryOut])
    def get_history(iri: str = Query(...)):
        with domain_errors():
            return [entry.to_wire() for entry in store.get_history(iri)]

    @router.get("/backlinks", response_model=ResultSetOut)
    def get_backlinks(iri: str = Query(...)):
        with domain_errors():
            return store.get_backlinks(iri).to_wire()

    @router.get("/search/classes")
    def search_classes(
        q: str = Query(..., description="Case-insensitive label fragment"),
        limit: int = Query(10, ge=1, le=100),
    ):
        with domain_errors():
            return [asdict(hit) for hit in store.search_classes(q, limit)]

    @router.get("/search/individuals")
    def search_individuals(q: str = Query(...), limit: int = Query(10, ge=1, le=100)):
        with domain_errors():
            return [asdict(hit) for hit in store.search_individuals(q, limit)]

    @router.get("/classes/instances", response_model=List[str])
    def get_instances(iri: str = Query(..., description="Class IRI")):
        with domain_errors():
            return store.get_instances(iri)

    @router.get("/classes/properties")
    def get_applicable_properties(iri: str = Query(..., description="Class IRI")):
        """Properties usable on instances of the class, inherited ones included."""
        with domain_errors():
            return [p.to_wire() for p in store.get_applicable_properties(iri)]

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    @router.get("/stats")
    def stats():
        with domain_errors():
            return store.stats().to_dict()

    @router.get("/node-stats")
    def node_stats(iri: str = Query(...)):
        with domain_errors():
            result = store.node_stats(iri).to_dict()
            result["label"] = store.get_label(iri)
            result["icon"] = store.get_icon(iri)
            result["is_instance"] = store.is_instance(iri)
        return result

    return router


def create_app(store: Optional[TripleStore] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        store: Store to serve. Opened here if not already open; defaults to
            a store configured from the environment.
    """
    from rdf_eavto.config import StoreConfig

    store = store or TripleStore(StoreConfig.from_env())
    if not store.is_open:
        store.open()

    app = FastAPI(
        title="RDF EAVTO API",
        description="Append-only triple store with transactions and provenance",
        version=__version__,
    )
    app.state.store = store
    app.include_router(create_router(store))

    @app.get("/health", tags=["Info"])
    def health():
        return {"status": "healthy", "database": str(store.path)}

    return app
