"""Shared fixtures for the EAVTO test suite."""

import shutil
import tempfile
from pathlib import Path

import pytest

from rdf_eavto import StoreConfig, TripleStore

FOUNDATION = "http://foundation.local/ontology/"
RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
RDFS = "http://www.w3.org/2000/01/rdf-schema#"
OWL = "http://www.w3.org/2002/07/owl#"
XSD = "http://www.w3.org/2001/XMLSchema#"
SKOS = "http://www.w3.org/2004/02/skos/core#"


def fnd(local: str) -> str:
    """Full IRI in the foundation namespace."""
    return FOUNDATION + local


@pytest.fixture
def temp_dir():
    """Create temporary directory."""
    path = tempfile.mkdtemp()
    yield Path(path)
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def db_path(temp_dir):
    return temp_dir / "eavto.duckdb"


@pytest.fixture
def store(db_path):
    """An open store on a fresh database file."""
    store = TripleStore(StoreConfig(db_path=db_path))
    store.open()
    yield store
    store.close()
