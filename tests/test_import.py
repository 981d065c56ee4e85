"""Tests for RDF file import."""

import gzip

import pytest

from rdf_eavto import ImportFailedError, Integer, Literal, RetractPattern, ValidationError

from conftest import OWL, RDF, RDFS, fnd

ONTOLOGY_TTL = """\
@prefix rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
@prefix owl: <http://www.w3.org/2002/07/owl#> .
@prefix foundation: <http://foundation.local/ontology/> .

foundation:Computer a owl:Class ;
    rdfs:label "Computer" , "Rechner"@de .

foundation:Laptop a owl:Class ;
    rdfs:subClassOf foundation:Computer ;
    foundation:cores 8 ;
    foundation:part [ rdfs:label "Battery" ] .
"""

CHANGED_TTL = """\
@prefix rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#> .
@prefix owl: <http://www.w3.org/2002/07/owl#> .
@prefix foundation: <http://foundation.local/ontology/> .

foundation:Tablet a owl:Class .
"""

NTRIPLES = (
    "<http://foundation.local/ontology/A> "
    "<http://www.w3.org/2000/01/rdf-schema#label> \"A\" .\n"
    "<http://foundation.local/ontology/A> "
    "<http://www.w3.org/1999/02/22-rdf-syntax-ns#type> "
    "<http://www.w3.org/2002/07/owl#Thing> .\n"
)


@pytest.fixture
def ttl_file(temp_dir):
    path = temp_dir / "onto.ttl"
    path.write_text(ONTOLOGY_TTL, encoding="utf-8")
    return path


class TestImportTurtle:
    """Importing a Turtle ontology."""

    def test_import(self, store, ttl_file):
        """Every parsed triple lands in one transaction."""
        result = store.import_file(ttl_file)
        assert result.file == "onto.ttl"
        assert result.format == "Turtle"
        assert result.triples_processed == 8
        assert result.tx == 1
        assert not result.skipped
        assert store.stats().active_triples == 8

    def test_origin_named_after_file(self, store, ttl_file):
        """The default origin is import:<file name>."""
        store.import_file(ttl_file)
        origin = store.get_origin("import:onto.ttl")
        assert origin is not None
        assert store.get_by_origin(origin.id).count == 8

    def test_explicit_origin(self, store, ttl_file):
        """An explicit origin overrides the file name."""
        store.import_file(ttl_file, origin="rdf:core")
        assert store.get_by_origin(1).count == 8

    def test_marks_ontology_imported(self, store, ttl_file):
        """A successful import sets the ontology_imported flag."""
        store.import_file(ttl_file)
        assert store.stats().ontology_imported is True

    def test_terms(self, store, ttl_file):
        """IRIs, typed literals and blank nodes map to their value tags."""
        store.import_file(ttl_file)
        laptop = store.get_by_entity(fnd("Laptop"))
        types = laptop.filter_by_predicate(RDF + "type")
        assert types[0].object == OWL + "Class"
        cores = laptop.filter_by_predicate(fnd("cores"))
        assert cores[0].value == Integer(8)
        part = laptop.filter_by_predicate(fnd("part"))[0]
        assert part.object_type == "blank"
        assert part.object.startswith("_:")
        assert store.get_label(part.object) == "Battery"

    def test_language_and_string_literals(self, store, ttl_file):
        """Plain literals keep xsd:string and tagged ones rdf:langString."""
        store.import_file(ttl_file)
        labels = store.get_by_entity_predicate(fnd("Computer"), RDFS + "label")
        by_value = {t.object_value: t for t in labels}
        assert by_value["Computer"].object_datatype == "http://www.w3.org/2001/XMLSchema#string"
        assert by_value["Rechner"].object_language == "de"
        assert by_value["Rechner"].object_datatype == RDF + "langString"

    def test_language_literal_retracted_by_value(self, store, ttl_file):
        """An imported tagged literal matches the API form without a datatype."""
        store.import_file(ttl_file)
        store.retract_triples(
            [RetractPattern(fnd("Computer"), RDFS + "label", Literal("Rechner", None, "de"))],
            origin="cleanup",
        )
        labels = store.get_by_entity_predicate(fnd("Computer"), RDFS + "label")
        assert [t.object_value for t in labels] == ["Computer"]


class TestReimport:
    """Importing the same file path again."""

    def test_unchanged_is_skipped(self, store, ttl_file):
        """Same checksum writes nothing."""
        store.import_file(ttl_file)
        again = store.import_file(ttl_file)
        assert again.skipped
        assert again.tx is None
        assert again.triples_processed == 8
        assert store.stats().total_transactions == 1

    def test_changed_file_replaces_previous(self, store, ttl_file):
        """Changed content retracts the old rows in the new tx."""
        first = store.import_file(ttl_file)
        ttl_file.write_text(CHANGED_TTL, encoding="utf-8")
        second = store.import_file(ttl_file)
        assert second.tx == first.tx + 1
        assert store.get_by_entity(fnd("Laptop")).is_empty()
        assert store.get_by_entity(fnd("Tablet")).count == 1
        stats = store.stats()
        assert stats.active_triples == 1
        assert stats.total_triples == 9
        assert store.get_at_time(fnd("Laptop"), first.tx).count > 0

    def test_history_shows_retraction_tx(self, store, ttl_file):
        """The replacing tx appears in the old subjects' history."""
        store.import_file(ttl_file)
        ttl_file.write_text(CHANGED_TTL, encoding="utf-8")
        second = store.import_file(ttl_file)
        history = store.get_history(fnd("Computer"))
        assert [entry.tx for entry in history] == [1, second.tx]


class TestOtherFormats:
    """Formats other than Turtle."""

    def test_ntriples(self, store, temp_dir):
        """.nt files parse as N-Triples."""
        path = temp_dir / "data.nt"
        path.write_text(NTRIPLES, encoding="utf-8")
        result = store.import_file(path)
        assert result.format == "N-Triples"
        assert result.triples_processed == 2

    def test_gzipped(self, store, temp_dir):
        """A .gz suffix is decompressed before parsing."""
        path = temp_dir / "data.nt.gz"
        path.write_bytes(gzip.compress(NTRIPLES.encode("utf-8")))
        result = store.import_file(path)
        assert result.triples_processed == 2
        assert store.get_label(fnd("A")) == "A"


class TestImportErrors:
    """Failed imports leave the store untouched."""

    def test_syntax_error(self, store, temp_dir):
        """A parse error raises ImportFailedError and writes nothing."""
        path = temp_dir / "broken.ttl"
        path.write_text("this is not turtle", encoding="utf-8")
        with pytest.raises(ImportFailedError):
            store.import_file(path)
        assert store.stats().total_transactions == 0

    def test_unsupported_suffix(self, store, temp_dir):
        """An unknown suffix is rejected."""
        path = temp_dir / "data.csv"
        path.write_text("a,b,c", encoding="utf-8")
        with pytest.raises(ImportFailedError, match="Unsupported"):
            store.import_file(path)

    def test_missing_file(self, store, temp_dir):
        """A missing file raises ImportFailedError."""
        with pytest.raises(ImportFailedError):
            store.import_file(temp_dir / "missing.ttl")

    def test_invalid_typed_literal(self, store, temp_dir):
        """A bad typed literal rolls back the whole import."""
        path = temp_dir / "bad.ttl"
        path.write_text(
            '@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .\n'
            '<http://foundation.local/ontology/A> '
            '<http://foundation.local/ontology/n> "many"^^xsd:integer .\n',
            encoding="utf-8",
        )
        with pytest.raises(ValidationError):
            store.import_file(path)
        assert store.stats().total_triples == 0
        assert store.stats().ontology_imported is False
