"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from rdf_eavto import IRI, StoreConfig, Triple, TripleStore
from rdf_eavto.web import create_app

from conftest import OWL, RDF, RDFS, XSD, fnd


@pytest.fixture
def client(store):
    with TestClient(create_app(store)) as client:
        yield client


def _literal(value, datatype=None, language=None):
    return {"type": "literal", "value": value, "datatype": datatype, "language": language}


def _assert(client, triples, origin="api"):
    return client.post("/assert", json={"triples": triples, "origin": origin})


class TestWrites:
    """Write endpoints."""

    def test_assert(self, client):
        """POST /assert returns the new tx."""
        response = _assert(client, [{
            "subject": fnd("Alice"),
            "predicate": fnd("name"),
            "object": _literal("Alice"),
        }])
        assert response.status_code == 200
        assert response.json() == {"tx": 1}

    def test_assert_typed_json_values(self, client, store):
        """JSON numbers and booleans pick their XSD datatype."""
        _assert(client, [
            {"subject": fnd("H"), "predicate": fnd("ram"), "object": _literal(16.0)},
            {"subject": fnd("H"), "predicate": fnd("cores"), "object": _literal(8)},
            {"subject": fnd("H"), "predicate": fnd("on"), "object": _literal(True)},
        ])
        values = {t.predicate: t.object_datatype for t in store.get_by_entity(fnd("H"))}
        assert values == {
            fnd("ram"): XSD + "decimal",
            fnd("cores"): XSD + "integer",
            fnd("on"): XSD + "boolean",
        }

    def test_validation_error_is_422(self, client):
        """Literal violations come back as 422 with details."""
        response = _assert(client, [{
            "subject": fnd("E"),
            "predicate": fnd("P"),
            "object": _literal("not-a-number", XSD + "integer"),
        }])
        assert response.status_code == 422
        violations = response.json()["detail"]["violations"]
        assert violations[0]["subject"] == "foundation:E"
        assert violations[0]["datatype"] == "xsd:integer"

    def test_malformed_body_is_422(self, client):
        """A body missing fields is rejected."""
        response = client.post("/assert", json={"triples": []})
        assert response.status_code == 422

    def test_retract(self, client):
        """Retracting a predicate empties the current view."""
        _assert(client, [{
            "subject": fnd("Box"),
            "predicate": RDF + "type",
            "object": {"type": "iri", "value": fnd("Computer")},
        }])
        response = client.post("/retract", json={
            "patterns": [{"subject": fnd("Box"), "predicate": RDF + "type"}],
            "origin": "api",
        })
        assert response.json() == {"tx": 2}
        result = client.get("/entities/by-iri", params={"iri": fnd("Box")}).json()
        assert result == {"triples": [], "count": 0}

    def test_retract_single_value(self, client):
        """A pattern with an object retracts only that value."""
        _assert(client, [
            {"subject": fnd("A"), "predicate": fnd("tag"), "object": _literal("x")},
            {"subject": fnd("A"), "predicate": fnd("tag"), "object": _literal("y")},
        ])
        client.post("/retract", json={
            "patterns": [{
                "subject": fnd("A"), "predicate": fnd("tag"), "object": _literal("x"),
            }],
            "origin": "api",
        })
        result = client.get("/entities/by-iri", params={"iri": fnd("A")}).json()
        assert [t["object"] for t in result["triples"]] == ["y"]

    def test_language_literal_round_trip(self, client):
        """A tagged literal reads back as rdf:langString and retracts in that form."""
        _assert(client, [{
            "subject": fnd("E"), "predicate": RDFS + "label", "object": _literal("Haus", language="de"),
        }])
        row = client.get("/entities/by-iri", params={"iri": fnd("E")}).json()["triples"][0]
        assert row["datatype"] == RDF + "langString"
        assert row["language"] == "de"
        client.post("/retract", json={
            "patterns": [{
                "subject": fnd("E"), "predicate": RDFS + "label",
                "object": _literal("Haus", RDF + "langString", "de"),
            }],
            "origin": "api",
        })
        assert client.get("/entities/by-iri", params={"iri": fnd("E")}).json()["count"] == 0

    def test_replace_and_at_time(self, client):
        """Replace supersedes and at-time shows both versions."""
        _assert(client, [{"subject": fnd("E"), "predicate": fnd("name"), "object": _literal("a")}])
        client.post("/replace", json={
            "triples": [{"subject": fnd("E"), "predicate": fnd("name"), "object": _literal("b")}],
            "origin": "api",
        })
        at_1 = client.get("/at-time", params={"iri": fnd("E"), "tx": 1}).json()
        at_2 = client.get("/at-time", params={"iri": fnd("E"), "tx": 2}).json()
        assert [t["object"] for t in at_1["triples"]] == ["a"]
        assert [t["object"] for t in at_2["triples"]] == ["b"]

    def test_import(self, client, temp_dir):
        """POST /import loads a server-side file."""
        path = temp_dir / "a.ttl"
        path.write_text(
            f"<{fnd('A')}> <{RDFS}label> \"A\" .\n", encoding="utf-8"
        )
        response = client.post("/import", json={"path": str(path)})
        assert response.status_code == 200
        assert response.json()["triples_processed"] == 1

    def test_import_failure_is_400(self, client, temp_dir):
        """A missing file is a client error."""
        response = client.post("/import", json={"path": str(temp_dir / "nope.ttl")})
        assert response.status_code == 400


class TestReads:
    """Read endpoints over a small fixture graph."""

    @pytest.fixture(autouse=True)
    def data(self, store):
        """Two transactions under origins a and b."""
        store.assert_triples(
            [
                Triple(fnd("Box"), RDF + "type", IRI(fnd("Computer"))),
                Triple.of(fnd("Box"), RDFS + "label", "Box"),
            ],
            origin="a",
        )
        store.assert_triples(
            [Triple(fnd("Laptop"), RDFS + "subClassOf", IRI(fnd("Computer")))], origin="b"
        )

    def test_entity_wire_shape(self, client):
        """Rows use the JSON triple shape."""
        body = client.get("/entities/by-iri", params={"iri": fnd("Box")}).json()
        assert body["count"] == 2
        row = next(t for t in body["triples"] if t["predicate"] == RDF + "type")
        assert row == {
            "subject": fnd("Box"),
            "predicate": RDF + "type",
            "object": fnd("Computer"),
            "object_type": "iri",
            "datatype": None,
            "language": None,
            "tx": 1,
            "origin_id": 4,
            "retracted": False,
        }

    def test_predicate(self, client):
        """Lookup by predicate."""
        body = client.get("/predicates", params={"iri": RDFS + "label"}).json()
        assert body["count"] == 1

    def test_entity_predicate(self, client):
        """Lookup by subject and predicate."""
        body = client.get(
            "/entity-predicate",
            params={"subject": fnd("Box"), "predicate": RDFS + "label"},
        ).json()
        assert [t["object"] for t in body["triples"]] == ["Box"]

    def test_origin(self, client):
        """Lookup by origin id."""
        body = client.get("/origins/5/triples").json()
        assert [t["subject"] for t in body["triples"]] == [fnd("Laptop")]

    def test_origins(self, client):
        """Origins are listed in id order."""
        names = [o["name"] for o in client.get("/origins").json()]
        assert names[-2:] == ["a", "b"]

    def test_history(self, client):
        """History lists the subject's transactions."""
        body = client.get("/history", params={"iri": fnd("Box")}).json()
        assert [entry["tx"] for entry in body] == [1]
        assert len(body[0]["triples"]) == 2

    def test_backlinks(self, client):
        """Incoming edges are counted."""
        body = client.get("/backlinks", params={"iri": fnd("Computer")}).json()
        assert body["count"] == 2

    def test_stats(self, client):
        """Database counters."""
        body = client.get("/stats").json()
        assert body["total_triples"] == 3
        assert body["total_transactions"] == 2

    def test_node_stats(self, client):
        """Node counters plus is_instance."""
        body = client.get("/node-stats", params={"iri": fnd("Computer")}).json()
        assert body["children"] == 1
        assert body["backlinks"] == 2
        assert body["is_instance"] is False

    def test_node_stats_label_and_icon(self, client):
        """Core terms get their default icon."""
        body = client.get("/node-stats", params={"iri": OWL + "Class"}).json()
        assert body["icon"] == "grid_view"
        assert body["label"] is None

    def test_missing_parameter(self, client):
        """A missing query parameter is 422."""
        assert client.get("/entities/by-iri").status_code == 422

    def test_health(self, client):
        """The health endpoint answers."""
        assert client.get("/health").json()["status"] == "healthy"


class TestClassEndpoints:
    """Search, instance and property lookups over HTTP."""

    @pytest.fixture(autouse=True)
    def data(self, store):
        """One class with an instance and a property."""
        store.assert_triples(
            [
                Triple(fnd("Computer"), RDF + "type", IRI(OWL + "Class")),
                Triple.of(fnd("Computer"), RDFS + "label", "Computer"),
                Triple(fnd("Box"), RDF + "type", IRI(fnd("Computer"))),
                Triple.of(fnd("Box"), RDFS + "label", "Box of computers"),
                Triple(fnd("cores"), RDFS + "domain", IRI(fnd("Computer"))),
                Triple(fnd("cores"), RDFS + "range", IRI(XSD + "integer")),
            ],
            origin="a",
        )

    def test_search_classes(self, client):
        """Class search returns id, label, icon and kind."""
        body = client.get("/search/classes", params={"q": "comp"}).json()
        assert body == [{
            "id": fnd("Computer"), "label": "Computer", "icon": None, "is_class": True,
        }]

    def test_search_individuals(self, client):
        """Individual search finds typed subjects."""
        body = client.get("/search/individuals", params={"q": "comp", "limit": 5}).json()
        assert [hit["id"] for hit in body] == [fnd("Box")]

    def test_search_limit_bounds(self, client):
        """limit must be at least 1."""
        assert client.get("/search/classes", params={"q": "c", "limit": 0}).status_code == 422

    def test_instances(self, client):
        """Instances are returned as full IRIs."""
        body = client.get("/classes/instances", params={"iri": fnd("Computer")}).json()
        assert body == [fnd("Box")]

    def test_applicable_properties(self, client):
        """Domain properties carry kind and range."""
        body = client.get("/classes/properties", params={"iri": fnd("Computer")}).json()
        assert [(p["id"], p["kind"], p["range"]) for p in body] == [
            (fnd("cores"), "datatype", XSD + "integer"),
        ]
        assert body[0]["inherited"] is False


class TestNotInitialized:
    """Requests against a closed store."""

    def test_closed_store_is_503(self, db_path):
        """A closed store answers 503."""
        store = TripleStore(StoreConfig(db_path=db_path))
        app = create_app(store)
        store.close()
        with TestClient(app) as client:
            assert client.get("/stats").status_code == 503
