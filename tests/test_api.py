"""Tests for api/main.py"""

import pytest
from fastapi.testclient import TestClient

from api.main import app, get_service


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def post_attempt(client, concept_id, is_correct, attempt_id, when, student_id="s1"):
    return client.post("/attempts", json={
        "student_id": student_id,
        "concept_id": concept_id,
        "is_correct": is_correct,
        "timestamp": when.isoformat(),
        "attempt_id": attempt_id,
    })


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


# ==================== Concepts & Edges ====================

def test_create_and_get_concept(client):
    response = client.post("/concepts", json={"id": "fractions", "name": "Fractions", "subject": "math"})
    assert response.status_code == 201

    response = client.get("/concepts/fractions")
    assert response.status_code == 200
    assert response.json()["name"] == "Fractions"


def test_duplicate_concept_conflicts(client):
    response = client.post("/concepts", json={"id": "variables", "name": "Variables"})
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_concept"


def test_rename_concept(client):
    response = client.patch("/concepts/linear_eq", json={"name": "Linear Equations I"})
    assert response.status_code == 200
    assert response.json()["name"] == "Linear Equations I"
    assert response.json()["subject"] == "math"


def test_unknown_concept(client):
    response = client.get("/concepts/calculus")
    assert response.status_code == 404
    assert response.json()["error"] == "concept_not_found"


def test_self_loop_is_bad_request(client):
    response = client.post("/edges", json={"source": "systems", "target": "systems", "kind": "related"})
    assert response.status_code == 400
    assert response.json()["error"] == "self_loop"


def test_duplicate_edge_conflicts(client):
    response = client.post("/edges", json={"source": "variables", "target": "linear_eq"})
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_edge"


def test_edge_lifecycle(client):
    edge = {"source": "systems", "target": "quadratics", "kind": "applied_in", "strength": 0.4}
    response = client.post("/edges", json=edge)
    assert response.status_code == 201
    assert response.json()["kind"] == "applied_in"

    ref = {"source": "systems", "target": "quadratics", "kind": "applied_in"}
    assert client.request("DELETE", "/edges", json=ref).status_code == 200
    assert client.request("DELETE", "/edges", json=ref).status_code == 404


def test_prerequisites(client):
    body = client.get("/concepts/systems/prerequisites").json()
    assert [p["id"] for p in body["prerequisites"]] == ["variables", "linear_eq"]


def test_cycle_conflicts_with_path(client):
    client.post("/edges", json={"source": "systems", "target": "variables"})

    response = client.get("/concepts/systems/prerequisites")
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "cycle_detected"
    assert body["cycle"][0] == body["cycle"][-1]


# ==================== Mastery ====================

def test_record_attempt_and_read_mastery(client, now):
    response = post_attempt(client, "linear_eq", True, "a1", now)
    assert response.status_code == 200
    body = response.json()
    assert body["first_introduced"] is True
    assert body["snapshot"]["mastery_level"] == "INTRODUCED"

    snapshots = client.get("/mastery/s1", params={"concept_id": "linear_eq"}).json()["snapshots"]
    assert snapshots[0]["total_attempts"] == 1


def test_redelivered_attempt(client, now):
    post_attempt(client, "linear_eq", True, "a1", now)
    body = post_attempt(client, "linear_eq", True, "a1", now).json()
    assert body["duplicate"] is True
    assert body["snapshot"]["total_attempts"] == 1


def test_never_assessed_is_not_found(client):
    response = client.get("/mastery/s1", params={"concept_id": "linear_eq"})
    assert response.status_code == 404
    assert response.json()["error"] == "snapshot_not_found"


def test_attempt_for_unknown_concept(client, now):
    assert post_attempt(client, "calculus", True, "a1", now).status_code == 404


def test_timeline(client, now):
    post_attempt(client, "linear_eq", True, "a1", now)
    post_attempt(client, "linear_eq", False, "a2", now)

    body = client.get("/timeline/s1/linear_eq").json()
    assert [h["percent"] for h in body["history"]] == [100.0, 50.0]


# ==================== Gaps & Graph ====================

def test_gaps(client, now):
    assert client.put("/classes/algebra-1/concepts", json={"concept_ids": ["systems"]}).status_code == 200

    body = client.get("/gaps/s1/algebra-1").json()
    assert body["total_gaps"] == 1
    assert body["critical_gaps"] == 1
    assert body["gaps"][0]["concept_id"] == "linear_eq"
    assert body["gaps"][0]["severity"] == "HIGH"


def test_learning_path(client):
    body = client.get("/learning-path/s1/systems").json()
    assert body["path"] == ["variables", "linear_eq", "systems"]


def test_graph_and_node_position(client):
    response = client.patch("/node-position", json={
        "student_id": "s1", "concept_id": "systems", "x": 12.5, "y": 80.0,
    })
    assert response.json()["success"] is True

    body = client.get("/graph/s1").json()
    nodes = {n["id"]: n for n in body["nodes"]}
    assert nodes["systems"]["position"] == {"x": 12.5, "y": 80.0}
    assert len(body["edges"]) == 2


def test_graph_filters(client, now):
    for i in range(6):
        post_attempt(client, "variables", True, f"a{i}", now)

    body = client.get("/graph/s1", params={"mastery_level": "MASTERED"}).json()
    assert [n["id"] for n in body["nodes"]] == ["variables"]
    assert body["metadata"]["total_concepts"] == 1

    body = client.get("/graph/s1", params={"subject": "history"}).json()
    assert body["nodes"] == []


def test_graph_rejects_unknown_level(client):
    assert client.get("/graph/s1", params={"mastery_level": "GENIUS"}).status_code == 422


def test_empty_name_is_bad_request(client):
    response = client.patch("/concepts/linear_eq", json={"name": ""})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"
