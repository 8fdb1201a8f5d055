"""Tests for the FastAPI application endpoints."""

from pathlib import Path

from bookgraph.api.metrics import metrics_service
from bookgraph.recommender.catalog import BookMetadata
from bookgraph.recommender.graph import EdgeRecord, EdgeType


def test_ping_endpoint(client):
    """Test that the /ping endpoint returns correct status and JSON."""
    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_endpoint(client):
    response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert data["graph"] == {"nodes": 5, "edges": 8}
    assert data["catalog"] == {"books": 6, "edges": 4}
    assert data["embeddings"]["dimension"] == 4
    assert data["metrics"]["recommendation_count"] == 0
    assert "version" in data


def test_request_id_header(client):
    response = client.get("/ping", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"

    generated = client.get("/ping").headers["X-Request-ID"]
    assert len(generated) == 36


# ===== Recommendation Endpoint Tests =====


def test_recommend_endpoint_returns_response(client):
    response = client.get("/recommend/1")

    assert response.status_code == 200
    data = response.json()
    assert data["book_id"] == 1
    assert "model_version" in data

    by_id = {item["book_id"]: item for item in data["recommendations"]}
    assert set(by_id) == {2, 3, 4, 5}
    assert by_id[2]["edge_types"] == ["series"]
    assert by_id[2]["path"] == [1, 2]
    assert by_id[2]["reasons"] == [{"type": "same_series", "series": "Earthsea", "position": "next"}]
    assert by_id[3]["reasons"][-1] == {"type": "connected_via", "based_on": 2}


def test_recommend_endpoint_limit(client):
    response = client.get("/recommend/1?limit=2")

    assert response.status_code == 200
    assert len(response.json()["recommendations"]) == 2


def test_recommend_endpoint_no_suggestions_yet(client, library):
    library.catalog.upsert_book(BookMetadata(7, "Solaris"))

    response = client.get("/recommend/7")

    assert response.status_code == 200
    assert response.json()["recommendations"] == []
    assert metrics_service.get_metrics()["empty_result_count"] == 1


def test_personalized_endpoint(client):
    response = client.get("/recommend/personalized?limit=5")

    assert response.status_code == 200
    data = response.json()
    assert data["book_id"] is None
    ids = [item["book_id"] for item in data["recommendations"]]
    assert ids
    assert len(ids) <= 5
    # Books 1 and 4 are rated 4+ and never recommended back
    assert not {1, 4} & set(ids)


def test_metrics_recorded(client):
    client.get("/recommend/1")
    client.get("/recommend/2")

    metrics = client.get("/status").json()["metrics"]
    assert metrics["recommendation_count"] == 2
    assert metrics["average_latency_ms"] >= 0.0


# ===== Library Endpoint Tests =====


def test_similar_endpoint(client, library):
    library.vector_store.store(1, [1.0, 0.0, 0.0, 0.0], "test-model")
    library.vector_store.store(2, [0.8, 0.6, 0.0, 0.0], "test-model")

    response = client.get("/similar/1?k=3")

    assert response.status_code == 200
    data = response.json()
    assert data["book_id"] == 1
    assert [s["book_id"] for s in data["similar"]] == [2]
    assert abs(data["similar"][0]["similarity"] - 0.8) < 1e-6


def test_similar_endpoint_without_embedding(client):
    response = client.get("/similar/5")

    assert response.status_code == 200
    assert response.json()["similar"] == []


def test_graph_rebuild_endpoint(client, library, tmp_path):
    library.catalog.upsert_book(BookMetadata(7, "Solaris"))
    library.catalog.persist_edges([EdgeRecord(6, 7, EdgeType.CONTENT, 0.5)])

    response = client.post("/graph/rebuild")

    assert response.status_code == 200
    assert response.json() == {"nodes": 7, "edges": 10}
    assert (Path(tmp_path) / "models" / "graph_snapshot.joblib").exists()


def test_clear_embeddings_endpoint(client, library):
    library.vector_store.store(1, [1.0, 0.0, 0.0, 0.0], "test-model")
    library.vector_store.store(2, [0.0, 1.0, 0.0, 0.0], "test-model")

    response = client.delete("/embeddings")

    assert response.status_code == 200
    assert response.json() == {"cleared": 2}
    assert library.vector_store.count() == 0
