"""End-to-end tests for BookGraph.

Generates a fake catalog CSV, indexes it with TF-IDF embeddings, builds and
snapshots the graph, then serves recommendations through the API.
"""

import pytest
from fastapi.testclient import TestClient

from bookgraph.api.dependencies import get_recommender
from bookgraph.api.main import app
from bookgraph.config import Settings
from bookgraph.recommender.catalog import CatalogStore, load_catalog_csv
from bookgraph.recommender.embed import TfidfEmbeddingProvider, book_to_embedding_text
from bookgraph.recommender.graph import BookGraph
from bookgraph.recommender.hybrid import create_graph_recommender
from bookgraph.recommender.indexer import LibraryIndexer
from bookgraph.recommender.utils import check_snapshot_exists, save_graph_snapshot
from bookgraph.recommender.vector_store import VectorStore
from scripts.generate_fake_library import generate_fake_library

NUM_BOOKS = 30
E2E_DIMENSION = 64


@pytest.fixture(scope="module")
def built_library(tmp_path_factory):
    """Run the full import and indexing pipeline once for the module.

    Returns settings pointing at the populated database and snapshot.
    """
    workdir = tmp_path_factory.mktemp("e2e_library")
    csv_path = workdir / "library.csv"
    generate_fake_library(num_books=NUM_BOOKS, num_authors=5, seed=7).to_csv(csv_path, index=False)

    settings = Settings(
        db_path=str(workdir / "library.db"),
        embedding_dim=E2E_DIMENSION,
        snapshot_dir=str(workdir / "models"),
    )

    books = load_catalog_csv(str(csv_path))
    catalog = CatalogStore(settings.db_path)
    catalog.upsert_books(books)

    provider = TfidfEmbeddingProvider(E2E_DIMENSION).fit(
        [book_to_embedding_text(b.title, b.author, b.description, b.series) for b in books]
    )
    vector_store = VectorStore(settings.db_path, dimension=E2E_DIMENSION)
    summary = LibraryIndexer(catalog, vector_store, provider).index_library()

    graph = BookGraph.from_catalog(catalog, min_weight=settings.graph_min_weight)
    save_graph_snapshot(graph, settings.snapshot_dir)

    return settings, summary


def test_pipeline_indexes_every_book(built_library):
    settings, summary = built_library

    assert summary.processed == NUM_BOOKS
    assert summary.failed == {}
    assert summary.edges > 0
    assert VectorStore(settings.db_path, dimension=E2E_DIMENSION).count() == NUM_BOOKS
    assert CatalogStore(settings.db_path).book_count() == NUM_BOOKS
    assert check_snapshot_exists(settings.snapshot_dir)


def test_recommender_starts_from_snapshot(built_library):
    settings, _ = built_library

    recommender = create_graph_recommender(settings)
    graph = recommender.graph
    source = next(book_id for book_id in graph.nodes() if graph.out_degree(book_id) > 0)

    recommendations = recommender.recommend(source, limit=5)

    assert 0 < len(recommendations) <= 5
    assert source not in {r.book_id for r in recommendations}
    assert all(r.path[0] == source for r in recommendations)
    assert all(r.reasons for r in recommendations)


def test_api_serves_built_library(built_library):
    settings, _ = built_library
    recommender = create_graph_recommender(settings)
    source = next(
        book_id for book_id in recommender.graph.nodes() if recommender.graph.out_degree(book_id) > 0
    )
    app.dependency_overrides[get_recommender] = lambda: recommender

    try:
        client = TestClient(app)
        response = client.get(f"/recommend/{source}?limit=5")
        status = client.get("/status").json()
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["recommendations"]
    assert status["catalog"]["books"] == NUM_BOOKS
    assert status["embeddings"]["persisted"] == NUM_BOOKS
