"""Shared fixtures for the BookGraph test suite."""

import sys
from pathlib import Path

import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bookgraph.recommender.catalog import BookMetadata, CatalogStore
from bookgraph.recommender.graph import BookGraph, EdgeRecord, EdgeType
from bookgraph.recommender.vector_store import VectorStore

TEST_DIMENSION = 4


@pytest.fixture
def db_path(tmp_path):
    """Fixture providing a fresh SQLite database path."""
    return str(tmp_path / "library.db")


@pytest.fixture
def catalog(db_path):
    """Fixture providing an empty catalog store."""
    return CatalogStore(db_path)


@pytest.fixture
def vector_store(db_path):
    """Fixture providing an empty 4-dimensional vector store."""
    return VectorStore(db_path, dimension=TEST_DIMENSION)


@pytest.fixture
def sample_books():
    """Fixture providing a small catalog with shared authors and a series."""
    return [
        BookMetadata(1, "A Wizard of Earthsea", "Ursula K. Le Guin", "Earthsea", 1.0, 5),
        BookMetadata(2, "The Tombs of Atuan", "Ursula K. Le Guin", "Earthsea", 2.0, None),
        BookMetadata(3, "The Farthest Shore", "Ursula K. Le Guin", "Earthsea", 3.0, None),
        BookMetadata(4, "The Left Hand of Darkness", "Ursula K. Le Guin", None, None, 4),
        BookMetadata(5, "Dune", "Frank Herbert", None, None, None),
        BookMetadata(6, "Hyperion", "Dan Simmons", None, None, 2),
    ]


@pytest.fixture
def chain_graph():
    """Fixture providing the directed chain 1 -> 2 -> 3 -> 4."""
    return BookGraph.from_edges(
        [
            EdgeRecord(1, 2, EdgeType.CONTENT, 0.9),
            EdgeRecord(2, 3, EdgeType.CONTENT, 0.8),
            EdgeRecord(3, 4, EdgeType.CONTENT, 0.7),
        ]
    )


@pytest.fixture
def library(catalog, vector_store, sample_books):
    """Fixture providing a recommender over the sample books and a small edge set."""
    from bookgraph.recommender.hybrid import GraphRecommender

    catalog.upsert_books(sample_books)
    catalog.persist_edges(
        [
            EdgeRecord(1, 2, EdgeType.SERIES, 0.95),
            EdgeRecord(2, 3, EdgeType.SERIES, 0.95),
            EdgeRecord(1, 4, EdgeType.AUTHOR, 0.85),
            EdgeRecord(4, 5, EdgeType.CONTENT, 0.6),
        ]
    )
    recommender = GraphRecommender(catalog, vector_store)
    recommender.rebuild_graph()
    return recommender


@pytest.fixture
def client(library, db_path, tmp_path):
    """Fixture providing a TestClient wired to the sample library."""
    from fastapi.testclient import TestClient

    from bookgraph.api.dependencies import get_recommender, get_settings
    from bookgraph.api.main import app
    from bookgraph.api.metrics import metrics_service
    from bookgraph.config import Settings

    settings = Settings(
        db_path=db_path,
        embedding_dim=TEST_DIMENSION,
        snapshot_dir=str(tmp_path / "models"),
    )
    app.dependency_overrides[get_recommender] = lambda: library
    app.dependency_overrides[get_settings] = lambda: settings
    metrics_service.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
    metrics_service.reset()
