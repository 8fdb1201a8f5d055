"""Tests for library indexing: embedding generation and edge materialization."""

import numpy as np
import pytest

from bookgraph.exceptions import DimensionMismatchError, ProviderError
from bookgraph.recommender.graph import EdgeType
from bookgraph.recommender.indexer import IndexingConfig, LibraryIndexer

# Vectors keyed by title: the Earthsea books and Left Hand are close, Dune is
# orthogonal to them, Hyperion sits between.
VECTORS = {
    "A Wizard of Earthsea": [1.0, 0.0, 0.0, 0.0],
    "The Tombs of Atuan": [0.9, 0.1, 0.0, 0.0],
    "The Farthest Shore": [0.8, 0.2, 0.0, 0.0],
    "The Left Hand of Darkness": [0.6, 0.0, 0.8, 0.0],
    "Dune": [0.0, 1.0, 0.0, 0.0],
    "Hyperion": [0.0, 0.7, 0.0, 0.7],
}


class FakeProvider:
    """Embedding provider returning fixed vectors and counting calls."""

    model_tag = "fake-4"

    def __init__(self, fail_titles=(), dimension=4):
        self.fail_titles = set(fail_titles)
        self.dimension = dimension
        self.calls = []

    def embed(self, text):
        title = text.split("\n", 1)[0][len("Title: "):]
        self.calls.append(title)
        if title in self.fail_titles:
            raise ProviderError("fake", "unavailable")
        return np.array(VECTORS[title][: self.dimension], dtype=np.float32)


@pytest.fixture
def indexer(catalog, vector_store, sample_books):
    catalog.upsert_books(sample_books)
    return LibraryIndexer(catalog, vector_store, FakeProvider())


def test_generate_embedding_stores_vector(indexer, vector_store):
    assert indexer.generate_embedding(1) is True

    np.testing.assert_array_equal(vector_store.get(1), VECTORS["A Wizard of Earthsea"])


def test_generate_embedding_skips_existing(indexer):
    indexer.generate_embedding(1)

    assert indexer.generate_embedding(1) is False
    assert indexer.generate_embedding(1, force=True) is True
    assert indexer.provider.calls == ["A Wizard of Earthsea", "A Wizard of Earthsea"]


def test_generate_embedding_unknown_book(indexer):
    assert indexer.generate_embedding(404) is False
    assert indexer.provider.calls == []


def test_generate_embedding_propagates_provider_error(catalog, vector_store, sample_books):
    catalog.upsert_books(sample_books)
    indexer = LibraryIndexer(catalog, vector_store, FakeProvider(fail_titles={"Dune"}))

    with pytest.raises(ProviderError):
        indexer.generate_embedding(5)
    assert not vector_store.has(5)


def test_generate_embedding_dimension_mismatch(catalog, vector_store, sample_books):
    catalog.upsert_books(sample_books)
    indexer = LibraryIndexer(catalog, vector_store, FakeProvider(dimension=2))

    with pytest.raises(DimensionMismatchError):
        indexer.generate_embedding(1)


def test_update_graph_edges_fuses_signals(indexer, catalog):
    for book_id in (1, 2, 5):
        indexer.generate_embedding(book_id)

    persisted = indexer.update_graph_edges(1)

    edges = {(e.target_id, e.edge_type): e.weight for e in catalog.get_edges(1) if e.source_id == 1}
    assert persisted == 3
    assert edges[(2, EdgeType.SERIES)] == pytest.approx(0.95)
    assert edges[(2, EdgeType.AUTHOR)] == pytest.approx(0.85)
    assert edges[(2, EdgeType.CONTENT)] == pytest.approx(0.9939, abs=1e-4)
    # Dune is orthogonal to Earthsea
    assert not any(target == 5 for target, _ in edges)


def test_update_graph_edges_without_embedding(indexer):
    assert indexer.update_graph_edges(1) == 0


def test_index_library_connects_early_books_to_later_ones(indexer, catalog):
    summary = indexer.index_library()

    assert summary.processed == 6
    assert summary.skipped == 0
    assert summary.failed == {}
    assert summary.edges == catalog.edge_count()

    # Book 1 was embedded first but still links to book 3
    targets = {e.target_id for e in catalog.get_edges(1) if e.source_id == 1}
    assert {2, 3, 4} <= targets


def test_index_library_records_failures(catalog, vector_store, sample_books):
    catalog.upsert_books(sample_books)
    indexer = LibraryIndexer(catalog, vector_store, FakeProvider(fail_titles={"Hyperion"}))

    summary = indexer.index_library()

    assert summary.processed == 5
    assert list(summary.failed) == [6]
    assert "unavailable" in summary.failed[6]
    assert indexer.provider.calls.count("Hyperion") == 1


def test_index_library_respects_config(catalog, vector_store, sample_books):
    catalog.upsert_books(sample_books)
    indexer = LibraryIndexer(
        catalog,
        vector_store,
        FakeProvider(),
        IndexingConfig(similar_k=1, min_edge_weight=0.99),
    )

    indexer.index_library([1, 2])

    # Only the nearest neighbour is considered and author/series edges are too light
    edges = list(catalog.load_edges())
    assert {(e.source_id, e.target_id) for e in edges} == {(1, 2), (2, 1)}
    assert {e.edge_type for e in edges} == {EdgeType.CONTENT}
