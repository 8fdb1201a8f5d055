"""Tests for hybrid recommendations.

Covers the traversal + PageRank + MMR pipeline, the GraphRecommender
service built on top of it, and recommendation explanations.
"""

from contextlib import contextmanager

import pytest

from bookgraph.config import Settings
from bookgraph.recommender import vector_store as vector_store_module
from bookgraph.recommender.catalog import BookMetadata
from bookgraph.recommender.explain import (
    ReasonType,
    RecommendationReason,
    build_reasons,
    explain_path,
    series_position,
)
from bookgraph.recommender.graph import BookGraph, EdgeRecord, EdgeType, GraphHandle
from bookgraph.recommender.hybrid import (
    FALLBACK_AUTHOR_SCORE,
    FALLBACK_SERIES_SCORE,
    GraphRecommender,
    create_graph_recommender,
    generate_recommendations,
    score_proximity_similarity,
)
from bookgraph.recommender.pagerank import personalized_pagerank
from bookgraph.recommender.utils import save_graph_snapshot

LIBRARY_EDGES = [
    EdgeRecord(1, 2, EdgeType.SERIES, 0.95),
    EdgeRecord(1, 2, EdgeType.AUTHOR, 0.85),
    EdgeRecord(2, 3, EdgeType.SERIES, 0.95),
    EdgeRecord(1, 4, EdgeType.AUTHOR, 0.85),
    EdgeRecord(4, 5, EdgeType.CONTENT, 0.6),
    EdgeRecord(5, 6, EdgeType.CONTENT, 0.7),
]


@pytest.fixture
def recommender(catalog, vector_store, sample_books):
    """Fixture providing a recommender over the sample library graph."""
    catalog.upsert_books(sample_books)
    catalog.persist_edges(LIBRARY_EDGES)
    recommender = GraphRecommender(catalog, vector_store, GraphHandle())
    recommender.rebuild_graph()
    return recommender


# ===== Pipeline Tests =====


def test_generate_recommendations_fuses_scores(chain_graph):
    results = generate_recommendations(chain_graph, 1, [], limit=10)
    pagerank = personalized_pagerank(chain_graph, [1])

    assert {r.book_id for r in results} == {2, 3, 4}
    for result in results:
        assert result.combined_score == pytest.approx(
            0.7 * result.traversal_score + 0.3 * pagerank[result.book_id]
        )


def test_generate_recommendations_respects_limit(chain_graph):
    results = generate_recommendations(chain_graph, 1, [], limit=1)

    assert [r.book_id for r in results] == [2]


def test_generate_recommendations_without_candidates(chain_graph):
    assert generate_recommendations(chain_graph, 4, [], limit=10) == []
    assert generate_recommendations(BookGraph(), 1, [2], limit=10) == []


def test_generate_recommendations_uses_similarity_fn(chain_graph):
    calls = []

    def similarity(a, b):
        calls.append((a, b))
        return 0.0

    generate_recommendations(chain_graph, 1, [], limit=3, similarity_fn=similarity)

    assert calls


def test_score_proximity_similarity():
    similarity = score_proximity_similarity({1: 0.9, 2: 0.6})

    assert similarity(1, 2) == pytest.approx(0.7)
    assert similarity(1, 1) == 1.0
    assert similarity(1, 99) == pytest.approx(0.1)


# ===== GraphRecommender Tests =====


def test_weights_are_normalized(catalog, vector_store):
    recommender = GraphRecommender(catalog, vector_store, traversal_weight=1.4, pagerank_weight=0.6)

    assert recommender.traversal_weight == pytest.approx(0.7)
    assert recommender.pagerank_weight == pytest.approx(0.3)


def test_recommend_from_graph(recommender):
    recommendations = recommender.recommend(1)

    assert {r.book_id for r in recommendations} == {2, 3, 4, 5, 6}
    assert all(r.reasons for r in recommendations)


def test_recommend_explains_final_hop(recommender):
    by_id = {r.book_id: r for r in recommender.recommend(1)}

    assert by_id[2].path == [1, 2]
    assert by_id[2].reasons == [
        RecommendationReason(ReasonType.SAME_SERIES, series="Earthsea", position="next")
    ]
    assert by_id[3].reasons[-1] == RecommendationReason(ReasonType.CONNECTED_VIA, based_on=2)
    assert by_id[5].reasons[0] == RecommendationReason(ReasonType.SIMILAR_CONTENT, similarity=0.6)


def test_recommend_excludes_preferences(recommender):
    recommendations = recommender.recommend(1, preference_ids=[3, 1])

    assert 3 not in {r.book_id for r in recommendations}


def test_recommend_limit(recommender):
    assert len(recommender.recommend(1, limit=2)) == 2
    assert recommender.recommend(1, limit=0) == []


def test_recommend_catalog_fallback(catalog, vector_store):
    catalog.upsert_books(
        [
            BookMetadata(5, "Dune", "Frank Herbert"),
            BookMetadata(8, "Dune Messiah", "Frank Herbert", "Dune Chronicles", 2.0),
            BookMetadata(9, "Dune: House Atreides", "Brian Herbert", "Dune Chronicles", 0.5),
        ]
    )
    recommender = GraphRecommender(catalog, vector_store)

    recommendations = recommender.recommend(8)

    assert [r.book_id for r in recommendations] == [9, 5]
    assert recommendations[0].score == FALLBACK_SERIES_SCORE
    assert recommendations[0].reasons == [
        RecommendationReason(ReasonType.SAME_SERIES, series="Dune Chronicles", position="previous")
    ]
    assert recommendations[1].score == FALLBACK_AUTHOR_SCORE
    assert recommendations[1].reasons[0].type == ReasonType.SAME_AUTHOR


def test_recommend_unknown_book_is_empty(recommender):
    assert recommender.recommend(404) == []


def test_recommend_for_user_skips_rated_books(recommender):
    recommendations = recommender.recommend_for_user()

    ids = [r.book_id for r in recommendations]
    assert ids
    assert not {1, 4} & set(ids)
    assert len(ids) == len(set(ids))
    scores = [r.score for r in recommendations]
    assert scores == sorted(scores, reverse=True)


def test_recommend_for_user_without_ratings(catalog, vector_store):
    catalog.upsert_book(BookMetadata(1, "Unrated"))
    assert GraphRecommender(catalog, vector_store).recommend_for_user() == []


def test_similarity_fn_prefers_embeddings(recommender, vector_store):
    vector_store.store(2, [1.0, 0.0, 0.0, 0.0], "test-model")
    vector_store.store(3, [0.0, 1.0, 0.0, 0.0], "test-model")
    similarity = recommender._similarity_fn({2: 0.9, 3: 0.8, 5: 0.4})

    assert similarity(2, 3) == pytest.approx(0.0)
    assert similarity(2, 5) == pytest.approx(0.5)


def test_recommend_reads_embeddings_once(recommender, monkeypatch):
    """Test that MMR similarity never goes back to storage per pair."""
    original = vector_store_module.sqlite_connection
    operations = []

    @contextmanager
    def counting_connection(db_path, operation):
        operations.append(operation)
        with original(db_path, operation) as conn:
            yield conn

    monkeypatch.setattr(vector_store_module, "sqlite_connection", counting_connection)

    assert recommender.recommend(1)
    assert recommender.recommend(2)

    assert operations == ["load_embeddings"]


def test_similar_books_uses_vector_store(recommender, vector_store):
    vector_store.store(2, [1.0, 0.0, 0.0, 0.0], "test-model")
    vector_store.store(3, [0.9, 0.1, 0.0, 0.0], "test-model")

    assert [book_id for book_id, _ in recommender.similar_books(2, k=5)] == [3]


def test_rebuild_graph_picks_up_new_edges(recommender, catalog):
    before = recommender.graph
    catalog.persist_edges([EdgeRecord(3, 6, EdgeType.CONTENT, 0.8)])

    after = recommender.rebuild_graph()

    assert recommender.graph is after
    assert after.edge_count() == before.edge_count() + 2


def test_stats(recommender):
    stats = recommender.stats()

    assert stats["graph"] == {"nodes": 6, "edges": 12}
    assert stats["catalog"] == {"books": 6, "edges": 6}
    assert stats["embeddings"]["dimension"] == 4


# ===== Factory Tests =====


def test_create_graph_recommender_builds_from_catalog(db_path, tmp_path, catalog, sample_books):
    catalog.upsert_books(sample_books)
    catalog.persist_edges(LIBRARY_EDGES)
    settings = Settings(db_path=db_path, embedding_dim=4, snapshot_dir=str(tmp_path / "models"))

    recommender = create_graph_recommender(settings)

    assert recommender.graph.edge_count() == 12


def test_create_graph_recommender_prefers_snapshot(db_path, tmp_path, chain_graph):
    snapshot_dir = str(tmp_path / "models")
    save_graph_snapshot(chain_graph, snapshot_dir)
    settings = Settings(db_path=db_path, embedding_dim=4, snapshot_dir=snapshot_dir)

    recommender = create_graph_recommender(settings)

    assert recommender.graph.edges() == chain_graph.edges()


# ===== Explanation Tests =====


def test_series_position():
    first = BookMetadata(1, series="S", series_index=1)
    second = BookMetadata(2, series="S", series_index=2)
    unknown = BookMetadata(3, series="S")

    assert series_position(first, second) == "next"
    assert series_position(second, first) == "previous"
    assert series_position(first, unknown) == "in series"


def test_build_reasons_by_edge_type():
    source = BookMetadata(1, author="Le Guin", series="Earthsea", series_index=1)
    target = BookMetadata(2, author="Le Guin", series="Earthsea", series_index=2)

    assert build_reasons(source, target, EdgeType.AUTHOR, 0.85)[0].author == "Le Guin"
    assert build_reasons(source, target, EdgeType.SERIES, 0.95)[0].position == "next"
    assert build_reasons(source, target, EdgeType.CONTENT, 0.123456)[0].similarity == 0.1235


def test_explain_path_without_hops(catalog, chain_graph):
    assert explain_path([1], [], chain_graph, catalog) == []


def test_reason_to_dict_drops_unset_fields():
    reason = RecommendationReason(ReasonType.CONNECTED_VIA, based_on=7)

    assert reason.to_dict() == {"type": "connected_via", "based_on": 7}
