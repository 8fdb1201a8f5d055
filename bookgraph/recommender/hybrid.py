"""Hybrid recommendation module.

Combines multi-hop graph traversal, personalized PageRank and MMR
diversity re-ranking into a single recommendation pipeline.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from bookgraph.config import Settings
from bookgraph.recommender.catalog import BookMetadata, CatalogStore
from bookgraph.recommender.explain import (
    ReasonType,
    RecommendationReason,
    explain_path,
    series_position,
)
from bookgraph.recommender.graph import BookGraph, EdgeType, GraphHandle
from bookgraph.recommender.mmr import DEFAULT_MMR_LAMBDA, maximal_marginal_relevance
from bookgraph.recommender.pagerank import PageRankConfig, personalized_pagerank
from bookgraph.recommender.traversal import (
    TraversalCandidate,
    TraversalConfig,
    multi_hop_traversal,
)
from bookgraph.recommender.utils import check_snapshot_exists, load_graph_snapshot
from bookgraph.recommender.vector_store import VectorStore, cosine_similarity

# Configure module logger
logger = logging.getLogger(__name__)

# Default weights for hybrid scoring
DEFAULT_TRAVERSAL_WEIGHT = 0.7  # 70% path evidence
DEFAULT_PAGERANK_WEIGHT = 0.3  # 30% global relevance
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

# Catalog fallback when the graph has nothing for a book
FALLBACK_AUTHOR_SCORE = 0.8
FALLBACK_SERIES_SCORE = 0.9

# Personalized recommendations
DEFAULT_PER_RATED_BOOK = 5


@dataclass
class RecommendationScore:
    """Score breakdown for one recommended book."""

    book_id: int
    traversal_score: float
    pagerank_score: float
    combined_score: float
    path: List[int]
    edge_types: List[EdgeType]


@dataclass
class Recommendation:
    """A recommended book with its score and the reasons behind it."""

    book_id: int
    score: float
    traversal_score: float = 0.0
    pagerank_score: float = 0.0
    path: List[int] = field(default_factory=list)
    edge_types: List[EdgeType] = field(default_factory=list)
    reasons: List[RecommendationReason] = field(default_factory=list)


def score_proximity_similarity(scores: Dict[int, float]) -> Callable[[int, int], float]:
    """Similarity of two candidates as 1 - |score_a - score_b|."""

    def similarity(book_a: int, book_b: int) -> float:
        return 1.0 - abs(scores.get(book_a, 0.0) - scores.get(book_b, 0.0))

    return similarity


def generate_recommendations(
    graph: BookGraph,
    source_item: int,
    preference_items: Sequence[int],
    limit: int,
    traversal_config: Optional[TraversalConfig] = None,
    pagerank_config: Optional[PageRankConfig] = None,
    similarity_fn: Optional[Callable[[int, int], float]] = None,
    mmr_lambda: float = DEFAULT_MMR_LAMBDA,
    traversal_weight: float = DEFAULT_TRAVERSAL_WEIGHT,
    pagerank_weight: float = DEFAULT_PAGERANK_WEIGHT,
) -> List[RecommendationScore]:
    """Generate recommendations using the full hybrid pipeline.

    1. Multi-hop traversal from the source book.
    2. Personalized PageRank seeded at the source, biased to preferences.
    3. combined = traversal_weight * traversal + pagerank_weight * pagerank.
    4. MMR re-ranking of the combined scores for diversity.

    Args:
        graph: Similarity graph snapshot.
        source_item: Book to recommend from.
        preference_items: Books the user rated highly.
        limit: Maximum number of recommendations.
        traversal_config: Traversal parameters (defaults if None).
        pagerank_config: PageRank parameters (defaults if None).
        similarity_fn: Pairwise similarity used by MMR. Defaults to
            closeness of combined scores.
        mmr_lambda: MMR relevance/diversity trade-off.
        traversal_weight: Weight of the traversal score.
        pagerank_weight: Weight of the PageRank score.

    Returns:
        Recommendations in MMR selection order; empty if the traversal
        finds nothing.
    """
    scored = score_candidates(
        graph,
        source_item,
        preference_items,
        traversal_config=traversal_config,
        pagerank_config=pagerank_config,
        traversal_weight=traversal_weight,
        pagerank_weight=pagerank_weight,
    )
    if not scored:
        return []

    if similarity_fn is None:
        similarity_fn = score_proximity_similarity(
            {s.book_id: s.combined_score for s in scored}
        )
    return rerank(scored, similarity_fn, mmr_lambda, limit)


def score_candidates(
    graph: BookGraph,
    source_item: int,
    preference_items: Sequence[int],
    traversal_config: Optional[TraversalConfig] = None,
    pagerank_config: Optional[PageRankConfig] = None,
    traversal_weight: float = DEFAULT_TRAVERSAL_WEIGHT,
    pagerank_weight: float = DEFAULT_PAGERANK_WEIGHT,
) -> List[RecommendationScore]:
    """Traverse from the source and fuse traversal and PageRank scores.

    Returns candidates in traversal order (descending traversal score).
    """
    candidates = multi_hop_traversal(graph, [source_item], traversal_config)
    if not candidates:
        return []

    pagerank_scores = personalized_pagerank(
        graph, [source_item], list(preference_items), pagerank_config
    )

    scored = []
    for candidate in candidates:
        pr_score = pagerank_scores.get(candidate.book_id, 0.0)
        scored.append(
            RecommendationScore(
                book_id=candidate.book_id,
                traversal_score=candidate.score,
                pagerank_score=pr_score,
                combined_score=traversal_weight * candidate.score + pagerank_weight * pr_score,
                path=candidate.path,
                edge_types=candidate.edge_types,
            )
        )
    return scored


def rerank(
    scored: Sequence[RecommendationScore],
    similarity_fn: Callable[[int, int], float],
    mmr_lambda: float = DEFAULT_MMR_LAMBDA,
    limit: int = DEFAULT_LIMIT,
) -> List[RecommendationScore]:
    """MMR re-ranking of fused scores, combined score as relevance."""
    by_id = {s.book_id: s for s in scored}
    mmr_input = [
        TraversalCandidate(s.book_id, s.combined_score, s.path, s.edge_types)
        for s in scored
    ]
    diverse = maximal_marginal_relevance(mmr_input, similarity_fn, mmr_lambda, limit)
    return [by_id[c.book_id] for c in diverse]


class GraphRecommender:
    """Recommendation service over a catalog, a vector store and a graph."""

    def __init__(
        self,
        catalog: CatalogStore,
        vector_store: VectorStore,
        graph_handle: Optional[GraphHandle] = None,
        traversal_weight: float = DEFAULT_TRAVERSAL_WEIGHT,
        pagerank_weight: float = DEFAULT_PAGERANK_WEIGHT,
        mmr_lambda: float = DEFAULT_MMR_LAMBDA,
        traversal_config: Optional[TraversalConfig] = None,
        pagerank_config: Optional[PageRankConfig] = None,
        graph_min_weight: float = 0.3,
        mirror_edges: bool = True,
    ):
        """Initialize the recommender.

        Args:
            catalog: Book metadata and persisted edges.
            vector_store: Book embeddings, used for MMR diversity.
            graph_handle: Holder of the current graph; a new empty one if None.
            traversal_weight: Weight of the multi-hop traversal score.
            pagerank_weight: Weight of the personalized PageRank score.
            mmr_lambda: Relevance/diversity trade-off for re-ranking.
            traversal_config: Traversal depth, decay and candidate limits.
            pagerank_config: PageRank damping, iterations and tolerance.
            graph_min_weight: Minimum edge weight loaded on rebuild.
            mirror_edges: Insert reverse edges on rebuild.
        """
        self.catalog = catalog
        self.vector_store = vector_store
        self.graph_handle = graph_handle or GraphHandle()
        self.traversal_weight = traversal_weight
        self.pagerank_weight = pagerank_weight
        self.mmr_lambda = mmr_lambda
        self.traversal_config = traversal_config or TraversalConfig()
        self.pagerank_config = pagerank_config or PageRankConfig()
        self.graph_min_weight = graph_min_weight
        self.mirror_edges = mirror_edges

        # Normalize weights
        total_weight = traversal_weight + pagerank_weight
        if total_weight > 0:
            self.traversal_weight = traversal_weight / total_weight
            self.pagerank_weight = pagerank_weight / total_weight

        logger.info(
            f"Initialized GraphRecommender: "
            f"traversal weight={self.traversal_weight:.2f}, "
            f"PageRank weight={self.pagerank_weight:.2f}, "
            f"MMR lambda={self.mmr_lambda:.2f}"
        )

    @property
    def graph(self) -> BookGraph:
        return self.graph_handle.get()

    def rebuild_graph(self) -> BookGraph:
        """Rebuild the graph from the catalog's persisted edges."""
        return self.graph_handle.rebuild(
            self.catalog, min_weight=self.graph_min_weight, mirror=self.mirror_edges
        )

    def _similarity_fn(self, combined: Dict[int, float]) -> Callable[[int, int], float]:
        """Embedding similarity where both books have embeddings, score proximity otherwise.

        Candidate embeddings are fetched once, up front, so MMR never goes
        back to storage.
        """
        fallback = score_proximity_similarity(combined)
        embeddings = self.vector_store.get_many(combined)

        def similarity(book_a: int, book_b: int) -> float:
            emb_a = embeddings.get(book_a)
            emb_b = embeddings.get(book_b)
            if emb_a is None or emb_b is None:
                return fallback(book_a, book_b)
            return cosine_similarity(emb_a, emb_b)

        return similarity

    def _fallback_recommendations(self, source: BookMetadata, limit: int) -> List[Recommendation]:
        """Same-author and same-series books straight from the catalog."""
        recommendations: Dict[int, Recommendation] = {}
        half = max(limit // 2, 1)

        if source.author:
            for book in self.catalog.books_by_author(source.author, limit=half + 1):
                if book.book_id == source.book_id:
                    continue
                recommendations[book.book_id] = Recommendation(
                    book_id=book.book_id,
                    score=FALLBACK_AUTHOR_SCORE,
                    reasons=[RecommendationReason(ReasonType.SAME_AUTHOR, author=source.author)],
                )

        if source.series:
            for book in self.catalog.books_in_series(source.series, limit=half + 1):
                if book.book_id == source.book_id or book.book_id in recommendations:
                    continue
                recommendations[book.book_id] = Recommendation(
                    book_id=book.book_id,
                    score=FALLBACK_SERIES_SCORE,
                    reasons=[
                        RecommendationReason(
                            ReasonType.SAME_SERIES,
                            series=source.series,
                            position=series_position(source, book),
                        )
                    ],
                )

        ranked = sorted(recommendations.values(), key=lambda r: r.score, reverse=True)
        return ranked[:limit]

    def recommend(
        self,
        book_id: int,
        limit: int = DEFAULT_LIMIT,
        preference_ids: Optional[Sequence[int]] = None,
    ) -> List[Recommendation]:
        """Get recommendations for books related to a given book.

        Falls back to same-author/same-series catalog matches when the graph
        has nothing for the book.
        """
        start_time = time.time()
        limit = max(0, min(limit, MAX_LIMIT))
        graph = self.graph

        logger.info(
            "Generating recommendations",
            extra={"book_id": book_id, "limit": limit, "graph_nodes": graph.node_count()},
        )

        # Preference books bias PageRank but are not recommended back
        preferences = [p for p in (preference_ids or []) if p != book_id]
        excluded = set(preferences)
        scored = [
            s
            for s in score_candidates(
                graph,
                book_id,
                preferences,
                traversal_config=self.traversal_config,
                pagerank_config=self.pagerank_config,
                traversal_weight=self.traversal_weight,
                pagerank_weight=self.pagerank_weight,
            )
            if s.book_id not in excluded
        ]

        if scored:
            combined = {s.book_id: s.combined_score for s in scored}
            diverse = rerank(scored, self._similarity_fn(combined), self.mmr_lambda, limit)
            recommendations = [
                Recommendation(
                    book_id=s.book_id,
                    score=s.combined_score,
                    traversal_score=s.traversal_score,
                    pagerank_score=s.pagerank_score,
                    path=list(s.path),
                    edge_types=list(s.edge_types),
                    reasons=explain_path(s.path, s.edge_types, graph, self.catalog),
                )
                for s in diverse
            ]
            strategy = "graph"
        else:
            source = self.catalog.get_item_metadata(book_id)
            recommendations = self._fallback_recommendations(source, limit) if source else []
            strategy = "catalog_fallback"

        logger.info(
            "Recommendations generated",
            extra={
                "book_id": book_id,
                "strategy": strategy,
                "num_recommendations": len(recommendations),
                "total_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return recommendations

    def recommend_for_user(self, limit: int = DEFAULT_LIMIT) -> List[Recommendation]:
        """Get recommendations based on the books the user rated highly.

        Aggregates recommendations from each highly rated book, keeping the
        best score per book and skipping books the user already rated.
        """
        limit = max(0, min(limit, MAX_LIMIT))
        rated = self.catalog.highly_rated()
        if not rated:
            logger.info("No highly rated books, personalized recommendations unavailable")
            return []

        rated_ids = [book.book_id for book in rated]
        rated_set = set(rated_ids)

        best: Dict[int, Recommendation] = {}
        for book_id in rated_ids:
            for rec in self.recommend(book_id, DEFAULT_PER_RATED_BOOK, preference_ids=rated_ids):
                if rec.book_id in rated_set:
                    continue
                current = best.get(rec.book_id)
                if current is None or rec.score > current.score:
                    best[rec.book_id] = rec

        ranked = sorted(best.values(), key=lambda r: r.score, reverse=True)
        logger.info(
            f"Generated {min(len(ranked), limit)} personalized recommendations "
            f"from {len(rated_ids)} rated books"
        )
        return ranked[:limit]

    def similar_books(self, book_id: int, k: int = 10) -> List[tuple]:
        """Nearest neighbours of a book by embedding similarity."""
        return self.vector_store.find_similar_to_item(book_id, k)

    def stats(self) -> Dict[str, object]:
        graph = self.graph
        return {
            "embeddings": self.vector_store.stats(),
            "graph": {"nodes": graph.node_count(), "edges": graph.edge_count()},
            "catalog": {
                "books": self.catalog.book_count(),
                "edges": self.catalog.edge_count(),
            },
        }


def create_graph_recommender(settings: Settings) -> GraphRecommender:
    """Create a recommender from settings.

    Starts from the saved graph snapshot if there is one, otherwise builds
    the graph from the catalog.
    """
    catalog = CatalogStore(settings.db_path)
    vector_store = VectorStore(settings.db_path, dimension=settings.embedding_dim)

    recommender = GraphRecommender(
        catalog=catalog,
        vector_store=vector_store,
        graph_min_weight=settings.graph_min_weight,
        mirror_edges=settings.mirror_edges,
    )

    graph = None
    if check_snapshot_exists(settings.snapshot_dir):
        graph = load_graph_snapshot(settings.snapshot_dir)

    if graph is None:
        logger.warning(
            f"No graph snapshot in {settings.snapshot_dir}. Building graph from catalog."
        )
        recommender.rebuild_graph()
    else:
        recommender.graph_handle.swap(graph)

    return recommender
