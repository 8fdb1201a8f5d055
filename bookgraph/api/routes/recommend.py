"""Recommendation endpoints for the BookGraph API.

Graph-based recommendations for a single book and personalized
recommendations from the books the user rated highly.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from bookgraph import __version__
from bookgraph.api.dependencies import get_recommender
from bookgraph.api.metrics import metrics_service
from bookgraph.exceptions import ItemNotFoundError
from bookgraph.recommender.hybrid import DEFAULT_LIMIT, MAX_LIMIT, GraphRecommender, Recommendation

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)


class RecommendationItem(BaseModel):
    """One recommended book."""

    book_id: int = Field(..., description="Recommended book ID")
    score: float = Field(..., description="Combined score")
    traversal_score: float = Field(0.0, description="Multi-hop traversal score")
    pagerank_score: float = Field(0.0, description="Personalized PageRank score")
    path: List[int] = Field(default_factory=list, description="Path from the source book")
    edge_types: List[str] = Field(default_factory=list, description="Edge type of each hop")
    reasons: List[Dict[str, Any]] = Field(default_factory=list, description="Why it was recommended")


class RecommendationResponse(BaseModel):
    """Response model for recommendation requests.

    Attributes:
        book_id: Source book, or None for personalized recommendations.
        recommendations: Recommended books, best first.
        model_version: Service version that produced the result.
    """

    book_id: Optional[int] = Field(None, description="Source book ID")
    recommendations: List[RecommendationItem] = Field(
        ..., description="Recommended books"
    )
    model_version: str = Field(default=__version__, description="Service version")


def _to_item(rec: Recommendation) -> RecommendationItem:
    return RecommendationItem(
        book_id=rec.book_id,
        score=rec.score,
        traversal_score=rec.traversal_score,
        pagerank_score=rec.pagerank_score,
        path=rec.path,
        edge_types=[edge_type.value for edge_type in rec.edge_types],
        reasons=[reason.to_dict() for reason in rec.reasons],
    )


@router.get("/personalized", response_model=RecommendationResponse)
def get_personalized_recommendations(
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    recommender: GraphRecommender = Depends(get_recommender),
) -> RecommendationResponse:
    """Recommendations based on every book the user rated 4 or higher.

    Returns an empty list when nothing is rated yet.
    """
    start_time = time.time()
    recommendations = recommender.recommend_for_user(limit)
    metrics_service.record_recommendation((time.time() - start_time) * 1000, len(recommendations))

    return RecommendationResponse(
        recommendations=[_to_item(rec) for rec in recommendations],
    )


@router.get("/{book_id}", response_model=RecommendationResponse)
def get_recommendations(
    book_id: int,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    recommender: GraphRecommender = Depends(get_recommender),
) -> RecommendationResponse:
    """Get recommendations for books related to a given book.

    Args:
        book_id: Source book.
        limit: Maximum number of recommendations (1-100).

    Raises:
        ItemNotFoundError: If the book is not in the catalog.

    Example:
        GET /recommend/42?limit=5
        Returns up to 5 books related to book 42.
    """
    if recommender.catalog.get_item_metadata(book_id) is None:
        metrics_service.record_error()
        raise ItemNotFoundError(book_id)

    start_time = time.time()
    recommendations = recommender.recommend(book_id, limit)
    latency_ms = (time.time() - start_time) * 1000
    metrics_service.record_recommendation(latency_ms, len(recommendations))

    if not recommendations:
        logger.info(f"No recommendations yet for book {book_id}")

    return RecommendationResponse(
        book_id=book_id,
        recommendations=[_to_item(rec) for rec in recommendations],
    )
