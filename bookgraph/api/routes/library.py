"""Library maintenance endpoints.

Embedding similarity lookups, graph rebuilds and embedding cache resets.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from bookgraph.api.dependencies import get_recommender, get_settings
from bookgraph.config import Settings
from bookgraph.exceptions import ItemNotFoundError
from bookgraph.recommender.hybrid import GraphRecommender
from bookgraph.recommender.utils import save_graph_snapshot

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(tags=["library"])


class SimilarBook(BaseModel):
    book_id: int
    similarity: float


class SimilarBooksResponse(BaseModel):
    book_id: int = Field(..., description="Query book ID")
    similar: List[SimilarBook] = Field(..., description="Nearest books by embedding")


class GraphRebuildResponse(BaseModel):
    nodes: int
    edges: int


@router.get("/similar/{book_id}", response_model=SimilarBooksResponse)
def get_similar_books(
    book_id: int,
    k: int = Query(10, ge=1, le=100),
    recommender: GraphRecommender = Depends(get_recommender),
) -> SimilarBooksResponse:
    """Nearest neighbours of a book by embedding cosine similarity.

    Books without an embedding get an empty list.
    """
    if recommender.catalog.get_item_metadata(book_id) is None:
        raise ItemNotFoundError(book_id)

    similar = recommender.similar_books(book_id, k)
    return SimilarBooksResponse(
        book_id=book_id,
        similar=[SimilarBook(book_id=bid, similarity=sim) for bid, sim in similar],
    )


@router.post("/graph/rebuild", response_model=GraphRebuildResponse)
def rebuild_graph(
    recommender: GraphRecommender = Depends(get_recommender),
    settings: Settings = Depends(get_settings),
) -> GraphRebuildResponse:
    """Rebuild the graph from persisted edges and save a new snapshot.

    In-flight requests keep using the previous graph.
    """
    graph = recommender.rebuild_graph()
    save_graph_snapshot(graph, settings.snapshot_dir)
    return GraphRebuildResponse(nodes=graph.node_count(), edges=graph.edge_count())


@router.delete("/embeddings")
def clear_embeddings(
    recommender: GraphRecommender = Depends(get_recommender),
) -> Dict[str, int]:
    """Delete every stored embedding."""
    cleared = recommender.vector_store.clear_all()
    logger.warning(f"Cleared {cleared} embeddings via API")
    return {"cleared": cleared}
