"""Human-readable reasons for recommendations.

Explains why a book was recommended from the edge that led to it: shared
content, shared author, series position, or an intermediate book on a
multi-hop path.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from bookgraph.recommender.catalog import BookMetadata
from bookgraph.recommender.graph import BookGraph, EdgeType


class ReasonType(str, Enum):
    SIMILAR_CONTENT = "similar_content"
    SAME_AUTHOR = "same_author"
    SAME_SERIES = "same_series"
    CONNECTED_VIA = "connected_via"


@dataclass
class RecommendationReason:
    """One reason a book was recommended.

    Only the fields relevant to the reason type are set.
    """

    type: ReasonType
    similarity: Optional[float] = None
    author: Optional[str] = None
    series: Optional[str] = None
    position: Optional[str] = None
    based_on: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["type"] = self.type.value
        return data


def series_position(source: BookMetadata, target: BookMetadata) -> str:
    """Where target sits relative to source within their series."""
    if source.series_index is not None and target.series_index is not None:
        if target.series_index > source.series_index:
            return "next"
        if target.series_index < source.series_index:
            return "previous"
    return "in series"


def build_reasons(
    source: BookMetadata,
    target: BookMetadata,
    edge_type: EdgeType,
    weight: float,
) -> List[RecommendationReason]:
    """Reasons for recommending target because of an edge from source."""
    if edge_type == EdgeType.AUTHOR and target.author:
        return [RecommendationReason(ReasonType.SAME_AUTHOR, author=target.author)]
    if edge_type == EdgeType.SERIES and target.series:
        return [
            RecommendationReason(
                ReasonType.SAME_SERIES,
                series=target.series,
                position=series_position(source, target),
            )
        ]
    return [RecommendationReason(ReasonType.SIMILAR_CONTENT, similarity=round(weight, 4))]


def _edge_weight(graph: BookGraph, source: int, target: int, edge_type: EdgeType) -> float:
    weights = [
        n.weight for n in graph.neighbors(source)
        if n.book_id == target and n.edge_type == edge_type
    ]
    return max(weights, default=0.0)


def explain_path(
    path: Sequence[int],
    edge_types: Sequence[EdgeType],
    graph: BookGraph,
    catalog,
) -> List[RecommendationReason]:
    """Explain a traversal path by its final hop.

    Multi-hop paths additionally name the book the final hop started from.

    Args:
        path: Book ids from seed to recommended book.
        edge_types: Edge type of each hop.
        graph: Graph the path was found in.
        catalog: Object with get_item_metadata(book_id).

    Returns:
        List of reasons, empty if the path has no hops.
    """
    if len(path) < 2 or not edge_types:
        return []

    source_id, target_id = path[-2], path[-1]
    edge_type = edge_types[-1]

    source = catalog.get_item_metadata(source_id) or BookMetadata(source_id)
    target = catalog.get_item_metadata(target_id) or BookMetadata(target_id)
    weight = _edge_weight(graph, source_id, target_id, edge_type)

    reasons = build_reasons(source, target, edge_type, weight)
    if len(path) > 2:
        reasons.append(RecommendationReason(ReasonType.CONNECTED_VIA, based_on=source_id))
    return reasons
