"""Edge-weight fusion.

Turns the signals available for a pair of books (embedding similarity,
shared author, shared series) into typed, weighted edges.
"""

from typing import List, Optional, Tuple

from bookgraph.recommender.catalog import BookMetadata
from bookgraph.recommender.graph import EdgeType

# Rule constants
CONTENT_SIMILARITY_THRESHOLD = 0.3
AUTHOR_EDGE_WEIGHT = 0.85
SERIES_ADJACENT_WEIGHT = 0.95
SERIES_SAME_WEIGHT = 0.75
SERIES_UNKNOWN_POSITION_WEIGHT = 0.7
SERIES_ADJACENT_DISTANCE = 1.0


def _series_weight(book_a: BookMetadata, book_b: BookMetadata) -> float:
    if book_a.series_index is None or book_b.series_index is None:
        return SERIES_UNKNOWN_POSITION_WEIGHT
    if abs(book_a.series_index - book_b.series_index) <= SERIES_ADJACENT_DISTANCE:
        return SERIES_ADJACENT_WEIGHT
    return SERIES_SAME_WEIGHT


def compute_all_edge_weights(
    book_a: BookMetadata,
    book_b: BookMetadata,
    embedding_similarity: Optional[float] = None,
) -> List[Tuple[float, EdgeType]]:
    """Compute every qualifying edge between two books.

    Rules are evaluated independently:
        - content: embedding similarity above 0.3, weight = similarity
        - author: same non-empty author, weight 0.85
        - series: same non-empty series, weight 0.95 for adjacent entries,
          0.75 for non-adjacent entries, 0.7 if a position is unknown

    Args:
        book_a: Metadata of the first book.
        book_b: Metadata of the second book.
        embedding_similarity: Cosine similarity of the books' embeddings,
            if both have one.

    Returns:
        List of (weight, edge_type), empty if no rule qualifies.

    Example:
        >>> a = BookMetadata(1, author="Le Guin", series="Earthsea", series_index=1)
        >>> b = BookMetadata(2, author="Le Guin", series="Earthsea", series_index=2)
        >>> compute_all_edge_weights(a, b)
        [(0.85, <EdgeType.AUTHOR: 'author'>), (0.95, <EdgeType.SERIES: 'series'>)]
    """
    edges: List[Tuple[float, EdgeType]] = []

    if embedding_similarity is not None and embedding_similarity > CONTENT_SIMILARITY_THRESHOLD:
        edges.append((float(embedding_similarity), EdgeType.CONTENT))

    if book_a.author and book_a.author == book_b.author:
        edges.append((AUTHOR_EDGE_WEIGHT, EdgeType.AUTHOR))

    if book_a.series and book_a.series == book_b.series:
        edges.append((_series_weight(book_a, book_b), EdgeType.SERIES))

    return edges


def compute_edge_weight(
    book_a: BookMetadata,
    book_b: BookMetadata,
    embedding_similarity: Optional[float] = None,
) -> Tuple[float, EdgeType]:
    """Compute the single strongest edge between two books.

    Returns:
        (weight, edge_type) of the heaviest qualifying edge, or
        (0.0, EdgeType.NONE) when no rule qualifies.
    """
    edges = compute_all_edge_weights(book_a, book_b, embedding_similarity)
    if not edges:
        return 0.0, EdgeType.NONE
    return max(edges, key=lambda edge: edge[0])
