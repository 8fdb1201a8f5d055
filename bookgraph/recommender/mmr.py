"""Maximal Marginal Relevance re-ranking.

Balances relevance against redundancy so the final list does not consist
of near-duplicates:

    MMR = lambda * relevance - (1 - lambda) * max(similarity to selected)
"""

from typing import Callable, List, Sequence

from bookgraph.recommender.traversal import TraversalCandidate

DEFAULT_MMR_LAMBDA = 0.7


def maximal_marginal_relevance(
    candidates: Sequence[TraversalCandidate],
    similarity_fn: Callable[[int, int], float],
    lambda_param: float = DEFAULT_MMR_LAMBDA,
    top_k: int = 10,
) -> List[TraversalCandidate]:
    """Greedily select a diverse top-k from scored candidates.

    The candidate score is used as relevance. Exact MMR ties go to the more
    relevant candidate, then to the earlier one.

    Args:
        candidates: Scored candidates.
        similarity_fn: Similarity between two book ids.
        lambda_param: Relevance/diversity trade-off (1.0 = relevance only).
        top_k: Number of items to select.

    Returns:
        Selected candidates in selection order.
    """
    selected: List[TraversalCandidate] = []
    remaining = list(candidates)

    while len(selected) < top_k and remaining:
        best_idx = 0
        best_key = None

        for idx, candidate in enumerate(remaining):
            if selected:
                max_sim = max(similarity_fn(candidate.book_id, s.book_id) for s in selected)
                max_sim = max(max_sim, 0.0)
            else:
                max_sim = 0.0

            mmr = lambda_param * candidate.score - (1.0 - lambda_param) * max_sim
            key = (mmr, candidate.score)
            if best_key is None or key > best_key:
                best_key = key
                best_idx = idx

        selected.append(remaining.pop(best_idx))

    return selected
