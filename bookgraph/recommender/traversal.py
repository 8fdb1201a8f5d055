"""Multi-hop graph traversal for candidate expansion.

Explores the similarity graph beyond direct neighbors to surface books
that are related transitively, e.g. books by the author of a book that
is similar to yours.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from bookgraph.recommender.graph import BookGraph, EdgeType

# Configure module logger
logger = logging.getLogger(__name__)

# Default traversal parameters
DEFAULT_MAX_HOPS = 3
DEFAULT_MIN_WEIGHTS = (0.5, 0.4, 0.3)
DEFAULT_DECAY_FACTOR = 0.75
DEFAULT_MAX_CANDIDATES = 500
# Threshold for hops beyond the configured list
FALLBACK_MIN_WEIGHT = 0.3


@dataclass
class TraversalConfig:
    """Multi-hop traversal configuration.

    Attributes:
        max_hops: Maximum number of hops from a seed.
        min_weights: Minimum edge weight per hop level; deeper hops accept
            weaker edges.
        decay_factor: Score decay per hop, applied as decay_factor ** hop.
        max_candidates: Maximum number of distinct candidates to collect.
    """

    max_hops: int = DEFAULT_MAX_HOPS
    min_weights: List[float] = field(default_factory=lambda: list(DEFAULT_MIN_WEIGHTS))
    decay_factor: float = DEFAULT_DECAY_FACTOR
    max_candidates: int = DEFAULT_MAX_CANDIDATES

    def min_weight_for_hop(self, hop: int) -> float:
        if hop < len(self.min_weights):
            return self.min_weights[hop]
        return FALLBACK_MIN_WEIGHT


@dataclass
class TraversalCandidate:
    """A book reached by traversal, with the best path found to it."""

    book_id: int
    score: float
    path: List[int]
    edge_types: List[EdgeType]


def multi_hop_traversal(
    graph: BookGraph,
    seeds: Sequence[int],
    config: Optional[TraversalConfig] = None,
) -> List[TraversalCandidate]:
    """Expand candidates from seed books by breadth-first traversal.

    Each seed starts with score 1.0. Following an edge of weight w from a
    node at hop h with score s reaches the neighbor with score
    s * w * decay_factor ** h, provided w meets the threshold for hop h.
    A candidate keeps its best-scoring path; every node is expanded at
    most once. Seeds are never returned.

    Args:
        graph: Similarity graph to traverse.
        seeds: Book ids to start from.
        config: Traversal parameters (defaults if None).

    Returns:
        Candidates sorted by descending score.
    """
    config = config or TraversalConfig()
    seed_set = set(seeds)

    candidates: Dict[int, TraversalCandidate] = {}
    visited = set(seed_set)
    frontier: Deque[Tuple[int, float, List[int], List[EdgeType], int]] = deque(
        (seed, 1.0, [seed], [], 0) for seed in dict.fromkeys(seeds)
    )

    while frontier:
        node, accumulated_score, path, edge_types, hop = frontier.popleft()
        if hop >= config.max_hops or len(candidates) >= config.max_candidates:
            continue

        min_weight = config.min_weight_for_hop(hop)
        decay = config.decay_factor ** hop

        for neighbor, edge_weight, edge_type in graph.neighbors(node):
            if edge_weight < min_weight or neighbor in seed_set:
                continue

            new_score = accumulated_score * edge_weight * decay
            new_path = path + [neighbor]
            new_edge_types = edge_types + [edge_type]

            existing = candidates.get(neighbor)
            if existing is None:
                if len(candidates) >= config.max_candidates:
                    continue
                candidates[neighbor] = TraversalCandidate(
                    neighbor, new_score, new_path, new_edge_types
                )
            elif new_score > existing.score:
                candidates[neighbor] = TraversalCandidate(
                    neighbor, new_score, new_path, new_edge_types
                )

            if neighbor not in visited:
                visited.add(neighbor)
                frontier.append((neighbor, new_score, new_path, new_edge_types, hop + 1))

    result = sorted(candidates.values(), key=lambda c: c.score, reverse=True)
    logger.debug(
        f"Traversal from {len(seed_set)} seeds found {len(result)} candidates "
        f"({len(visited)} nodes visited)"
    )
    return result
