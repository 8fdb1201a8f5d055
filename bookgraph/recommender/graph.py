"""Similarity graph over catalog items.

The graph is an in-memory directed multigraph: nodes are book ids, edges
carry a weight in [0, 1] and an edge type. It is built in bulk from a
snapshot of persisted edges and then only read. Rebuilds produce a new
graph that readers switch to through a GraphHandle.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MIN_WEIGHT = 0.3


class EdgeType(str, Enum):
    """Kinds of relationship between two books.

    New relationship kinds are added here together with the fusion rule
    that emits them (see fusion.compute_all_edge_weights). NONE is only
    returned by compute_edge_weight when no rule qualifies and is never
    stored in the graph.
    """

    CONTENT = "content"
    AUTHOR = "author"
    SERIES = "series"
    NONE = "none"

    @classmethod
    def parse(cls, value: str) -> "EdgeType":
        """Convert a stored edge type string, rejecting NONE and unknown tags."""
        edge_type = cls(value)
        if edge_type is cls.NONE:
            raise ValueError("'none' is not a storable edge type")
        return edge_type


@dataclass(frozen=True)
class EdgeRecord:
    """A persisted edge between two books."""

    source_id: int
    target_id: int
    edge_type: EdgeType
    weight: float


class Neighbor(NamedTuple):
    """One outgoing edge as seen from its source node."""

    book_id: int
    weight: float
    edge_type: EdgeType


class BookGraph:
    """Directed weighted multigraph keyed by book id.

    Adding the same (source, target, type) twice creates two parallel
    edges; deduplication is the caller's job.
    """

    def __init__(self):
        self._adjacency: Dict[int, List[Neighbor]] = {}
        self._edge_count = 0

    def _ensure_node(self, book_id: int) -> List[Neighbor]:
        neighbors = self._adjacency.get(book_id)
        if neighbors is None:
            neighbors = []
            self._adjacency[book_id] = neighbors
        return neighbors

    def add_edge(
        self,
        source: int,
        target: int,
        weight: float,
        edge_type: EdgeType,
    ) -> None:
        """Add a directed edge, creating both endpoint nodes if needed.

        Raises:
            ValueError: If source equals target or weight is outside [0, 1].
        """
        if source == target:
            raise ValueError(f"Self-loop edges are not allowed (book {source})")
        if not 0.0 <= weight <= 1.0:
            raise ValueError(f"Edge weight must be in [0, 1], got {weight}")

        self._ensure_node(source).append(Neighbor(target, float(weight), EdgeType(edge_type)))
        self._ensure_node(target)
        self._edge_count += 1

    def neighbors(self, book_id: int) -> List[Neighbor]:
        """Get all outgoing edges of a node.

        Only edges stored with this node as source are returned. Graphs
        built with mirror=True hold both directions of every relationship.
        Unknown ids have no neighbors.
        """
        return list(self._adjacency.get(book_id, ()))

    def out_degree(self, book_id: int) -> int:
        return len(self._adjacency.get(book_id, ()))

    def nodes(self) -> List[int]:
        """Get all node ids in insertion order."""
        return list(self._adjacency.keys())

    def node_count(self) -> int:
        return len(self._adjacency)

    def edge_count(self) -> int:
        return self._edge_count

    def edges(self) -> List[EdgeRecord]:
        """Get every edge as an EdgeRecord."""
        return [
            EdgeRecord(source, n.book_id, n.edge_type, n.weight)
            for source, neighbors in self._adjacency.items()
            for n in neighbors
        ]

    def __contains__(self, book_id: object) -> bool:
        return book_id in self._adjacency

    def __len__(self) -> int:
        return len(self._adjacency)

    @classmethod
    def from_edges(cls, edges: Iterable[EdgeRecord], mirror: bool = False) -> "BookGraph":
        """Build a graph from edge records.

        Args:
            edges: Edges to insert, in order.
            mirror: If True, also insert the reverse of every edge whose
                reverse (same type) is not itself part of the input.

        Returns:
            A new BookGraph.
        """
        records = list(edges)
        graph = cls()

        stored: Set[Tuple[int, int, EdgeType]] = set()
        if mirror:
            stored = {(e.source_id, e.target_id, e.edge_type) for e in records}

        for edge in records:
            graph.add_edge(edge.source_id, edge.target_id, edge.weight, edge.edge_type)
            if mirror and (edge.target_id, edge.source_id, edge.edge_type) not in stored:
                graph.add_edge(edge.target_id, edge.source_id, edge.weight, edge.edge_type)

        return graph

    @classmethod
    def from_catalog(
        cls,
        catalog,
        min_weight: float = DEFAULT_MIN_WEIGHT,
        mirror: bool = True,
    ) -> "BookGraph":
        """Build a graph from all persisted edges at or above min_weight.

        Args:
            catalog: Any object with a load_edges(min_weight) method.
            min_weight: Minimum edge weight to include.
            mirror: See from_edges.
        """
        start_time = time.time()
        graph = cls.from_edges(catalog.load_edges(min_weight), mirror=mirror)

        logger.info(
            "Graph built from catalog",
            extra={
                "min_weight": min_weight,
                "mirror": mirror,
                "num_nodes": graph.node_count(),
                "num_edges": graph.edge_count(),
                "build_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return graph


class GraphHandle:
    """Holds the current graph snapshot and swaps it atomically.

    Readers call get() and keep using the returned graph for the whole
    query; a concurrent rebuild never mutates a graph that was handed out.
    Rebuilds are serialized against each other.
    """

    def __init__(self, graph: Optional[BookGraph] = None):
        self._graph = graph if graph is not None else BookGraph()
        self._rebuild_lock = threading.Lock()

    def get(self) -> BookGraph:
        return self._graph

    def swap(self, graph: BookGraph) -> BookGraph:
        """Replace the current graph, returning the previous one."""
        with self._rebuild_lock:
            previous, self._graph = self._graph, graph
        return previous

    def rebuild(
        self,
        catalog,
        min_weight: float = DEFAULT_MIN_WEIGHT,
        mirror: bool = True,
    ) -> BookGraph:
        """Build a fresh graph from the catalog and make it current."""
        with self._rebuild_lock:
            graph = BookGraph.from_catalog(catalog, min_weight=min_weight, mirror=mirror)
            self._graph = graph

        logger.info(f"Graph rebuilt: {graph.node_count()} nodes, {graph.edge_count()} edges")
        return graph
