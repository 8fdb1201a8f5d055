"""Library indexing.

Generates embeddings for catalog books and materializes the similarity
edges the graph is built from.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from bookgraph.exceptions import ProviderError
from bookgraph.recommender.catalog import CatalogStore
from bookgraph.recommender.embed import EmbeddingProvider, book_to_embedding_text, text_hash
from bookgraph.recommender.fusion import compute_all_edge_weights
from bookgraph.recommender.graph import EdgeRecord
from bookgraph.recommender.vector_store import VectorStore

# Configure module logger
logger = logging.getLogger(__name__)

# Indexing configuration constants
DEFAULT_SIMILAR_K = 50
DEFAULT_MIN_EDGE_WEIGHT = 0.3


@dataclass
class IndexingConfig:
    """Indexing configuration.

    Attributes:
        similar_k: Nearest neighbours considered per book.
        min_edge_weight: Edges lighter than this are not persisted.
    """

    similar_k: int = DEFAULT_SIMILAR_K
    min_edge_weight: float = DEFAULT_MIN_EDGE_WEIGHT


@dataclass
class IndexingSummary:
    processed: int = 0
    skipped: int = 0
    edges: int = 0
    failed: Dict[int, str] = field(default_factory=dict)


class LibraryIndexer:
    """Embeds books and keeps their graph edges up to date."""

    def __init__(
        self,
        catalog: CatalogStore,
        vector_store: VectorStore,
        provider: EmbeddingProvider,
        config: Optional[IndexingConfig] = None,
    ):
        self.catalog = catalog
        self.vector_store = vector_store
        self.provider = provider
        self.config = config or IndexingConfig()

    def generate_embedding(self, book_id: int, force: bool = False) -> bool:
        """Embed one book and materialize its edges.

        Args:
            book_id: Book to embed.
            force: Re-embed even if the book already has an embedding.

        Returns:
            True if an embedding was generated, False if the book was
            skipped or is not in the catalog.

        Raises:
            ProviderError: If the provider fails. Not retried.
            DimensionMismatchError: If the provider returns a vector of the
                wrong size.
        """
        if not self._embed_only(book_id, force):
            return False

        self.update_graph_edges(book_id)
        return True

    def update_graph_edges(self, book_id: int) -> int:
        """Recompute and persist the edges from one book to its neighbours.

        Returns:
            Number of edges persisted.
        """
        book = self.catalog.get_item_metadata(book_id)
        if book is None:
            logger.warning(f"Book {book_id} not found in catalog, no edges computed")
            return 0

        similar = self.vector_store.find_similar_to_item(book_id, self.config.similar_k)

        edges: List[EdgeRecord] = []
        for neighbor_id, similarity in similar:
            if similarity < self.config.min_edge_weight:
                continue

            neighbor = self.catalog.get_item_metadata(neighbor_id)
            if neighbor is None:
                logger.debug(f"Neighbour {neighbor_id} of book {book_id} has no metadata")
                continue

            for weight, edge_type in compute_all_edge_weights(book, neighbor, similarity):
                if weight >= self.config.min_edge_weight:
                    edges.append(EdgeRecord(book_id, neighbor_id, edge_type, weight))

        if not edges:
            return 0

        count = self.catalog.persist_edges(edges)
        logger.debug(f"Persisted {count} edges for book {book_id}")
        return count

    def index_library(self, book_ids: Optional[Iterable[int]] = None) -> IndexingSummary:
        """Embed the listed books (default: whole catalog) and rebuild their edges.

        Provider failures are recorded per book and do not stop the run.
        Edges are recomputed after all embeddings exist so that books indexed
        early also connect to books indexed later.
        """
        start_time = time.time()
        ids = list(book_ids) if book_ids is not None else self.catalog.all_book_ids()
        summary = IndexingSummary()

        logger.info(f"Indexing {len(ids)} books with model {self.provider.model_tag}")

        for book_id in ids:
            try:
                if self._embed_only(book_id):
                    summary.processed += 1
                else:
                    summary.skipped += 1
            except ProviderError as e:
                logger.warning(f"Embedding failed for book {book_id}: {e.message}")
                summary.failed[book_id] = e.message

        for book_id in ids:
            if book_id not in summary.failed:
                summary.edges += self.update_graph_edges(book_id)

        logger.info(
            "Library indexed",
            extra={
                "processed": summary.processed,
                "skipped": summary.skipped,
                "failed": len(summary.failed),
                "edges": summary.edges,
                "index_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return summary

    def _embed_only(self, book_id: int, force: bool = False) -> bool:
        if not force and self.vector_store.has(book_id):
            logger.debug(f"Book {book_id} already has an embedding, skipping")
            return False

        book = self.catalog.get_item_metadata(book_id)
        if book is None:
            logger.warning(f"Book {book_id} not found in catalog, skipping embedding")
            return False

        text = book_to_embedding_text(book.title, book.author, book.description, book.series)
        self.vector_store.store(
            book_id, self.provider.embed(text), self.provider.model_tag, text_hash(text)
        )
        return True
