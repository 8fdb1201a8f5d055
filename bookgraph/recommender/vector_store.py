"""Embedding vector store for similarity search.

Embeddings are persisted in SQLite as little-endian float32 blobs and
cached in memory. Similarity queries run over the cache, which is loaded
from the database once, on first use.
"""

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as pairwise_cosine_similarity

from bookgraph.config import DEFAULT_EMBEDDING_DIM
from bookgraph.exceptions import DimensionMismatchError
from bookgraph.recommender.utils import sqlite_connection

# Configure module logger
logger = logging.getLogger(__name__)

# Embeddings are serialized as raw little-endian float32 values, no header
EMBEDDING_DTYPE = np.dtype("<f4")


def serialize_embedding(embedding: Sequence[float]) -> bytes:
    """Serialize an embedding to bytes (little-endian float32 array)."""
    return np.asarray(embedding, dtype=EMBEDDING_DTYPE).tobytes()


def deserialize_embedding(data: bytes) -> np.ndarray:
    """Deserialize an embedding from bytes.

    Raises:
        ValueError: If the byte length is not a multiple of 4.
    """
    if len(data) % EMBEDDING_DTYPE.itemsize != 0:
        raise ValueError(f"Invalid embedding data: {len(data)} bytes")
    return np.frombuffer(data, dtype=EMBEDDING_DTYPE).astype(np.float32)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Returns 0.0 when the lengths differ or either vector has zero norm.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        return 0.0

    norm_product = np.sqrt(np.dot(a, a) * np.dot(b, b))
    if norm_product > 0.0:
        return float(np.dot(a, b) / norm_product)
    return 0.0


def _frozen(embedding: Sequence[float]) -> np.ndarray:
    vector = np.array(embedding, dtype=np.float32)
    vector.setflags(write=False)
    return vector


class VectorStore:
    """Vector store for book embeddings.

    The cache maps book id to a read-only float32 array. Entries are
    replaced whole, never modified in place, so readers always see a
    complete vector. The cache lock is held only for dictionary access,
    never across database I/O.

    Every store, delete and clear bumps a write generation under the cache
    lock. Database reads note the generation before they start and drop
    any row whose book was written or deleted since, so a read that
    overlaps a write can never put a stale or deleted vector back.
    """

    def __init__(self, db_path: str, dimension: int = DEFAULT_EMBEDDING_DIM):
        """Initialize the store and make sure the embeddings table exists.

        Args:
            db_path: Path to the SQLite database file.
            dimension: Dimension every embedding must have.
        """
        self.db_path = db_path
        self.dimension = dimension
        self._cache: Dict[int, np.ndarray] = {}
        self._cache_lock = threading.Lock()
        self._load_lock = threading.Lock()
        self._cache_loaded = False
        self._generation = 0
        self._written_at: Dict[int, int] = {}
        self._cleared_at = 0

        self._init_schema()

        logger.info(f"Initialized VectorStore: db_path={db_path}, dimension={dimension}")

    def _init_schema(self) -> None:
        with sqlite_connection(self.db_path, "init_embeddings_schema") as conn:
            conn.execute(
                """CREATE TABLE IF NOT EXISTS embeddings (
                    book_id INTEGER PRIMARY KEY,
                    embedding BLOB NOT NULL,
                    model TEXT NOT NULL,
                    text_hash TEXT,
                    created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
                )"""
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_embeddings_model ON embeddings(model)")

    def _bump_generation(self, book_id: Optional[int] = None) -> None:
        # Caller holds _cache_lock
        self._generation += 1
        if book_id is None:
            self._cleared_at = self._generation
        else:
            self._written_at[book_id] = self._generation

    def _written_since(self, book_id: int, generation: int) -> bool:
        # Caller holds _cache_lock
        return self._cleared_at > generation or self._written_at.get(book_id, 0) > generation

    def _decode(self, book_id: int, blob: bytes) -> Optional[np.ndarray]:
        """Decode a stored row, or None if it is corrupt or has the wrong dimension."""
        try:
            embedding = deserialize_embedding(blob)
        except ValueError:
            logger.warning(f"Stored embedding for book {book_id} is corrupt")
            return None
        if embedding.shape[0] != self.dimension:
            logger.warning(
                f"Stored embedding for book {book_id} has {embedding.shape[0]} dimensions, "
                f"expected {self.dimension}"
            )
            return None
        embedding.setflags(write=False)
        return embedding

    @property
    def is_loaded(self) -> bool:
        return self._cache_loaded

    def ensure_loaded(self) -> int:
        """Load every persisted embedding into the cache, once.

        Safe to call from several threads: only the first caller reads the
        database, the others wait for it and return.

        Returns:
            Number of cached embeddings after loading.
        """
        if self._cache_loaded:
            return self.cached_count()

        with self._load_lock:
            if self._cache_loaded:
                return self.cached_count()

            start_time = time.time()
            with self._cache_lock:
                started = self._generation
            with sqlite_connection(self.db_path, "load_embeddings") as conn:
                rows = conn.execute("SELECT book_id, embedding FROM embeddings").fetchall()

            loaded: Dict[int, np.ndarray] = {}
            corrupt = 0
            wrong_dimension = 0
            for book_id, blob in rows:
                try:
                    embedding = deserialize_embedding(blob)
                except ValueError:
                    corrupt += 1
                    continue
                if embedding.shape[0] != self.dimension:
                    wrong_dimension += 1
                    continue
                embedding.setflags(write=False)
                loaded[int(book_id)] = embedding

            with self._cache_lock:
                for book_id, embedding in loaded.items():
                    if not self._written_since(book_id, started):
                        self._cache[book_id] = embedding
                self._cache_loaded = True

            if corrupt:
                logger.warning(f"Skipped {corrupt} undecodable embeddings while loading cache")
            if wrong_dimension:
                logger.warning(
                    f"Skipped {wrong_dimension} embeddings whose dimension is not "
                    f"{self.dimension} while loading cache"
                )

            logger.info(
                "Loaded embeddings into cache",
                extra={
                    "num_embeddings": len(loaded),
                    "skipped": corrupt + wrong_dimension,
                    "load_time_ms": round((time.time() - start_time) * 1000, 2),
                },
            )
            return self.cached_count()

    def store(
        self,
        book_id: int,
        embedding: Sequence[float],
        model_tag: str,
        content_hash: Optional[str] = None,
    ) -> None:
        """Persist an embedding for a book and update the cache.

        Raises:
            DimensionMismatchError: If the embedding length differs from the
                configured dimension. Nothing is written in that case.
            StorageError: If the database write fails.
        """
        vector = _frozen(embedding)
        if vector.ndim != 1 or vector.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, int(vector.size), book_id=book_id)

        with sqlite_connection(self.db_path, "store_embedding") as conn:
            conn.execute(
                "INSERT OR REPLACE INTO embeddings (book_id, embedding, model, text_hash) "
                "VALUES (?, ?, ?, ?)",
                (book_id, serialize_embedding(vector), model_tag, content_hash),
            )

        with self._cache_lock:
            self._cache[book_id] = vector
            self._bump_generation(book_id)

        logger.debug(f"Stored embedding for book {book_id} (model={model_tag})")

    def get(self, book_id: int) -> Optional[np.ndarray]:
        """Get the embedding for a book.

        Checks the cache first, then the database; a database hit is cached.
        Once the cache is fully loaded the database is not consulted.

        Returns:
            Read-only float32 array, or None if the book has no embedding or
            its stored row is corrupt or has the wrong dimension.
        """
        with self._cache_lock:
            cached = self._cache.get(book_id)
            loaded = self._cache_loaded
            started = self._generation
        if cached is not None or loaded:
            return cached

        with sqlite_connection(self.db_path, "get_embedding") as conn:
            row = conn.execute(
                "SELECT embedding FROM embeddings WHERE book_id = ?", (book_id,)
            ).fetchone()

        if row is None:
            return None

        embedding = self._decode(book_id, row[0])
        if embedding is None:
            return None

        with self._cache_lock:
            if self._written_since(book_id, started):
                # Stored or deleted while we were reading; the cache is current
                return self._cache.get(book_id)
            self._cache[book_id] = embedding
        return embedding

    def get_many(self, book_ids: Iterable[int]) -> Dict[int, np.ndarray]:
        """Embeddings of several books from the loaded cache.

        Loads the cache first if needed, then answers without touching the
        database. Books without an embedding are left out.
        """
        self.ensure_loaded()
        with self._cache_lock:
            return {bid: self._cache[bid] for bid in book_ids if bid in self._cache}

    def has(self, book_id: int) -> bool:
        """Check whether a book has an embedding.

        Once the cache is fully loaded it is authoritative and the database
        is not consulted.
        """
        with self._cache_lock:
            if book_id in self._cache:
                return True
        if self._cache_loaded:
            return False

        with sqlite_connection(self.db_path, "has_embedding") as conn:
            row = conn.execute(
                "SELECT 1 FROM embeddings WHERE book_id = ?", (book_id,)
            ).fetchone()
        return row is not None

    def delete(self, book_id: int) -> None:
        """Delete the embedding for a book from the database and cache."""
        with sqlite_connection(self.db_path, "delete_embedding") as conn:
            conn.execute("DELETE FROM embeddings WHERE book_id = ?", (book_id,))
        with self._cache_lock:
            self._cache.pop(book_id, None)
            self._bump_generation(book_id)

    def clear_all(self) -> int:
        """Delete every embedding.

        Returns:
            Number of embeddings removed from the database.
        """
        with sqlite_connection(self.db_path, "clear_embeddings") as conn:
            count = conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]
            conn.execute("DELETE FROM embeddings")
        with self._cache_lock:
            self._cache.clear()
            self._bump_generation()

        logger.info(f"Cleared {count} embeddings")
        return int(count)

    def find_similar(
        self,
        query_embedding: Sequence[float],
        k: int,
        exclude_ids: Optional[Iterable[int]] = None,
    ) -> List[Tuple[int, float]]:
        """Find the k cached embeddings most similar to a query.

        Loads the cache first if it has not been loaded yet. The scan runs
        over a snapshot of the cache taken at call time.

        Args:
            query_embedding: Query vector.
            k: Maximum number of results.
            exclude_ids: Book ids to leave out of the results.

        Returns:
            List of (book_id, similarity) sorted by descending similarity.
        """
        self.ensure_loaded()
        if k <= 0:
            return []

        excluded = set(exclude_ids or ())
        with self._cache_lock:
            snapshot = [(bid, emb) for bid, emb in self._cache.items() if bid not in excluded]

        if not snapshot:
            return []

        book_ids = [bid for bid, _ in snapshot]
        query = np.asarray(query_embedding, dtype=np.float32)
        if query.ndim != 1 or query.shape[0] != self.dimension:
            logger.warning(
                f"Query embedding has {query.size} dimensions, expected {self.dimension}"
            )
            similarities = np.zeros(len(book_ids))
        else:
            matrix = np.vstack([emb for _, emb in snapshot])
            similarities = pairwise_cosine_similarity(query.reshape(1, -1), matrix)[0]

        # Stable sort keeps snapshot order among equal similarities
        order = np.argsort(-similarities, kind="stable")[:k]
        return [(int(book_ids[idx]), float(similarities[idx])) for idx in order]

    def find_similar_to_item(self, book_id: int, k: int) -> List[Tuple[int, float]]:
        """Find books similar to a given book, excluding the book itself."""
        embedding = self.get(book_id)
        if embedding is None:
            logger.debug(f"Book {book_id} has no embedding")
            return []
        return self.find_similar(embedding, k, exclude_ids=[book_id])

    def compute_average(self, book_ids: Iterable[int]) -> Optional[np.ndarray]:
        """Compute the L2-normalized mean embedding of several books.

        Books without an embedding are skipped.

        Returns:
            Float32 array, or None if none of the books has an embedding.
        """
        embeddings = [emb for emb in (self.get(bid) for bid in book_ids) if emb is not None]
        if not embeddings:
            return None

        average = np.mean(np.vstack(embeddings), axis=0).astype(np.float32)
        norm = np.linalg.norm(average)
        if norm > 0:
            average = average / norm
        return average

    def similarity(self, book_a: int, book_b: int) -> Optional[float]:
        """Cosine similarity between two books' embeddings, or None if either is missing."""
        emb_a = self.get(book_a)
        emb_b = self.get(book_b)
        if emb_a is None or emb_b is None:
            return None
        return cosine_similarity(emb_a, emb_b)

    def cached_count(self) -> int:
        with self._cache_lock:
            return len(self._cache)

    def count(self) -> int:
        """Number of embeddings persisted in the database."""
        with sqlite_connection(self.db_path, "count_embeddings") as conn:
            return int(conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0])

    def stats(self) -> Dict[str, object]:
        return {
            "dimension": self.dimension,
            "cached": self.cached_count(),
            "persisted": self.count(),
            "cache_loaded": self._cache_loaded,
        }
