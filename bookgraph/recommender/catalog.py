"""Catalog store for book metadata and graph edges.

SQLite-backed store for the book catalog and the persisted edges the
similarity graph is built from.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import pandas as pd

from bookgraph.recommender.graph import EdgeRecord, EdgeType
from bookgraph.recommender.utils import sqlite_connection

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MIN_RATING = 4
DEFAULT_HIGHLY_RATED_LIMIT = 10

CATALOG_REQUIRED_COLUMNS = {"book_id", "title"}
CATALOG_OPTIONAL_COLUMNS = ["author", "series", "series_index", "rating", "description"]

_BOOK_COLUMNS = "id, title, author, series, series_index, rating, description"


@dataclass
class BookMetadata:
    """Catalog entry for one book."""

    book_id: int
    title: str = ""
    author: Optional[str] = None
    series: Optional[str] = None
    series_index: Optional[float] = None
    rating: Optional[int] = None
    description: Optional[str] = None


def _row_to_book(row) -> BookMetadata:
    return BookMetadata(
        book_id=int(row[0]),
        title=row[1] or "",
        author=row[2],
        series=row[3],
        series_index=row[4],
        rating=row[5],
        description=row[6],
    )


class CatalogStore:
    """SQLite catalog of books and their relationship edges."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_schema()

    def _init_schema(self) -> None:
        with sqlite_connection(self.db_path, "init_catalog_schema") as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT,
                    series TEXT,
                    series_index REAL,
                    rating INTEGER,
                    description TEXT
                );

                CREATE TABLE IF NOT EXISTS book_edges (
                    source_id INTEGER NOT NULL,
                    target_id INTEGER NOT NULL,
                    edge_type TEXT NOT NULL,
                    weight REAL NOT NULL,
                    computed_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
                    PRIMARY KEY (source_id, target_id, edge_type),
                    CHECK (source_id != target_id),
                    CHECK (weight >= 0 AND weight <= 1)
                );

                CREATE INDEX IF NOT EXISTS idx_books_author ON books(author);
                CREATE INDEX IF NOT EXISTS idx_books_series ON books(series, series_index);
                CREATE INDEX IF NOT EXISTS idx_edges_source ON book_edges(source_id, weight DESC);
                CREATE INDEX IF NOT EXISTS idx_edges_target ON book_edges(target_id, weight DESC);
                CREATE INDEX IF NOT EXISTS idx_edges_type ON book_edges(edge_type, weight DESC);
                """
            )

    # ===== Books =====

    def upsert_book(self, book: BookMetadata) -> None:
        self.upsert_books([book])

    def upsert_books(self, books: Iterable[BookMetadata]) -> int:
        """Insert or replace books in one transaction.

        Returns:
            Number of books written.
        """
        rows = [
            (b.book_id, b.title, b.author, b.series, b.series_index, b.rating, b.description)
            for b in books
        ]
        with sqlite_connection(self.db_path, "upsert_books") as conn:
            conn.executemany(
                f"INSERT OR REPLACE INTO books ({_BOOK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        logger.debug(f"Upserted {len(rows)} books")
        return len(rows)

    def get_item_metadata(self, book_id: int) -> Optional[BookMetadata]:
        """Get a book's metadata, or None if it is not in the catalog."""
        with sqlite_connection(self.db_path, "get_book") as conn:
            row = conn.execute(
                f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)
            ).fetchone()
        return _row_to_book(row) if row is not None else None

    def all_book_ids(self) -> List[int]:
        with sqlite_connection(self.db_path, "list_books") as conn:
            rows = conn.execute("SELECT id FROM books ORDER BY id").fetchall()
        return [int(r[0]) for r in rows]

    def all_books(self) -> List[BookMetadata]:
        with sqlite_connection(self.db_path, "list_books") as conn:
            rows = conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books ORDER BY id").fetchall()
        return [_row_to_book(r) for r in rows]

    def books_by_author(self, author: str, limit: int = 10) -> List[BookMetadata]:
        with sqlite_connection(self.db_path, "books_by_author") as conn:
            rows = conn.execute(
                f"SELECT {_BOOK_COLUMNS} FROM books WHERE author = ? ORDER BY id LIMIT ?",
                (author, limit),
            ).fetchall()
        return [_row_to_book(r) for r in rows]

    def books_in_series(self, series: str, limit: int = 10) -> List[BookMetadata]:
        with sqlite_connection(self.db_path, "books_in_series") as conn:
            rows = conn.execute(
                f"SELECT {_BOOK_COLUMNS} FROM books WHERE series = ? "
                "ORDER BY series_index, id LIMIT ?",
                (series, limit),
            ).fetchall()
        return [_row_to_book(r) for r in rows]

    def highly_rated(
        self,
        min_rating: int = DEFAULT_MIN_RATING,
        limit: int = DEFAULT_HIGHLY_RATED_LIMIT,
    ) -> List[BookMetadata]:
        """Books rated at least min_rating, best rated first."""
        with sqlite_connection(self.db_path, "highly_rated") as conn:
            rows = conn.execute(
                f"SELECT {_BOOK_COLUMNS} FROM books WHERE rating >= ? "
                "ORDER BY rating DESC, id LIMIT ?",
                (min_rating, limit),
            ).fetchall()
        return [_row_to_book(r) for r in rows]

    # ===== Edges =====

    def persist_edges(self, edges: Iterable[EdgeRecord]) -> int:
        """Insert or replace a batch of edges in one transaction.

        Either every edge is written or, on any error, none is.

        Returns:
            Number of edges written.

        Raises:
            ValueError: If an edge is a self-loop or its weight is outside [0, 1].
            StorageError: If the database write fails.
        """
        rows = []
        for edge in edges:
            if edge.source_id == edge.target_id:
                raise ValueError(f"Self-loop edge for book {edge.source_id}")
            if not 0.0 <= edge.weight <= 1.0:
                raise ValueError(f"Edge weight must be in [0, 1], got {edge.weight}")
            rows.append(
                (edge.source_id, edge.target_id, EdgeType.parse(edge.edge_type).value, edge.weight)
            )

        if not rows:
            return 0

        with sqlite_connection(self.db_path, "persist_edges") as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO book_edges (source_id, target_id, edge_type, weight) "
                "VALUES (?, ?, ?, ?)",
                rows,
            )
        logger.debug(f"Persisted {len(rows)} edges")
        return len(rows)

    def load_edges(self, min_weight: float = 0.0) -> Iterator[EdgeRecord]:
        """Yield every persisted edge with weight >= min_weight, heaviest first.

        Rows with an unknown edge type are skipped.
        """
        with sqlite_connection(self.db_path, "load_edges") as conn:
            rows = conn.execute(
                "SELECT source_id, target_id, edge_type, weight FROM book_edges "
                "WHERE weight >= ? ORDER BY weight DESC, source_id, target_id",
                (min_weight,),
            ).fetchall()

        unknown = 0
        for source_id, target_id, edge_type, weight in rows:
            try:
                parsed = EdgeType.parse(edge_type)
            except ValueError:
                unknown += 1
                continue
            yield EdgeRecord(int(source_id), int(target_id), parsed, float(weight))

        if unknown:
            logger.warning(f"Skipped {unknown} edges with unknown edge type")

    def get_edges(self, book_id: int, min_weight: float = 0.0) -> List[EdgeRecord]:
        """Edges touching a book at either endpoint, heaviest first."""
        with sqlite_connection(self.db_path, "get_edges") as conn:
            rows = conn.execute(
                "SELECT source_id, target_id, edge_type, weight FROM book_edges "
                "WHERE (source_id = ? OR target_id = ?) AND weight >= ? "
                "ORDER BY weight DESC",
                (book_id, book_id, min_weight),
            ).fetchall()

        edges = []
        for source_id, target_id, edge_type, weight in rows:
            try:
                edges.append(
                    EdgeRecord(int(source_id), int(target_id), EdgeType.parse(edge_type), float(weight))
                )
            except ValueError:
                continue
        return edges

    def edge_count(self) -> int:
        with sqlite_connection(self.db_path, "count_edges") as conn:
            return int(conn.execute("SELECT COUNT(*) FROM book_edges").fetchone()[0])

    def book_count(self) -> int:
        with sqlite_connection(self.db_path, "count_books") as conn:
            return int(conn.execute("SELECT COUNT(*) FROM books").fetchone()[0])


def _clean(value):
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def load_catalog_csv(csv_path: str) -> List[BookMetadata]:
    """Load book metadata from a CSV file.

    The CSV must contain book_id and title columns; author, series,
    series_index, rating and description are optional. Blank cells
    become None.

    Args:
        csv_path: Path to the catalog CSV.

    Returns:
        List of BookMetadata in file order.

    Raises:
        FileNotFoundError: If the CSV file does not exist.
        ValueError: If required columns are missing or the file is empty.

    Example:
        >>> books = load_catalog_csv("data/library.csv")
        >>> print(f"Loaded {len(books)} books")
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading catalog CSV from {csv_path}")
    df = pd.read_csv(csv_path)

    if not CATALOG_REQUIRED_COLUMNS.issubset(df.columns):
        missing = CATALOG_REQUIRED_COLUMNS - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot load catalog from empty CSV")

    for column in CATALOG_OPTIONAL_COLUMNS:
        if column not in df.columns:
            df[column] = None

    df = df.astype(object).where(pd.notna(df), None)

    books = []
    for record in df.to_dict(orient="records"):
        series_index = _clean(record["series_index"])
        rating = _clean(record["rating"])
        books.append(
            BookMetadata(
                book_id=int(record["book_id"]),
                title=str(record["title"]),
                author=_clean(record["author"]),
                series=_clean(record["series"]),
                series_index=float(series_index) if series_index is not None else None,
                rating=int(rating) if rating is not None else None,
                description=_clean(record["description"]),
            )
        )

    logger.info(f"Loaded {len(books)} books from {csv_path}")
    return books
