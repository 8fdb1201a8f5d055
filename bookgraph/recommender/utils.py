"""Utility functions for the recommendation core.

This module provides helpers for SQLite connection handling and for saving
and loading graph snapshots as joblib artifacts.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import joblib

from bookgraph.exceptions import StorageError
from bookgraph.recommender.graph import BookGraph, EdgeRecord, EdgeType

# Configure module logger
logger = logging.getLogger(__name__)

# Snapshot artifact filenames
GRAPH_SNAPSHOT_FILENAME = "graph_snapshot.joblib"
SNAPSHOT_FORMAT_VERSION = 1


@contextmanager
def sqlite_connection(db_path: str, operation: str) -> Iterator[sqlite3.Connection]:
    """Open a SQLite connection for one unit of work.

    The block runs inside a transaction that is committed on success and
    rolled back on error. The connection is always closed.

    Args:
        db_path: Path to the SQLite database file. Parent directories are
            created if needed.
        operation: Short name of the operation, used in error reports.

    Yields:
        An open sqlite3 connection.

    Raises:
        StorageError: If SQLite raises any error.

    Example:
        >>> with sqlite_connection("data/library.db", "count_books") as conn:
        ...     conn.execute("SELECT COUNT(*) FROM books").fetchone()
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(db_path, timeout=30.0)
    except sqlite3.Error as e:
        logger.error(f"Failed to open database {db_path}: {e}")
        raise StorageError(operation, e) from e

    try:
        with conn:
            yield conn
    except sqlite3.Error as e:
        logger.error(
            "Storage operation failed",
            extra={"operation": operation, "db_path": db_path, "error": str(e)},
            exc_info=True,
        )
        raise StorageError(operation, e) from e
    finally:
        conn.close()


def save_graph_snapshot(
    graph: BookGraph,
    output_dir: str,
    filename: str = GRAPH_SNAPSHOT_FILENAME,
) -> Path:
    """Save a graph's edge list to disk.

    Edges are stored exactly as they are in the graph (mirrored edges
    included), so loading reproduces the same adjacency.

    Args:
        graph: Graph to save.
        output_dir: Directory where the snapshot will be written.
        filename: Snapshot filename (default: "graph_snapshot.joblib").

    Returns:
        Path of the written snapshot.

    Raises:
        OSError: If unable to create the directory or write the file.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    snapshot_file = output_path / filename
    payload = {
        "version": SNAPSHOT_FORMAT_VERSION,
        "edges": [
            (e.source_id, e.target_id, e.edge_type.value, e.weight) for e in graph.edges()
        ],
        "num_nodes": graph.node_count(),
    }
    joblib.dump(payload, snapshot_file)

    logger.info(
        f"Saved graph snapshot to {snapshot_file}: "
        f"{graph.node_count()} nodes, {graph.edge_count()} edges"
    )
    return snapshot_file


def load_graph_snapshot(
    model_dir: str,
    filename: str = GRAPH_SNAPSHOT_FILENAME,
) -> Optional[BookGraph]:
    """Load a graph snapshot from disk.

    Args:
        model_dir: Directory containing the snapshot.
        filename: Snapshot filename.

    Returns:
        BookGraph, or None if no snapshot exists or its format is unknown.
    """
    snapshot_file = Path(model_dir) / filename
    if not snapshot_file.exists():
        logger.warning(f"Graph snapshot not found in {model_dir}")
        return None

    payload = joblib.load(snapshot_file)
    if payload.get("version") != SNAPSHOT_FORMAT_VERSION:
        logger.warning(
            f"Ignoring graph snapshot with unsupported version {payload.get('version')}"
        )
        return None

    graph = BookGraph.from_edges(
        EdgeRecord(source, target, EdgeType.parse(edge_type), weight)
        for source, target, edge_type, weight in payload["edges"]
    )

    logger.info(
        f"Loaded graph snapshot from {snapshot_file}: "
        f"{graph.node_count()} nodes, {graph.edge_count()} edges"
    )
    return graph


def check_snapshot_exists(model_dir: str, filename: str = GRAPH_SNAPSHOT_FILENAME) -> bool:
    """Check if a graph snapshot exists in the specified directory.

    Args:
        model_dir: Directory to check.
        filename: Snapshot filename.

    Returns:
        True if the snapshot file exists, False otherwise.
    """
    return (Path(model_dir) / filename).exists()
