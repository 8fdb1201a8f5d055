"""Command-line interface for building the book similarity graph.

Imports a catalog CSV, embeds every book, materializes similarity edges
and saves a graph snapshot the API can start from.

Example:
    Build with offline TF-IDF embeddings:
        $ python scripts/build_graph.py data/fake_library.csv

    Build with an Ollama embedding model:
        $ python scripts/build_graph.py data/library.csv \\
            --provider ollama \\
            --model nomic-embed-text \\
            --dimension 768
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bookgraph.config import Settings
from bookgraph.exceptions import BookGraphException
from bookgraph.recommender.catalog import CatalogStore, load_catalog_csv
from bookgraph.recommender.embed import (
    OllamaEmbeddingProvider,
    TfidfEmbeddingProvider,
    book_to_embedding_text,
)
from bookgraph.recommender.graph import BookGraph
from bookgraph.recommender.indexer import IndexingConfig, LibraryIndexer
from bookgraph.recommender.utils import save_graph_snapshot
from bookgraph.recommender.vector_store import VectorStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_arguments(settings: Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import a catalog CSV, embed it and build the similarity graph.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/build_graph.py data/fake_library.csv
  python scripts/build_graph.py data/library.csv --provider ollama --dimension 768
        """,
    )
    parser.add_argument("csv_path", type=str, help="Path to the catalog CSV file")
    parser.add_argument("--db-path", type=str, default=settings.db_path)
    parser.add_argument("--snapshot-dir", type=str, default=settings.snapshot_dir)
    parser.add_argument(
        "--provider",
        choices=["tfidf", "ollama"],
        default="tfidf",
        help="Embedding provider (default: tfidf)",
    )
    parser.add_argument(
        "--dimension",
        type=int,
        default=settings.embedding_dim,
        help=f"Embedding dimension, must match the service (default: {settings.embedding_dim})",
    )
    parser.add_argument("--model", type=str, default=settings.embedding_model)
    parser.add_argument("--endpoint", type=str, default=settings.ollama_endpoint)
    parser.add_argument("--similar-k", type=int, default=settings.similar_k)
    parser.add_argument("--min-weight", type=float, default=settings.graph_min_weight)
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser.parse_args()


def main() -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    settings = Settings.from_env()
    args = parse_arguments(settings)
    setup_logging(args.verbose)

    if not Path(args.csv_path).exists():
        logger.error(f"CSV file not found: {args.csv_path}")
        return 1

    try:
        books = load_catalog_csv(args.csv_path)
        catalog = CatalogStore(args.db_path)
        catalog.upsert_books(books)

        if args.provider == "tfidf":
            provider = TfidfEmbeddingProvider(args.dimension).fit(
                [book_to_embedding_text(b.title, b.author, b.description, b.series) for b in books]
            )
        else:
            provider = OllamaEmbeddingProvider(
                args.endpoint, args.model, timeout=settings.ollama_timeout
            )
            health = provider.health_check()
            if not health["connected"]:
                logger.error(f"Cannot reach Ollama at {args.endpoint}: {health.get('error')}")
                return 1

        vector_store = VectorStore(args.db_path, dimension=args.dimension)
        indexer = LibraryIndexer(
            catalog,
            vector_store,
            provider,
            IndexingConfig(similar_k=args.similar_k, min_edge_weight=args.min_weight),
        )
        summary = indexer.index_library([b.book_id for b in books])

        graph = BookGraph.from_catalog(
            catalog, min_weight=args.min_weight, mirror=settings.mirror_edges
        )
        snapshot_file = save_graph_snapshot(graph, args.snapshot_dir)
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 1
    except BookGraphException as e:
        logger.error(f"Build failed: {e.message}")
        return 1

    logger.info("=" * 60)
    logger.info("Graph built successfully!")
    logger.info(f"Books imported: {len(books)}")
    logger.info(f"Embedded: {summary.processed}, skipped: {summary.skipped}, failed: {len(summary.failed)}")
    logger.info(f"Edges persisted: {summary.edges}")
    logger.info(f"Graph: {graph.node_count()} nodes, {graph.edge_count()} edges")
    logger.info(f"Snapshot: {snapshot_file}")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
