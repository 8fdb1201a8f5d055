"""CLI script for getting book recommendations.

Useful for testing and evaluation. Prints recommendations for a book, or
personalized recommendations from the user's ratings, to the console.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bookgraph.config import Settings
from bookgraph.exceptions import BookGraphException
from bookgraph.recommender.hybrid import Recommendation, create_graph_recommender

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def format_reason(reason: dict) -> str:
    kind = reason["type"]
    if kind == "similar_content":
        return f"similar content ({reason.get('similarity', 0.0):.2f})"
    if kind == "same_author":
        return f"same author ({reason.get('author')})"
    if kind == "same_series":
        return f"{reason.get('position')} in {reason.get('series')}"
    if kind == "connected_via":
        return f"via book {reason.get('based_on')}"
    return kind


def get_recommendations(
    book_id: Optional[int],
    settings: Settings,
    limit: int = 10,
) -> List[Recommendation]:
    """Get recommendations for a book, or personalized ones if book_id is None."""
    try:
        recommender = create_graph_recommender(settings)
        if book_id is None:
            return recommender.recommend_for_user(limit)
        return recommender.recommend(book_id, limit)
    except BookGraphException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Get book recommendations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/recommend_cli.py 42
  python scripts/recommend_cli.py 42 --limit 5 --explain
  python scripts/recommend_cli.py --personalized
        """
    )

    parser.add_argument(
        "book_id",
        type=int,
        nargs="?",
        help="Book ID to get recommendations for"
    )
    parser.add_argument(
        "--personalized",
        action="store_true",
        help="Recommend from the books you rated 4 or higher"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of recommendations to return (default: 10)"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="SQLite database path (default: BOOKGRAPH_DB_PATH)"
    )
    parser.add_argument(
        "--snapshot-dir",
        type=str,
        default=None,
        help="Graph snapshot directory (default: BOOKGRAPH_SNAPSHOT_DIR)"
    )
    parser.add_argument(
        "--explain",
        action="store_true",
        help="Show scores and reasons for each recommendation"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.book_id is None and not args.personalized:
        parser.error("give a book_id or --personalized")

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    settings = Settings.from_env()
    if args.db_path:
        settings.db_path = args.db_path
    if args.snapshot_dir:
        settings.snapshot_dir = args.snapshot_dir

    book_id = None if args.personalized else args.book_id
    recommendations = get_recommendations(book_id, settings, args.limit)

    header = "personalized" if book_id is None else f"book {book_id}"
    print(f"\nRecommendations for {header}:")
    if not recommendations:
        print("  No suggestions yet.")

    for rank, rec in enumerate(recommendations, start=1):
        print(f"  {rank:2d}. book {rec.book_id}  score={rec.score:.4f}")
        if args.explain:
            print(
                f"      traversal={rec.traversal_score:.4f} "
                f"pagerank={rec.pagerank_score:.4f} path={rec.path}"
            )
            reasons = ", ".join(format_reason(r.to_dict()) for r in rec.reasons)
            if reasons:
                print(f"      because: {reasons}")

    print()


if __name__ == "__main__":
    main()
