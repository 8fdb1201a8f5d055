"""Generate a fake book catalog for testing and development.

Writes a CSV with the columns the catalog importer expects: book_id, title,
author, series, series_index, rating, description. Authors write several
books, some books belong to numbered series, and descriptions are built
from a small genre vocabulary so TF-IDF embeddings find real overlap.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_library.py

    Or import and use programmatically:
        from scripts.generate_fake_library import generate_fake_library
        df = generate_fake_library(num_books=50)
"""

import argparse
import random
from pathlib import Path
from typing import Optional

import pandas as pd

# Default configuration constants
DEFAULT_NUM_BOOKS = 200
DEFAULT_NUM_AUTHORS = 40
DEFAULT_SERIES_FRACTION = 0.3
DEFAULT_RATED_FRACTION = 0.25
DEFAULT_SEED = 42

GENRES = {
    "fantasy": ["dragon", "kingdom", "magic", "sword", "prophecy", "wizard", "quest"],
    "science fiction": ["starship", "colony", "android", "galaxy", "empire", "wormhole"],
    "mystery": ["detective", "murder", "village", "inspector", "alibi", "secret"],
    "romance": ["love", "wedding", "summer", "heart", "letters", "reunion"],
    "history": ["war", "revolution", "dynasty", "archive", "empire", "voyage"],
}
TITLE_NOUNS = ["Shadow", "River", "Crown", "Glass", "Ember", "Harbor", "Garden", "Storm"]
FIRST_NAMES = ["Ada", "Ben", "Clara", "Dmitri", "Elena", "Farid", "Grace", "Hiro", "Iris", "Jonas"]
LAST_NAMES = ["Abbott", "Brandt", "Castillo", "Doyle", "Eriksen", "Fontaine", "Gupta", "Hale"]


def generate_fake_library(
    num_books: int = DEFAULT_NUM_BOOKS,
    num_authors: int = DEFAULT_NUM_AUTHORS,
    series_fraction: float = DEFAULT_SERIES_FRACTION,
    rated_fraction: float = DEFAULT_RATED_FRACTION,
    seed: Optional[int] = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate a synthetic book catalog.

    Args:
        num_books: Number of books. Must be positive.
        num_authors: Number of distinct authors. Must be positive.
        series_fraction: Share of books that belong to a series.
        rated_fraction: Share of books that carry a 1-5 rating.
        seed: Random seed, or None for non-deterministic output.

    Returns:
        DataFrame with one row per book, ordered by book_id.

    Raises:
        ValueError: If a count is non-positive or a fraction is outside [0, 1].
    """
    if num_books <= 0 or num_authors <= 0:
        raise ValueError("num_books and num_authors must be positive")
    if not (0.0 <= series_fraction <= 1.0 and 0.0 <= rated_fraction <= 1.0):
        raise ValueError("fractions must be between 0 and 1")

    rng = random.Random(seed)

    authors = []
    for _ in range(num_authors):
        authors.append(
            (f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}", rng.choice(list(GENRES)))
        )

    # Each series belongs to one author and is filled in order
    series_progress = {}

    rows = []
    for book_id in range(1, num_books + 1):
        author, genre = rng.choice(authors)
        words = rng.sample(GENRES[genre], k=3)

        series = None
        series_index = None
        if rng.random() < series_fraction:
            series = f"The {rng.choice(TITLE_NOUNS)} Cycle of {author.split()[-1]}"
            series_index = series_progress.get(series, 0) + 1
            series_progress[series] = series_index

        rating = rng.randint(1, 5) if rng.random() < rated_fraction else None

        rows.append({
            "book_id": book_id,
            "title": f"The {rng.choice(TITLE_NOUNS)} of the {words[0].title()}",
            "author": author,
            "series": series,
            "series_index": series_index,
            "rating": rating,
            "description": f"A {genre} novel about {words[0]}, {words[1]} and {words[2]}.",
        })

    return pd.DataFrame(rows)


def main() -> None:
    """Generate a fake catalog and save it to data/fake_library.csv."""
    parser = argparse.ArgumentParser(description="Generate a fake book catalog CSV.")
    parser.add_argument("--num-books", type=int, default=DEFAULT_NUM_BOOKS)
    parser.add_argument("--num-authors", type=int, default=DEFAULT_NUM_AUTHORS)
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED)
    parser.add_argument(
        "--output",
        type=str,
        default=str(Path(__file__).parent.parent / "data" / "fake_library.csv"),
        help="Output CSV path (default: data/fake_library.csv)",
    )
    args = parser.parse_args()

    print(f"Generating {args.num_books} books by {args.num_authors} authors...")

    try:
        df = generate_fake_library(
            num_books=args.num_books,
            num_authors=args.num_authors,
            seed=args.seed,
        )
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)

    print(f"\nData generated successfully!")
    print(f"Saved to: {output_path}")
    print(f"\nData preview:")
    print(df.head(10))
    print(f"\nData summary:")
    print(f"  Books: {len(df)}")
    print(f"  Authors: {df['author'].nunique()}")
    print(f"  Series: {df['series'].nunique()}")
    print(f"  Rated books: {df['rating'].notna().sum()}")


if __name__ == "__main__":
    main()
