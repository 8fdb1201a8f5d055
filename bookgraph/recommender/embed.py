"""Book embeddings for content-based similarity.

Turns book metadata into text and text into embedding vectors, either
through an Ollama server or offline with TF-IDF.
"""

import hashlib
import logging
import time
from typing import Any, Dict, Optional, Protocol, Sequence

import numpy as np
import requests
from sklearn.feature_extraction.text import TfidfVectorizer

from bookgraph.exceptions import ProviderError

# Configure module logger
logger = logging.getLogger(__name__)

# Constants
EMBEDDING_TEXT_MAX_DESCRIPTION = 1000
EMBEDDINGS_PATH = "/api/embeddings"
TAGS_PATH = "/api/tags"
HEALTH_CHECK_TIMEOUT = 5.0


def book_to_embedding_text(
    title: str,
    author: Optional[str] = None,
    description: Optional[str] = None,
    series: Optional[str] = None,
) -> str:
    """Build the text a book is embedded from.

    Example:
        >>> book_to_embedding_text("Dune", author="Frank Herbert")
        'Title: Dune\\nAuthor: Frank Herbert'
    """
    parts = [f"Title: {title}"]

    if author:
        parts.append(f"Author: {author}")
    if series:
        parts.append(f"Series: {series}")
    if description:
        if len(description) > EMBEDDING_TEXT_MAX_DESCRIPTION:
            description = description[:EMBEDDING_TEXT_MAX_DESCRIPTION] + "..."
        parts.append(f"Description: {description}")

    return "\n".join(parts)


def text_hash(text: str) -> str:
    """Content hash stored next to an embedding to detect stale vectors."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector."""

    model_tag: str

    def embed(self, text: str) -> np.ndarray:
        ...


class OllamaEmbeddingProvider:
    """Embedding provider backed by an Ollama server.

    Each embed() call makes exactly one request; failures surface as
    ProviderError and are never retried here.
    """

    def __init__(self, endpoint: str, model: str, timeout: float = 120.0):
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.model_tag = model

    def embed(self, text: str) -> np.ndarray:
        """Generate an embedding for text.

        Args:
            text: Text to embed.

        Returns:
            Embedding as a float32 vector.

        Raises:
            ProviderError: On transport errors, non-2xx responses, or a
                response without an embedding.
        """
        start_time = time.time()
        url = f"{self.endpoint}{EMBEDDINGS_PATH}"

        try:
            response = requests.post(
                url,
                json={"model": self.model, "prompt": text},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Embedding request to {url} failed: {e}", exc_info=True)
            raise ProviderError("ollama", f"request failed: {e}") from e

        if not response.ok:
            raise ProviderError(
                "ollama",
                f"HTTP {response.status_code}",
                details={"status_code": response.status_code, "body": response.text[:500]},
            )

        try:
            embedding = response.json()["embedding"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError("ollama", "malformed response payload") from e

        if not embedding:
            raise ProviderError("ollama", "empty embedding in response")

        logger.debug(
            "Embedding generated",
            extra={
                "model": self.model,
                "dimension": len(embedding),
                "embed_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return np.asarray(embedding, dtype=np.float32)

    def health_check(self) -> Dict[str, Any]:
        """Check connectivity and list the models the server has.

        Never raises; connection problems are reported in the result.
        """
        try:
            response = requests.get(f"{self.endpoint}{TAGS_PATH}", timeout=HEALTH_CHECK_TIMEOUT)
        except requests.RequestException as e:
            return {"connected": False, "endpoint": self.endpoint, "error": str(e), "models": []}

        if not response.ok:
            return {
                "connected": False,
                "endpoint": self.endpoint,
                "error": f"HTTP {response.status_code}",
                "models": [],
            }

        try:
            models = [m.get("name", "") for m in response.json().get("models", [])]
        except (ValueError, AttributeError):
            models = []

        return {
            "connected": True,
            "endpoint": self.endpoint,
            "models": models,
            "model_available": any(m.split(":")[0] == self.model.split(":")[0] for m in models),
        }


class TfidfEmbeddingProvider:
    """Offline embedding provider using TF-IDF over the catalog's texts.

    Vectors are zero-padded to the configured dimension so they can be
    stored alongside model embeddings of the same size.
    """

    def __init__(self, dimension: int, min_df: int = 1, max_df: float = 1.0):
        self.dimension = dimension
        self.model_tag = f"tfidf-{dimension}"
        self.vectorizer = TfidfVectorizer(
            max_features=dimension,
            min_df=min_df,
            max_df=max_df,
            lowercase=True,
            stop_words="english",
        )
        self._fitted = False

    def fit(self, documents: Sequence[str]) -> "TfidfEmbeddingProvider":
        """Learn the vocabulary from the given documents."""
        logger.info(
            f"Fitting TF-IDF embeddings on {len(documents)} documents, "
            f"max_features={self.dimension}"
        )
        self.vectorizer.fit(list(documents))
        self._fitted = True
        logger.info(f"TF-IDF vocabulary size: {len(self.vectorizer.vocabulary_)}")
        return self

    def embed(self, text: str) -> np.ndarray:
        if not self._fitted:
            raise ProviderError("tfidf", "vectorizer has not been fitted")

        vector = self.vectorizer.transform([text]).toarray()[0]
        embedding = np.zeros(self.dimension, dtype=np.float32)
        embedding[: len(vector)] = vector
        return embedding
