"""Runtime configuration for BookGraph.

Settings are read from environment variables once, at startup, and passed
explicitly to the components that need them.
"""

import os
from dataclasses import dataclass

# Default configuration constants
DEFAULT_DB_PATH = "data/library.db"
DEFAULT_EMBEDDING_DIM = 768
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_OLLAMA_TIMEOUT = 120.0
DEFAULT_GRAPH_MIN_WEIGHT = 0.3
DEFAULT_SIMILAR_K = 50
DEFAULT_SNAPSHOT_DIR = "models"
DEFAULT_LOG_LEVEL = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Service settings.

    Attributes:
        db_path: SQLite file holding the catalog, edges and embeddings.
        embedding_dim: Dimension every stored embedding must have.
        embedding_model: Model tag sent to the embedding provider.
        ollama_endpoint: Base URL of the Ollama server.
        ollama_timeout: Request timeout in seconds for embedding calls.
        graph_min_weight: Minimum edge weight loaded into the graph.
        mirror_edges: Insert reverse edges when building the graph.
        similar_k: Neighbours considered when materializing edges.
        snapshot_dir: Directory for joblib graph snapshots.
        log_level: Root log level.
    """

    db_path: str = DEFAULT_DB_PATH
    embedding_dim: int = DEFAULT_EMBEDDING_DIM
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    ollama_timeout: float = DEFAULT_OLLAMA_TIMEOUT
    graph_min_weight: float = DEFAULT_GRAPH_MIN_WEIGHT
    mirror_edges: bool = True
    similar_k: int = DEFAULT_SIMILAR_K
    snapshot_dir: str = DEFAULT_SNAPSHOT_DIR
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from BOOKGRAPH_* environment variables."""
        return cls(
            db_path=os.getenv("BOOKGRAPH_DB_PATH", DEFAULT_DB_PATH),
            embedding_dim=int(os.getenv("BOOKGRAPH_EMBEDDING_DIM", str(DEFAULT_EMBEDDING_DIM))),
            embedding_model=os.getenv("BOOKGRAPH_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            ollama_endpoint=os.getenv("BOOKGRAPH_OLLAMA_ENDPOINT", DEFAULT_OLLAMA_ENDPOINT),
            ollama_timeout=float(os.getenv("BOOKGRAPH_OLLAMA_TIMEOUT", str(DEFAULT_OLLAMA_TIMEOUT))),
            graph_min_weight=float(
                os.getenv("BOOKGRAPH_GRAPH_MIN_WEIGHT", str(DEFAULT_GRAPH_MIN_WEIGHT))
            ),
            mirror_edges=_env_bool("BOOKGRAPH_GRAPH_MIRROR_EDGES", True),
            similar_k=int(os.getenv("BOOKGRAPH_SIMILAR_K", str(DEFAULT_SIMILAR_K))),
            snapshot_dir=os.getenv("BOOKGRAPH_SNAPSHOT_DIR", DEFAULT_SNAPSHOT_DIR),
            log_level=os.getenv("BOOKGRAPH_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        )
