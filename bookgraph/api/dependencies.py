"""FastAPI dependencies.

The recommender is created on first use and shared by all requests.
"""

import logging
import threading
from typing import Optional

from bookgraph.config import Settings
from bookgraph.recommender.hybrid import GraphRecommender, create_graph_recommender

# Configure module logger
logger = logging.getLogger(__name__)

_settings: Optional[Settings] = None
_recommender: Optional[GraphRecommender] = None
_lock = threading.Lock()


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_recommender() -> GraphRecommender:
    """Return the shared recommender, creating it on first call."""
    global _recommender

    if _recommender is None:
        with _lock:
            if _recommender is None:
                settings = get_settings()
                logger.info(f"Creating recommender for database {settings.db_path}")
                _recommender = create_graph_recommender(settings)
    return _recommender


def reset_recommender() -> None:
    """Drop the shared recommender and settings so the next request rebuilds them."""
    global _recommender, _settings
    with _lock:
        _recommender = None
        _settings = None
