"""BookGraph: graph-based recommendations for a personal book library.

This package provides a recommendation engine that combines embedding
similarity, a weighted similarity graph over catalog items, multi-hop
traversal, personalized PageRank and MMR diversity re-ranking.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: vector store, similarity graph and ranking logic
"""

__version__ = "0.1.0"
