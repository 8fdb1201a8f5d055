"""Recommendation core for BookGraph.

This module contains the embedding vector store, the catalog store that
persists items and edges, the similarity graph with its traversal and
PageRank scoring, and the hybrid ranking pipeline that turns them into
diverse, explainable book recommendations.
"""
