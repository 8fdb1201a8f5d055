"""FastAPI application module for BookGraph.

This module contains the FastAPI application, route handlers, and API
endpoints for the recommendation service. It exposes similarity search,
graph-based recommendations and maintenance operations over HTTP.
"""
