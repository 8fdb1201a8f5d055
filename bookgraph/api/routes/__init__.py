"""API routers for BookGraph."""
