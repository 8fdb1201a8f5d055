"""FastAPI application main module.

Defines the BookGraph API application, its error handling, and the health
and status endpoints.
"""

import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from bookgraph import __version__
from bookgraph.api.dependencies import get_recommender, get_settings
from bookgraph.api.logging_config import RequestLoggingMiddleware, setup_logging
from bookgraph.api.metrics import metrics_service
from bookgraph.api.routes import library, recommend
from bookgraph.exceptions import BookGraphException
from bookgraph.recommender.hybrid import GraphRecommender

setup_logging(get_settings().log_level)
logger = logging.getLogger(__name__)

# Create FastAPI application instance
app = FastAPI(
    title="BookGraph API",
    description="Graph-based book recommendations for a personal library",
    version=__version__,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(recommend.router)
app.include_router(library.router)


@app.exception_handler(BookGraphException)
async def bookgraph_exception_handler(request: Request, exc: BookGraphException) -> JSONResponse:
    """Map BookGraph errors to JSON responses with the error's status code."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={"path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/status")
def status(recommender: GraphRecommender = Depends(get_recommender)) -> Dict[str, Any]:
    """Embedding, graph, catalog and request statistics."""
    stats = recommender.stats()
    stats["metrics"] = metrics_service.get_metrics()
    stats["version"] = __version__
    return stats


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bookgraph.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
