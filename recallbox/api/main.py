"""
FastAPI Main Application
Entry point for the recallbox search API.
"""

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ..db.session import init_db
from ..ml.retrieval import get_index_manager
from ..ml.search import get_session_store, reset_search_service
from .config import get_settings
from .errors import setup_error_handlers
from .middleware import RequestLoggingMiddleware, RequestTimingMiddleware
from .routers import admin_router, feedback_router, health_router, search_router

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup and shutdown to initialize/cleanup resources.
    """
    # Startup
    logger.info("Starting recallbox search API...")

    settings = get_settings()

    init_db()

    # Load the vector index in background so the app starts quickly;
    # lexical search works while it loads
    def load_index_background():
        try:
            logger.info("Loading vector index in background...")
            index_manager = get_index_manager()
            index_manager.ensure_index_loaded()

            stats = index_manager.get_stats()
            logger.info(
                f"Vector index loaded: {stats.get('num_vectors', 0)} vectors, "
                f"{stats.get('num_owners', 0)} owners"
            )
        except Exception as e:
            logger.error(f"Failed to load vector index: {e}")
            logger.warning("Semantic search will be skipped until the index is loaded")

    if settings.load_index_on_startup:
        index_thread = threading.Thread(target=load_index_background, daemon=True)
        index_thread.start()

    session_store = get_session_store()
    session_store.start_reaper()

    logger.info("recallbox search API started")

    yield

    # Shutdown
    logger.info("Shutting down recallbox search API...")
    session_store.stop_reaper()
    reset_search_service()


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Set up CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Add GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Add custom middleware
    app.add_middleware(
        RequestTimingMiddleware, slow_request_ms=settings.target_p95_latency_ms
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Set up error handlers
    setup_error_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(search_router)
    app.include_router(feedback_router)
    app.include_router(admin_router)

    return app


# Create app instance
app = create_app()


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information
    """
    settings = get_settings()

    return {
        "name": settings.app_name,
        "version": settings.version,
        "description": settings.description,
        "endpoints": {
            "search": "/api/v1/search",
            "more": "/api/v1/search/more",
            "health": "/health",
            "status": "/status",
            "metrics": "/metrics",
            "docs": "/docs",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "recallbox.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
