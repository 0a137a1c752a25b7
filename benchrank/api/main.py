"""
BenchRank API - Main FastAPI Application.

Provides endpoints for:
- Triggering ranking computations
- Computation (epoch) history
- Paginated rankings from the current views
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from benchrank import __version__
from benchrank.api.dependencies import cleanup, get_store, get_supervisor, is_store_connected
from benchrank.api.middleware import RequestLoggingMiddleware
from benchrank.api.routes import computations_router, rankings_router
from benchrank.api.schemas import HealthResponse
from benchrank.config.settings import get_settings
from benchrank.utils.logger_config import setup_logging
from benchrank.utils.timestamps import to_iso, utc_now

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Connects the store and clears a stale run lock left by a crashed run.
    """
    logger.info("Starting BenchRank API...")
    try:
        store = get_store()
        logger.info(f"Ranking store ready: {type(store).__name__}")
        cleared = get_supervisor().check()
        if cleared:
            logger.warning(f"Cleared stale lock held by {cleared.holder}")
    except RuntimeError as e:
        logger.warning(f"Database not available: {e}")

    yield

    logger.info("Shutting down BenchRank API...")
    cleanup()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="BenchRank API",
        description="Versioned model ELO, prompt/benchmark quality, "
                    "contributor and reviewer trust rankings.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    # computations first: its /rankings/computations paths must win over /rankings/{kind}
    app.include_router(computations_router)
    app.include_router(rankings_router)

    @app.get("/", tags=["root"])
    async def root():
        """API root - returns basic info."""
        return {
            "name": "BenchRank API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """API status, store connection and run-lock state."""
        connected = is_store_connected()
        lock_held = False
        if connected:
            lock_held = get_store().get_run_lock() is not None

        return HealthResponse(
            status="healthy" if connected else "degraded",
            version=__version__,
            storage_backend=get_settings().storage_backend,
            database_connected=connected,
            run_lock_held=lock_held,
            timestamp=to_iso(utc_now()),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if os.getenv("DEBUG") else None,
                "code": "INTERNAL_ERROR",
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))

    uvicorn.run(
        "benchrank.api.main:app",
        host=host,
        port=port,
        reload=os.getenv("DEBUG", "false").lower() == "true",
        log_level="info",
    )
