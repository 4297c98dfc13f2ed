"""
FastAPI Application Factory.

Usage:
    # Development
    uvicorn api.app:create_app --factory --reload

    # Production
    uvicorn api.app:app --host 0.0.0.0 --port 8000 --workers 4
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from core.logging import configure_logging, get_logger
from core.middleware import RequestTracingMiddleware


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Startup configures logging; services are created lazily on first request.
    Shutdown cancels the Algolia retry timer.
    """
    settings = get_settings()

    configure_logging(
        json_logs=settings.is_production,
        log_level="DEBUG" if settings.debug else "INFO",
    )

    logger.info(
        "Starting content search API",
        environment=settings.environment,
        port=settings.port,
        algolia_configured=settings.algolia_configured,
    )

    yield

    from content_search import algolia_sync
    if algolia_sync._sync_service is not None:
        status = algolia_sync._sync_service.get_queue_status()
        if status.pending:
            logger.warning("Shutting down with pending Algolia retries", pending=status.pending)
        algolia_sync._sync_service.shutdown()

    logger.info("Shutting down content search API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Content Search API",
        description="""
        Hybrid search over financial records and content.

        ## Engines

        - **Algolia**: typo-tolerant multi-index search for short queries
        - **Postgres full-text**: tsvector ranking for long queries, complex
          filters and as the fallback when Algolia is unavailable

        ## Main Endpoints

        - `/api/search/content` - Search (GET) and suggestions (POST)
        - `/api/search/sync/*` - Algolia sync and retry queue
        - `/api/search/index/rebuild` - Recompute Postgres search vectors

        ## Health Checks

        - `/health` - Basic health check
        - `/health/detailed` - Detailed health with dependency status
        - `/ready` - Kubernetes readiness probe
        - `/live` - Kubernetes liveness probe
        """,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # =========================================================================
    # Middleware (order matters - first added = outermost)
    # =========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request tracing (adds X-Request-ID, binds user id, logs timing)
    app.add_middleware(RequestTracingMiddleware)

    # =========================================================================
    # Routes
    # =========================================================================

    from api.routes.health import router as health_router
    app.include_router(health_router, tags=["Health"])

    from api.routes.search import router as search_router
    app.include_router(search_router)

    return app


# Create default app instance for uvicorn
# Usage: uvicorn api.app:app
app = create_app()
