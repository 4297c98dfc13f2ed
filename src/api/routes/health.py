"""
Health check endpoints.

Provides endpoints for monitoring application health and status.
"""

from typing import Dict, Any
from fastapi import APIRouter

from config.settings import get_settings
from config.database import check_search_tables, get_supabase_client_optional
from content_search.algolia_client import AlgoliaSearchService


router = APIRouter(tags=["Health"])

SERVICE_NAME = "content-search-api"


@router.get("/health")
def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns:
        Health status with basic info
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
    }


@router.get("/health/detailed")
def detailed_health_check() -> Dict[str, Any]:
    """
    Detailed health check with dependency status.

    Checks:
    - Configuration loaded
    - Supabase connection (every search table)
    - Algolia credentials present
    """
    settings = get_settings()

    tables = {}
    client = get_supabase_client_optional()
    if client is None:
        supabase_status = "not_configured"
    else:
        tables = check_search_tables(client)
        supabase_status = "connected" if all(v == "ok" for v in tables.values()) else "error"

    return {
        "status": "healthy" if supabase_status == "connected" else "degraded",
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "checks": {
            "config": "ok",
            "supabase": {
                "status": supabase_status,
                "tables": tables,
            },
            "algolia": {
                "status": "configured" if AlgoliaSearchService.is_available() else "not_configured",
            },
        },
    }


@router.get("/ready")
def readiness_check() -> Dict[str, str]:
    """
    Kubernetes-style readiness probe.

    Postgres search alone can serve traffic, so only Supabase is required.
    """
    client = get_supabase_client_optional()
    if client is None:
        return {"status": "not_ready", "reason": "database_not_configured"}

    return {"status": "ready"}


@router.get("/live")
def liveness_check() -> Dict[str, str]:
    """Kubernetes-style liveness probe."""
    return {"status": "alive"}
