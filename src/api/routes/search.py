"""
Search API Routes.

Provides hybrid content search, suggestions, analytics, Postgres index
maintenance, Algolia sync and cache management.

The tenant id comes from the X-User-Id header set by the upstream gateway.

NOTE: Routes use `def` (not `async def`) because the underlying services
(Algolia SDK, Supabase client) are synchronous. FastAPI runs sync route
handlers in a thread pool, so they never block the event loop.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from content_search.algolia_client import AlgoliaSearchService
from content_search.algolia_sync import AlgoliaSyncService, get_algolia_sync_service
from content_search.analytics import SearchAnalytics, get_search_analytics
from content_search.autocomplete import AutocompleteService, get_autocomplete_service
from content_search.exceptions import SearchError
from content_search.hybrid_search import HybridSearchService, get_hybrid_search_service
from content_search.models import (
    BatchSyncRequest,
    HybridSearchOptions,
    RebuildIndexResponse,
    SearchClickRequest,
    SearchFilters,
    SuggestionRequest,
    SyncEntityRequest,
)
from content_search.postgres_search import SearchService, get_search_service
from core.logging import get_logger
from core.middleware import USER_ID_HEADER

logger = get_logger(__name__)

router = APIRouter(prefix="/api/search", tags=["Search"])


def get_user_id(x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER)) -> Optional[str]:
    """Tenant id from the gateway header (optional)."""
    return x_user_id or None


def _split(value: Optional[str]) -> Optional[List[str]]:
    """Parse a comma-separated query parameter."""
    if not value:
        return None
    items = [v.strip() for v in value.split(",") if v.strip()]
    return items or None


def _ok(data: Any, success: bool = True) -> Dict[str, Any]:
    return {"success": success, "data": data}


def _require_algolia() -> None:
    if not AlgoliaSearchService.is_available():
        raise HTTPException(status_code=503, detail="Algolia is not configured")


# =============================================================================
# Content Search
# =============================================================================

@router.get(
    "/content",
    summary="Hybrid content search (Algolia + Postgres full-text)",
)
def search_content(
    q: str = Query(..., max_length=500, description="Search query"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    entity_types: Optional[str] = Query(None, alias="entityTypes", description="Comma-separated"),
    categories: Optional[str] = Query(None, description="Comma-separated"),
    tags: Optional[str] = Query(None, description="Comma-separated"),
    status: Optional[str] = Query(None, description="Comma-separated"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    use_algolia: bool = Query(True, alias="useAlgolia"),
    use_postgres: bool = Query(True, alias="usePostgres"),
    user_id: Optional[str] = Depends(get_user_id),
    service: HybridSearchService = Depends(get_hybrid_search_service),
) -> Dict[str, Any]:
    """
    Search all content.

    Short queries go to Algolia; long queries and complex filters are
    topped up from Postgres; Postgres alone serves when Algolia is off.
    """
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")

    try:
        filters = SearchFilters(
            entity_types=_split(entity_types),
            categories=_split(categories),
            tags=_split(tags),
            status=_split(status),
            date_from=date_from,
            date_to=date_to,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        result = service.search(HybridSearchOptions(
            query=q.strip(),
            filters=filters,
            use_algolia=use_algolia,
            use_postgres=use_postgres,
        ))
    except SearchError as e:
        logger.error("Content search failed", query=q, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    return _ok(result.model_dump(mode="json", exclude={"algolia_results", "postgres_results"}))


@router.post(
    "/content",
    summary="Search suggestions",
)
def search_suggestions(
    request: SuggestionRequest,
    service: AutocompleteService = Depends(get_autocomplete_service),
) -> Dict[str, Any]:
    """Suggestions for a partial query (Algolia, falling back to Postgres)."""
    try:
        suggestions = service.suggest(request.query, limit=request.limit, entity_type=request.entity_type)
    except SearchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _ok([s.model_dump() for s in suggestions])


@router.get(
    "/content/popular",
    summary="Popular search queries",
)
def popular_queries(
    limit: int = Query(10, ge=1, le=100),
    days: int = Query(30, ge=1, le=365),
    service: SearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    try:
        popular = service.get_popular_queries(limit=limit, days=days)
    except SearchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _ok([p.model_dump() for p in popular])


# =============================================================================
# Analytics
# =============================================================================

@router.get(
    "/analytics",
    summary="Search analytics summary",
)
def search_analytics(
    days: int = Query(30, ge=1, le=365),
    user_id: Optional[str] = Depends(get_user_id),
    service: SearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    try:
        summary = service.get_search_analytics(days=days, user_id=user_id)
    except SearchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _ok(summary.model_dump())


@router.post(
    "/click",
    summary="Record a search result click",
    status_code=201,
)
def record_click(
    request: SearchClickRequest,
    user_id: Optional[str] = Depends(get_user_id),
    analytics: SearchAnalytics = Depends(get_search_analytics),
) -> Dict[str, Any]:
    """Record when a user clicks a search result."""
    recorded = analytics.log_click(
        query=request.query,
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        position=request.position,
        user_id=user_id,
    )
    return _ok({"recorded": recorded})


# =============================================================================
# Postgres Index
# =============================================================================

@router.post(
    "/index/rebuild",
    summary="Recompute Postgres search vectors",
)
def rebuild_index(
    entity_type: Optional[str] = Query(None, alias="entityType"),
    service: SearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    try:
        rows = service.rebuild_index(entity_type)
    except SearchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _ok(RebuildIndexResponse(entity_type=entity_type, rows=rows).model_dump())


# =============================================================================
# Algolia Sync
# =============================================================================

@router.post(
    "/sync",
    summary="Sync one entity to Algolia",
)
def sync_entity(
    request: SyncEntityRequest,
    service: AlgoliaSyncService = Depends(get_algolia_sync_service),
) -> Dict[str, Any]:
    _require_algolia()
    options = service.options.model_copy(update={"dry_run": request.dry_run})
    result = service.sync_entity(request.entity_type, request.entity, request.operation, options)
    return _ok(result.model_dump(), success=result.success)


@router.post(
    "/sync/batch",
    summary="Batch sync entities to Algolia",
)
def sync_batch(
    request: BatchSyncRequest,
    service: AlgoliaSyncService = Depends(get_algolia_sync_service),
) -> Dict[str, Any]:
    _require_algolia()
    options = service.options.model_copy(update={
        "batch_size": request.batch_size,
        "dry_run": request.dry_run,
    })
    result = service.batch_sync(request.items, options)
    return _ok(result.model_dump(), success=result.success)


@router.delete(
    "/sync/{entity_type}/{entity_id}",
    summary="Remove an entity from Algolia",
)
def remove_entity(
    entity_type: str,
    entity_id: str,
    service: AlgoliaSyncService = Depends(get_algolia_sync_service),
) -> Dict[str, Any]:
    _require_algolia()
    result = service.remove_from_algolia(entity_type, entity_id)
    return _ok(result.model_dump(), success=result.success)


@router.get(
    "/sync/status",
    summary="Retry queue status",
)
def sync_status(service: AlgoliaSyncService = Depends(get_algolia_sync_service)) -> Dict[str, Any]:
    return _ok(service.get_queue_status().model_dump())


@router.post(
    "/sync/retry",
    summary="Process the retry queue now",
)
def sync_retry(service: AlgoliaSyncService = Depends(get_algolia_sync_service)) -> Dict[str, Any]:
    _require_algolia()
    processed = service.process_retry_queue()
    return _ok({"processed": processed, "queue": service.get_queue_status().model_dump()})


# =============================================================================
# Cache
# =============================================================================

@router.get(
    "/cache/stats",
    summary="Search cache statistics",
)
def cache_stats(service: HybridSearchService = Depends(get_hybrid_search_service)) -> Dict[str, Any]:
    return _ok(service.get_cache_stats().model_dump())


@router.delete(
    "/cache",
    summary="Clear the search cache",
)
def clear_cache(service: HybridSearchService = Depends(get_hybrid_search_service)) -> Dict[str, Any]:
    service.clear_cache()
    return _ok({"cleared": True})


# =============================================================================
# Health / Info
# =============================================================================

@router.get(
    "/health",
    summary="Search service health check",
)
def search_health(service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    """Check Postgres search index and Algolia connectivity."""
    status: Dict[str, Any] = {"service": "search", "postgres": "unknown", "algolia": "unknown"}

    try:
        service.supabase.table("search_index").select("entity_id").limit(1).execute()
        status["postgres"] = "healthy"
    except Exception as e:
        status["postgres"] = "unhealthy"
        status["postgres_error"] = str(e)

    if not AlgoliaSearchService.is_available():
        status["algolia"] = "not_configured"
    else:
        try:
            from content_search.algolia_client import get_algolia_search_service
            from content_search.models import AlgoliaSearchOptions

            resp = get_algolia_search_service().search_single_index(
                "products", AlgoliaSearchOptions(query="", hits_per_page=1)
            )
            status["algolia"] = "healthy"
            status["index_records"] = resp.nb_hits
        except Exception as e:
            status["algolia"] = "unhealthy"
            status["algolia_error"] = str(e)

    # Postgres alone can serve every search
    if status["postgres"] == "healthy":
        status["status"] = "healthy" if status["algolia"] in ("healthy", "not_configured") else "degraded"
    else:
        status["status"] = "degraded" if status["algolia"] == "healthy" else "unhealthy"

    return status
