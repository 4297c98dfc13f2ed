"""
Search Analytics.

Fire-and-forget performance and click tracking. Every method logs a warning
on failure and never raises.
"""

import threading
from typing import Optional

from supabase import Client

from config.settings import get_settings
from content_search.models import HybridSearchResult
from core.logging import get_logger

logger = get_logger(__name__)


class SearchAnalytics:
    """Writes search_performance and search_clicks rows."""

    def __init__(self, supabase: Optional[Client] = None):
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            from config.database import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    def track_performance(self, result: HybridSearchResult) -> None:
        metrics = result.performance_metrics
        event = {
            "query": result.query,
            "search_method": result.search_method.value,
            "execution_time_ms": result.execution_time_ms,
            "result_count": len(result.results),
            "total": result.total,
            "algolia_time_ms": metrics.algolia_time_ms,
            "postgres_time_ms": metrics.postgres_time_ms,
            "cache_hit": metrics.cache_hit,
        }
        logger.info("Search performance", **event)

        if not get_settings().search_analytics_enabled:
            return
        try:
            self.supabase.table("search_performance").insert({
                **event,
                "user_id": result.filters.user_id,
            }).execute()
        except Exception as e:
            logger.warning("Failed to record search performance", error=str(e))

    def log_click(
        self,
        query: str,
        entity_type: str,
        entity_id: str,
        position: int,
        user_id: Optional[str] = None,
    ) -> bool:
        """
        Record a click on a search result.

        Returns:
            True if the row was written.
        """
        if not get_settings().search_analytics_enabled:
            return False
        try:
            self.supabase.table("search_clicks").insert({
                "query": query,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "position": position,
                "user_id": user_id,
            }).execute()
            return True
        except Exception as e:
            logger.warning("Failed to log search click", query=query, entity_id=entity_id, error=str(e))
            return False


_analytics: Optional[SearchAnalytics] = None
_analytics_lock = threading.Lock()


def get_search_analytics() -> SearchAnalytics:
    """Get or create the SearchAnalytics singleton (thread-safe)."""
    global _analytics
    if _analytics is None:
        with _analytics_lock:
            if _analytics is None:
                _analytics = SearchAnalytics()
    return _analytics
