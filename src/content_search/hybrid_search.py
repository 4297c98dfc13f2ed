"""
Hybrid Search Service.

Routes each query to Algolia, Postgres full-text search, or both:

    short query, simple filters   -> Algolia
    long query or complex filters -> Algolia, topped up from Postgres
    Algolia unavailable / failing -> Postgres

Results are cached in-process by query + filters.
"""

import json
import threading
import time
from datetime import datetime, timezone
from typing import Any, List, Optional

from config.settings import get_settings
from content_search.algolia_client import AlgoliaSearchService, display_name, get_algolia_search_service
from content_search.analytics import SearchAnalytics, get_search_analytics
from content_search.cache import TTLCache
from content_search.exceptions import SearchError
from content_search.models import (
    AlgoliaSearchOptions,
    AlgoliaSearchResult,
    CacheStats,
    HybridSearchOptions,
    HybridSearchResult,
    PerformanceMetrics,
    SearchFilters,
    SearchMethod,
    SearchResult,
    SearchStrategy,
)
from content_search.postgres_search import SearchService, get_search_service
from core.logging import get_logger
from core.utils import safe_get

logger = get_logger(__name__)

# Base facets requested on every Algolia query
FACET_ATTRIBUTES = ["entity_type", "category", "status"]


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def _parse_created_at(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


class HybridSearchService:
    """Strategy routing, result merging and caching over both engines."""

    def __init__(
        self,
        search_service: Optional[SearchService] = None,
        algolia_service: Optional[AlgoliaSearchService] = None,
        analytics: Optional[SearchAnalytics] = None,
        cache: Optional[TTLCache] = None,
        algolia_available: Optional[bool] = None,
    ):
        settings = get_settings()
        self._search_service = search_service
        self._algolia = algolia_service
        self._analytics = analytics
        self.cache = cache or TTLCache(
            ttl_seconds=settings.search_cache_ttl_seconds,
            max_entries=settings.search_cache_max_entries,
        )
        if algolia_available is None:
            algolia_available = algolia_service is not None or AlgoliaSearchService.is_available()
        self.algolia_available = algolia_available
        self.simple_query_max_length = settings.hybrid_simple_query_max_length
        self.long_query_min_length = settings.hybrid_long_query_min_length

    @property
    def search_service(self) -> SearchService:
        if self._search_service is None:
            self._search_service = get_search_service()
        return self._search_service

    @property
    def algolia(self) -> AlgoliaSearchService:
        if self._algolia is None:
            self._algolia = get_algolia_search_service()
        return self._algolia

    @property
    def analytics(self) -> SearchAnalytics:
        if self._analytics is None:
            self._analytics = get_search_analytics()
        return self._analytics

    def is_available(self) -> bool:
        return self.algolia_available

    # =========================================================================
    # Strategy
    # =========================================================================

    @staticmethod
    def has_complex_filters(filters: SearchFilters) -> bool:
        return bool(
            filters.date_from
            or filters.date_to
            or (filters.tags and len(filters.tags) > 3)
            or (filters.categories and len(filters.categories) > 5)
            or (filters.entity_types and len(filters.entity_types) > 3)
        )

    def determine_search_strategy(
        self,
        query: str,
        filters: SearchFilters,
        use_algolia: bool = True,
        use_postgres: bool = True,
    ) -> SearchStrategy:
        if not self.algolia_available or not use_algolia:
            return SearchStrategy.POSTGRES
        if not use_postgres:
            return SearchStrategy.ALGOLIA
        if self.has_complex_filters(filters) or len(query) > self.long_query_min_length:
            return SearchStrategy.HYBRID
        if len(query) <= self.simple_query_max_length:
            return SearchStrategy.ALGOLIA
        return SearchStrategy.HYBRID

    # =========================================================================
    # Search
    # =========================================================================

    @staticmethod
    def cache_key(query: str, filters: SearchFilters) -> str:
        return f"search:{query}:{json.dumps(filters.model_dump(mode='json'), sort_keys=True)}"

    def search(self, options: HybridSearchOptions) -> HybridSearchResult:
        """
        Run a search with the strategy chosen for the query and filters.

        Raises:
            SearchError: If every applicable engine fails.
        """
        start = time.time()
        query, filters = options.query, options.filters

        key = self.cache_key(query, filters)
        cached = self.cache.get(key)
        if cached is not None:
            result = cached.model_copy(deep=True)
            result.performance_metrics.cache_hit = True
            logger.debug("Search cache hit", query=query)
            return result

        try:
            strategy = self.determine_search_strategy(
                query, filters, options.use_algolia, options.use_postgres
            )
            logger.debug("Search strategy", query=query, strategy=strategy.value)

            if strategy == SearchStrategy.POSTGRES:
                result = self._search_postgres_only(query, filters)
            else:
                try:
                    result = self._search_with_algolia(query, filters, strategy)
                except Exception as e:
                    if not options.fallback_to_postgres:
                        raise
                    logger.warning("Algolia search failed, falling back to Postgres", query=query, error=str(e))
                    result = self._search_postgres_only(query, filters)
        except SearchError:
            raise
        except Exception as e:
            logger.error("Search failed", query=query, error=str(e))
            raise SearchError(f"Search failed: {e}") from e

        result.execution_time_ms = _elapsed_ms(start)
        self.cache.set(key, result.model_copy(deep=True))

        self.search_service.log_search_query(
            query=query,
            result_count=result.total,
            user_id=filters.user_id,
            filters=filters,
            search_method=result.search_method.value,
            execution_time_ms=result.execution_time_ms,
        )

        if options.performance_tracking:
            try:
                self.analytics.track_performance(result)
            except Exception as e:
                logger.warning("Performance tracking failed", error=str(e))

        return result

    def _search_with_algolia(
        self,
        query: str,
        filters: SearchFilters,
        strategy: SearchStrategy,
    ) -> HybridSearchResult:
        algolia_start = time.time()
        algolia_result = self.algolia.search(AlgoliaSearchOptions(
            query=query,
            filters=self.algolia.build_filters(
                entity_types=filters.entity_types,
                categories=filters.categories,
                tags=filters.tags,
                status=filters.status,
                date_from=filters.date_from,
                date_to=filters.date_to,
                user_id=filters.user_id,
            ) or None,
            facets=self.get_facet_attributes(filters),
            page=filters.offset // filters.limit,
            hits_per_page=filters.limit,
            get_ranking_info=True,
        ))
        metrics = PerformanceMetrics(algolia_time_ms=_elapsed_ms(algolia_start))

        results = self.transform_algolia_results(algolia_result)[:filters.limit]
        total = algolia_result.nb_hits
        method = SearchMethod.ALGOLIA
        postgres_response = None

        if strategy == SearchStrategy.HYBRID and len(results) < filters.limit:
            found = len(results)
            postgres_start = time.time()
            postgres_response = self.search_service.search(
                query,
                filters.model_copy(update={
                    "limit": filters.limit - found,
                    "offset": filters.offset + found,
                }),
                log_query=False,
            )
            metrics.postgres_time_ms = _elapsed_ms(postgres_start)

            results = self.merge_results(results, postgres_response.results)[:filters.limit]
            total = max(algolia_result.nb_hits, postgres_response.total)
            method = SearchMethod.HYBRID

        return HybridSearchResult(
            results=results,
            total=total,
            query=query,
            filters=filters,
            search_method=method,
            execution_time_ms=0,
            algolia_results=algolia_result,
            postgres_results=postgres_response,
            performance_metrics=metrics,
        )

    def _search_postgres_only(self, query: str, filters: SearchFilters) -> HybridSearchResult:
        postgres_start = time.time()
        response = self.search_service.search(query, filters, log_query=False)
        return HybridSearchResult(
            results=response.results,
            total=response.total,
            query=query,
            filters=filters,
            search_method=SearchMethod.POSTGRES,
            execution_time_ms=0,
            postgres_results=response,
            performance_metrics=PerformanceMetrics(postgres_time_ms=_elapsed_ms(postgres_start)),
        )

    # =========================================================================
    # Result Shaping
    # =========================================================================

    @staticmethod
    def transform_algolia_results(result: AlgoliaSearchResult) -> List[SearchResult]:
        """Normalize Algolia hits to SearchResult."""
        results = []
        for hit in result.hits:
            highlighted_title = None
            for attr in ("name", "title", "company_name"):
                highlighted_title = safe_get(hit, "_highlightResult", attr, "value")
                if highlighted_title:
                    break

            tags = hit.get("tags")
            results.append(SearchResult(
                entity_type=hit.get("_entityType") or "unknown",
                entity_id=str(hit.get("objectID") or hit.get("id") or ""),
                title=display_name(hit),
                excerpt=(
                    safe_get(hit, "_snippetResult", "description", "value")
                    or hit.get("description")
                    or hit.get("excerpt")
                    or ""
                ),
                category=hit.get("category"),
                tags=[str(t) for t in tags] if isinstance(tags, list) else [],
                metadata=hit.get("metadata") or {},
                relevance_score=float(safe_get(hit, "_rankingInfo", "userScore", default=0)),
                highlighted_title=highlighted_title,
                highlighted_excerpt=safe_get(hit, "_snippetResult", "description", "value"),
                created_at=_parse_created_at(hit.get("created_at")),
                source="algolia",
            ))
        return results

    @staticmethod
    def merge_results(primary: List[SearchResult], secondary: List[SearchResult]) -> List[SearchResult]:
        """
        De-duplicate by entity_id (first occurrence wins) and sort by
        relevance, highest first. Ties keep their input order.
        """
        seen = set()
        merged = []
        for result in primary + secondary:
            if result.entity_id in seen:
                continue
            seen.add(result.entity_id)
            merged.append(result)
        merged.sort(key=lambda r: r.relevance_score, reverse=True)
        return merged

    @staticmethod
    def get_facet_attributes(filters: SearchFilters) -> List[str]:
        facets = list(FACET_ATTRIBUTES)
        if filters.entity_types:
            facets.append("entity_type")
        if filters.categories:
            facets.append("category")
        if filters.status:
            facets.append("status")
        return list(dict.fromkeys(facets))

    # =========================================================================
    # Cache
    # =========================================================================

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Search cache cleared")

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(**self.cache.stats())


# =============================================================================
# Singleton
# =============================================================================

_hybrid_service: Optional[HybridSearchService] = None
_service_lock = threading.Lock()


def get_hybrid_search_service() -> HybridSearchService:
    """Get or create the HybridSearchService singleton (thread-safe)."""
    global _hybrid_service
    if _hybrid_service is None:
        with _service_lock:
            if _hybrid_service is None:
                _hybrid_service = HybridSearchService()
    return _hybrid_service
