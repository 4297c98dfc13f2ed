"""
Postgres Full-Text Search Service.

Searches the `search_index` table through its `search_vector` tsvector
column. Ranked queries run inside SQL functions (see sql/search_schema.sql)
called via Supabase RPC; index maintenance and query logging use plain
table operations.

RPC functions:
- search_content(p_query, p_config, p_entity_types, p_categories, p_tags,
  p_status, p_date_from, p_date_to, p_user_id, p_limit, p_offset)
  -> rows with rank (ts_rank_cd) and total_count (window count)
- rebuild_search_index(p_config, p_entity_type) -> integer rows updated

Tables:
- search_index: one row per (entity_type, entity_id)
- search_queries: every executed query with result count and timing
"""

import re
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from config.settings import get_settings
from content_search.exceptions import SearchBackendError
from content_search.models import (
    PopularQuery,
    SearchAnalyticsSummary,
    SearchDocument,
    SearchFilters,
    SearchResponse,
    SearchResult,
    SearchSuggestion,
)
from core.logging import get_logger

logger = get_logger(__name__)


# Letters and digits only; everything else (including tsquery operators
# & | ! ( ) : * < >, quotes and underscores) separates tokens.
_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)

# Characters that break PostgREST filter syntax or act as LIKE wildcards
_LIKE_UNSAFE_RE = re.compile(r"[%_*,()\\\"']")

# Upper bound on query-log rows pulled for one analytics aggregation
_MAX_ANALYTICS_ROWS = 50000
_PAGE_SIZE = 1000


def build_tsquery(query: str) -> str:
    """
    Build a prefix-matching tsquery string from free text.

    "Acme inv-2024" -> "acme:* & inv:* & 2024:*"

    Returns "" when the query has no word tokens.
    """
    tokens = [t.lower() for t in _TOKEN_RE.findall(query or "")]
    return " & ".join(f"{t}:*" for t in tokens)


def _normalize_query(query: str) -> str:
    return " ".join(query.lower().split())


class SearchService:
    """
    Postgres tsvector search over the `search_index` table.

    Handles search, index maintenance, query logging and analytics.
    """

    def __init__(self, supabase: Optional[Client] = None, text_config: Optional[str] = None):
        self._supabase = supabase
        self.text_config = text_config or get_settings().search_text_config

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            from config.database import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    # =========================================================================
    # Search
    # =========================================================================

    def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
        log_query: bool = True,
    ) -> SearchResponse:
        """
        Run a ranked full-text query.

        Args:
            query: Free-text user query.
            filters: Entity type / category / tag / status / date / tenant filters
                     plus limit and offset.
            log_query: Write the query to search_queries.

        Returns:
            SearchResponse sorted by rank (highest first).

        Raises:
            SearchBackendError: If the RPC call fails.
        """
        filters = filters or SearchFilters()
        tsquery = build_tsquery(query)
        if not query.strip() or not tsquery:
            return SearchResponse(results=[], total=0, query=query, filters=filters)

        params = self._build_search_params(tsquery, filters)
        try:
            resp = self.supabase.rpc("search_content", params).execute()
        except Exception as e:
            logger.error("Postgres search failed", query=query, error=str(e))
            raise SearchBackendError("postgres", str(e)) from e

        rows = resp.data or []
        total = int(rows[0].get("total_count") or 0) if rows else 0
        results = [self._row_to_result(row) for row in rows]

        if log_query:
            self.log_search_query(
                query=query,
                result_count=total,
                user_id=filters.user_id,
                filters=filters,
                search_method="postgres",
            )

        return SearchResponse(results=results, total=total, query=query, filters=filters)

    def _build_search_params(self, tsquery: str, filters: SearchFilters) -> Dict[str, Any]:
        return {
            "p_query": tsquery,
            "p_config": self.text_config,
            "p_entity_types": filters.entity_types or None,
            "p_categories": filters.categories or None,
            "p_tags": filters.tags or None,
            "p_status": filters.status or None,
            "p_date_from": filters.date_from.isoformat() if filters.date_from else None,
            "p_date_to": filters.date_to.isoformat() if filters.date_to else None,
            "p_user_id": filters.user_id,
            "p_limit": filters.limit,
            "p_offset": filters.offset,
        }

    @staticmethod
    def _row_to_result(row: Dict[str, Any]) -> SearchResult:
        return SearchResult(
            entity_type=row.get("entity_type") or "unknown",
            entity_id=str(row.get("entity_id") or ""),
            title=row.get("title") or "",
            excerpt=row.get("excerpt") or "",
            category=row.get("category"),
            tags=row.get("tags") or [],
            metadata=row.get("metadata") or {},
            relevance_score=float(row.get("rank") or 0),
            highlighted_title=row.get("highlighted_title"),
            highlighted_excerpt=row.get("headline"),
            created_at=row.get("created_at"),
            source="postgres",
        )

    # =========================================================================
    # Index Maintenance
    # =========================================================================

    def index_entity(self, document: SearchDocument) -> None:
        """Upsert one entity into search_index (the trigger refreshes search_vector)."""
        row = document.model_dump(mode="json", exclude_none=True)
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            self.supabase.table("search_index").upsert(
                row, on_conflict="entity_type,entity_id",
            ).execute()
        except Exception as e:
            raise SearchBackendError("postgres", f"index {document.entity_type}/{document.entity_id}: {e}") from e

    def remove_entity(self, entity_type: str, entity_id: str) -> None:
        """Delete one entity from search_index."""
        try:
            (
                self.supabase.table("search_index")
                .delete()
                .eq("entity_type", entity_type)
                .eq("entity_id", entity_id)
                .execute()
            )
        except Exception as e:
            raise SearchBackendError("postgres", f"remove {entity_type}/{entity_id}: {e}") from e

    def rebuild_index(self, entity_type: Optional[str] = None) -> int:
        """
        Recompute search_vector for every row (or one entity type).

        Returns:
            Number of rows rebuilt.
        """
        try:
            resp = self.supabase.rpc(
                "rebuild_search_index",
                {"p_config": self.text_config, "p_entity_type": entity_type},
            ).execute()
        except Exception as e:
            raise SearchBackendError("postgres", f"rebuild failed: {e}") from e

        data = resp.data
        if isinstance(data, list):
            data = data[0] if data else 0
        if isinstance(data, dict):
            data = next(iter(data.values()), 0)
        rows = int(data or 0)
        logger.info("Rebuilt search index", entity_type=entity_type or "all", rows=rows)
        return rows

    # =========================================================================
    # Query Logging
    # =========================================================================

    def log_search_query(
        self,
        query: str,
        result_count: int,
        user_id: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
        search_method: Optional[str] = None,
        execution_time_ms: Optional[int] = None,
    ) -> None:
        """Log a search query. Never raises."""
        if not get_settings().search_analytics_enabled:
            return
        try:
            self.supabase.table("search_queries").insert({
                "query": query,
                "query_normalized": _normalize_query(query),
                "user_id": user_id,
                "result_count": result_count,
                "filters": filters.model_dump(mode="json", exclude_none=True) if filters else {},
                "search_method": search_method,
                "execution_time_ms": execution_time_ms,
            }).execute()
        except Exception as e:
            # Don't let analytics failures break search
            logger.warning("Failed to log search query", error=str(e))

    # =========================================================================
    # Analytics
    # =========================================================================

    def _fetch_query_log(
        self,
        days: int,
        user_id: Optional[str] = None,
        columns: str = "query_normalized, result_count, search_method, execution_time_ms",
    ) -> List[Dict[str, Any]]:
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        rows: List[Dict[str, Any]] = []
        offset = 0
        while offset < _MAX_ANALYTICS_ROWS:
            q = self.supabase.table("search_queries").select(columns).gte("created_at", since)
            if user_id:
                q = q.eq("user_id", user_id)
            batch = q.order("created_at", desc=True).range(offset, offset + _PAGE_SIZE - 1).execute().data or []
            rows.extend(batch)
            if len(batch) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE
        return rows

    def get_search_analytics(self, days: int = 30, user_id: Optional[str] = None) -> SearchAnalyticsSummary:
        """Aggregate the query log over the last `days` days."""
        try:
            rows = self._fetch_query_log(days, user_id)
        except Exception as e:
            raise SearchBackendError("postgres", f"analytics query failed: {e}") from e

        if not rows:
            return SearchAnalyticsSummary(period_days=days)

        query_counts: Counter = Counter()
        zero_counts: Counter = Counter()
        method_counts: Counter = Counter()
        total_results = 0
        timings: List[int] = []

        for row in rows:
            q = row.get("query_normalized") or ""
            count = int(row.get("result_count") or 0)
            query_counts[q] += 1
            total_results += count
            if count == 0:
                zero_counts[q] += 1
            method_counts[row.get("search_method") or "unknown"] += 1
            if row.get("execution_time_ms") is not None:
                timings.append(int(row["execution_time_ms"]))

        total = len(rows)
        return SearchAnalyticsSummary(
            period_days=days,
            total_searches=total,
            unique_queries=len(query_counts),
            average_results=round(total_results / total, 2),
            zero_result_rate=round(sum(zero_counts.values()) / total, 4),
            average_execution_time_ms=round(sum(timings) / len(timings), 2) if timings else None,
            top_queries=[PopularQuery(query=q, count=c) for q, c in query_counts.most_common(10)],
            zero_result_queries=[PopularQuery(query=q, count=c) for q, c in zero_counts.most_common(10)],
            search_methods=dict(method_counts),
        )

    def get_popular_queries(self, limit: int = 10, days: int = 30) -> List[PopularQuery]:
        """Most frequent queries that returned at least one result."""
        try:
            rows = self._fetch_query_log(days, columns="query_normalized, result_count")
        except Exception as e:
            raise SearchBackendError("postgres", f"popular queries failed: {e}") from e

        counts = Counter(
            row["query_normalized"]
            for row in rows
            if row.get("query_normalized") and int(row.get("result_count") or 0) > 0
        )
        return [PopularQuery(query=q, count=c) for q, c in counts.most_common(limit)]

    def get_suggestions(self, prefix: str, limit: int = 5) -> List[SearchSuggestion]:
        """
        Suggest completions: popular logged queries first, then indexed titles.
        """
        clean = _LIKE_UNSAFE_RE.sub("", _normalize_query(prefix))
        if len(clean) < 2:
            return []

        suggestions: List[SearchSuggestion] = []
        seen = set()

        try:
            rows = (
                self.supabase.table("search_queries")
                .select("query_normalized")
                .ilike("query_normalized", f"{clean}%")
                .gt("result_count", 0)
                .limit(200)
                .execute()
                .data or []
            )
            counts = Counter(r["query_normalized"] for r in rows if r.get("query_normalized"))
            for q, c in counts.most_common(limit):
                seen.add(q.lower())
                suggestions.append(SearchSuggestion(query=q, count=c, popularity=float(c), source="postgres"))
        except Exception as e:
            logger.warning("Query-log suggestions failed", prefix=clean, error=str(e))

        if len(suggestions) < limit:
            try:
                rows = (
                    self.supabase.table("search_index")
                    .select("title")
                    .ilike("title", f"%{clean}%")
                    .limit(limit * 2)
                    .execute()
                    .data or []
                )
                for r in rows:
                    title = r.get("title")
                    if not title or title.lower() in seen:
                        continue
                    seen.add(title.lower())
                    suggestions.append(SearchSuggestion(query=title, count=1, popularity=0.0, source="postgres"))
                    if len(suggestions) >= limit:
                        break
            except Exception as e:
                logger.warning("Title suggestions failed", prefix=clean, error=str(e))

        return suggestions[:limit]


# =============================================================================
# Singleton
# =============================================================================

_search_service: Optional[SearchService] = None
_search_service_lock = threading.Lock()


def get_search_service() -> SearchService:
    """Get or create the SearchService singleton (thread-safe)."""
    global _search_service
    if _search_service is None:
        with _search_service_lock:
            if _search_service is None:
                _search_service = SearchService()
    return _search_service
