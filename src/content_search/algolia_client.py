"""
Algolia Search Service.

Wraps algoliasearch v4 (SearchClientSync) for multi-index search, facet
search, suggestions and the object operations used by the sync service.

API reference verified against algoliasearch 4.x:
- SearchClientSync(app_id, api_key)
- search_single_index(index_name, search_params={...})
- search_for_facet_values(index_name, facet_name, search_for_facet_values_request={...})
- save_object(index_name, body={...}) / save_objects(index_name, objects=[...])
- delete_object(index_name, object_id) / delete_objects(index_name, object_ids=[...])
- set_settings(index_name, index_settings={...})

Responses are pydantic models; use .to_dict() for plain dicts.
"""

import math
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

from algoliasearch.search.client import SearchClientSync

from config.settings import get_settings
from content_search.algolia_config import (
    ALGOLIA_INDEX_SETTINGS,
    DISPLAY_NAME_ATTRIBUTES,
    INDEX_KEYS,
    TYPO_TOLERANCE_PARAMS,
    get_index_names,
    index_key_for_entity_type,
)
from content_search.exceptions import SearchBackendError, SearchUnavailableError
from content_search.models import (
    AlgoliaFacetResult,
    AlgoliaSearchOptions,
    AlgoliaSearchResult,
    SearchSuggestion,
)
from core.logging import get_logger
from core.utils import safe_get, to_epoch_millis

logger = get_logger(__name__)


def _to_dict(resp: Any) -> Dict[str, Any]:
    return resp.to_dict() if hasattr(resp, "to_dict") else dict(resp or {})


def display_name(hit: Dict[str, Any]) -> str:
    """First non-empty of name / title / company_name, else 'first last'."""
    for attr in ("name", "title", "company_name"):
        if hit.get(attr):
            return str(hit[attr])
    return f"{hit.get('first_name') or ''} {hit.get('last_name') or ''}".strip()


class AlgoliaSearchService:
    """
    Multi-index Algolia search over the products, vendors, customers,
    posts and landing page indices.
    """

    def __init__(
        self,
        app_id: Optional[str] = None,
        search_key: Optional[str] = None,
        write_key: Optional[str] = None,
        index_prefix: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        settings = get_settings()
        self.app_id = app_id or settings.algolia_app_id
        self.search_key = search_key or settings.algolia_search_key
        self.write_key = write_key or settings.algolia_write_key
        prefix = settings.algolia_index_prefix if index_prefix is None else index_prefix
        self.index_names = get_index_names(prefix)
        self.max_hits_per_page = settings.algolia_max_hits_per_page

        if client is not None:
            self._client = client
            return

        if not self.app_id:
            raise SearchUnavailableError("ALGOLIA_APP_ID is required")

        # Write key covers both indexing and queries; search key is read-only
        api_key = self.write_key or self.search_key
        if not api_key:
            raise SearchUnavailableError("ALGOLIA_WRITE_KEY or ALGOLIA_SEARCH_KEY is required")

        self._client = SearchClientSync(self.app_id, api_key)

    @staticmethod
    def is_available() -> bool:
        """True when Algolia credentials are configured."""
        return get_settings().algolia_configured

    def close(self):
        """Close the underlying HTTP client."""
        self._client.close()

    def index_name_for(self, entity_type: str) -> str:
        return self.index_names[index_key_for_entity_type(entity_type)]

    def entity_type_for_index(self, index_name: str) -> str:
        for key, name in self.index_names.items():
            if name == index_name:
                return key
        return "unknown"

    # =========================================================================
    # Search
    # =========================================================================

    def _build_search_params(self, options: AlgoliaSearchOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "query": options.query,
            "page": options.page,
            "hitsPerPage": min(options.hits_per_page, self.max_hits_per_page),
            "attributesToRetrieve": options.attributes_to_retrieve or ["*"],
            "attributesToHighlight": options.attributes_to_highlight or ["*"],
            "attributesToSnippet": options.attributes_to_snippet or ["*"],
            "getRankingInfo": options.get_ranking_info,
            "analytics": options.analytics,
            "enablePersonalization": options.enable_personalization,
            **TYPO_TOLERANCE_PARAMS,
        }
        if options.filters:
            params["filters"] = options.filters
        if options.facets:
            params["facets"] = options.facets
        return params

    def search(self, options: AlgoliaSearchOptions) -> AlgoliaSearchResult:
        """
        Search every logical index in parallel and merge the results.

        Indices that fail are logged and skipped.

        Raises:
            SearchBackendError: If every index fails.
        """
        keys = list(INDEX_KEYS)
        results: List[AlgoliaSearchResult] = []
        errors: List[str] = []

        with ThreadPoolExecutor(max_workers=len(keys)) as executor:
            futures = {key: executor.submit(self.search_single_index, key, options) for key in keys}
            for key, future in futures.items():
                try:
                    results.append(future.result())
                except Exception as e:
                    errors.append(f"{key}: {e}")
                    logger.warning("Algolia index search failed", index=key, error=str(e))

        if not results:
            raise SearchBackendError("algolia", "; ".join(errors) or "no indices searched")

        return self._merge_search_results(results, options.query)

    def search_single_index(self, entity_type: str, options: AlgoliaSearchOptions) -> AlgoliaSearchResult:
        """
        Search one logical index.

        Args:
            entity_type: Logical index key ('products') or entity type ('product').
            options: Query options.
        """
        index_name = self.index_name_for(entity_type)
        try:
            resp = _to_dict(self._client.search_single_index(
                index_name=index_name,
                search_params=self._build_search_params(options),
            ))
        except Exception as e:
            raise SearchBackendError("algolia", f"search failed for {entity_type}: {e}") from e

        return AlgoliaSearchResult(
            hits=resp.get("hits") or [],
            nb_hits=resp.get("nbHits") or 0,
            page=resp.get("page") or 0,
            nb_pages=resp.get("nbPages") or 0,
            hits_per_page=resp.get("hitsPerPage") or options.hits_per_page,
            processing_time_ms=resp.get("processingTimeMS") or 0,
            facets=resp.get("facets"),
            facets_stats=resp.get("facets_stats"),
            query=resp.get("query") or options.query,
            params=resp.get("params") or "",
            index=index_name,
        )

    def _merge_search_results(self, results: List[AlgoliaSearchResult], query: str) -> AlgoliaSearchResult:
        """Merge per-index results into one ranked result."""
        all_hits: List[Dict[str, Any]] = []
        for result in results:
            entity_type = self.entity_type_for_index(result.index)
            for hit in result.hits:
                all_hits.append({**hit, "_index": result.index, "_entityType": entity_type})

        # Stable sort keeps index order on equal scores
        all_hits.sort(key=lambda h: safe_get(h, "_rankingInfo", "userScore", default=0), reverse=True)

        total_hits = sum(r.nb_hits for r in results)
        hits_per_page = results[0].hits_per_page or 20

        merged_facets: Dict[str, Dict[str, int]] = {}
        for result in results:
            for facet_name, facet_data in (result.facets or {}).items():
                bucket = merged_facets.setdefault(facet_name, {})
                for value, count in facet_data.items():
                    bucket[value] = bucket.get(value, 0) + count

        return AlgoliaSearchResult(
            hits=all_hits,
            nb_hits=total_hits,
            page=results[0].page,
            nb_pages=math.ceil(total_hits / hits_per_page),
            hits_per_page=hits_per_page,
            processing_time_ms=max(r.processing_time_ms for r in results),
            facets=merged_facets or None,
            query=query,
            params="",
            index="multi-index",
        )

    # =========================================================================
    # Facets + Suggestions
    # =========================================================================

    def get_facets(
        self,
        entity_type: str,
        facet_name: str,
        query: str = "",
        max_facet_hits: int = 100,
    ) -> AlgoliaFacetResult:
        """
        Search within facet values of one index.

        The facet must be declared in attributesForFaceting.
        """
        try:
            resp = _to_dict(self._client.search_for_facet_values(
                index_name=self.index_name_for(entity_type),
                facet_name=facet_name,
                search_for_facet_values_request={
                    "facetQuery": query,
                    "maxFacetHits": max_facet_hits,
                },
            ))
        except Exception as e:
            raise SearchBackendError("algolia", f"facet search failed for {entity_type}: {e}") from e

        return AlgoliaFacetResult(
            name=facet_name,
            data={hit["value"]: hit.get("count", 0) for hit in resp.get("facetHits", []) if hit.get("value")},
        )

    def get_suggestions(
        self,
        query: str,
        entity_type: Optional[str] = None,
        limit: int = 10,
    ) -> List[SearchSuggestion]:
        """
        Display-name suggestions for a partial query.

        With entity_type, queries that index only. Without it, spreads the
        limit across every index, skipping indices that fail.
        """
        if entity_type:
            options = AlgoliaSearchOptions(
                query=query,
                hits_per_page=limit,
                attributes_to_retrieve=DISPLAY_NAME_ATTRIBUTES,
                attributes_to_highlight=DISPLAY_NAME_ATTRIBUTES,
                get_ranking_info=True,
            )
            result = self.search_single_index(entity_type, options)
            return [
                SearchSuggestion(
                    query=display_name(hit),
                    count=1,
                    popularity=float(safe_get(hit, "_rankingInfo", "userScore", default=0)),
                    source="algolia",
                )
                for hit in result.hits
                if display_name(hit)
            ]

        keys = list(INDEX_KEYS)
        per_index = math.ceil(limit / len(keys))
        suggestions: List[SearchSuggestion] = []
        for key in keys:
            try:
                suggestions.extend(self.get_suggestions(query, key, per_index))
            except Exception as e:
                logger.warning("Algolia suggestions failed for index", index=key, error=str(e))

        suggestions.sort(key=lambda s: s.popularity, reverse=True)
        return suggestions[:limit]

    # =========================================================================
    # Filters
    # =========================================================================

    @staticmethod
    def build_filters(
        entity_types: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
        status: Optional[List[str]] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Build an Algolia filter string.

        Each multi-value group is a parenthesized OR; groups are ANDed.
        Dates become numeric created_at bounds in epoch milliseconds.
        """
        parts: List[str] = []

        for attribute, values in (
            ("entity_type", entity_types),
            ("category", categories),
            ("tags", tags),
            ("status", status),
        ):
            if values:
                group = " OR ".join(f'{attribute}:"{_escape(v)}"' for v in values)
                parts.append(f"({group})")

        if date_from:
            parts.append(f"created_at >= {to_epoch_millis(date_from)}")
        if date_to:
            parts.append(f"created_at <= {to_epoch_millis(date_to)}")
        if user_id:
            parts.append(f'user_id:"{_escape(user_id)}"')

        return " AND ".join(parts)

    # =========================================================================
    # Object Operations
    # =========================================================================

    def save_object(self, entity_type: str, record: Dict[str, Any]) -> dict:
        """Save (upsert) one record."""
        resp = self._client.save_object(
            index_name=self.index_name_for(entity_type),
            body=record,
        )
        return _to_dict(resp)

    def save_objects(self, entity_type: str, records: List[dict], batch_size: int = 1000) -> List:
        """Save (upsert) a batch of records; each must have 'objectID'."""
        return self._client.save_objects(
            index_name=self.index_name_for(entity_type),
            objects=records,
            batch_size=batch_size,
        )

    def delete_object(self, entity_type: str, object_id: str) -> dict:
        """Delete a single record by objectID."""
        resp = self._client.delete_object(
            index_name=self.index_name_for(entity_type),
            object_id=object_id,
        )
        return _to_dict(resp)

    def delete_objects(self, entity_type: str, object_ids: List[str], batch_size: int = 1000) -> List:
        """Delete records by objectID."""
        return self._client.delete_objects(
            index_name=self.index_name_for(entity_type),
            object_ids=object_ids,
            batch_size=batch_size,
        )

    def configure_indices(self) -> Dict[str, dict]:
        """Apply ALGOLIA_INDEX_SETTINGS to every index."""
        responses = {}
        for key, index_settings in ALGOLIA_INDEX_SETTINGS.items():
            resp = self._client.set_settings(
                index_name=self.index_names[key],
                index_settings=index_settings,
            )
            responses[key] = _to_dict(resp)
            logger.info("Configured Algolia index", index=self.index_names[key])
        return responses


def _escape(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


# =============================================================================
# Singleton
# =============================================================================

_algolia_service: Optional[AlgoliaSearchService] = None
_algolia_lock = threading.Lock()


def get_algolia_search_service() -> AlgoliaSearchService:
    """Get or create the AlgoliaSearchService singleton (thread-safe)."""
    global _algolia_service
    if _algolia_service is None:
        with _algolia_lock:
            if _algolia_service is None:
                _algolia_service = AlgoliaSearchService()
    return _algolia_service
