"""
Content Search Module: Postgres full-text search + Algolia.

Provides:
- SearchService: Postgres tsvector search, index maintenance, query analytics
- AlgoliaSearchService: Multi-index Algolia search, facets, suggestions
- AlgoliaSyncService: Entity sync to Algolia with a retry queue
- HybridSearchService: Strategy routing, merging and caching over both engines
- SearchAnalytics: Performance and click tracking
- AutocompleteService: Suggestions with Postgres fallback
"""

from content_search.algolia_client import AlgoliaSearchService, get_algolia_search_service
from content_search.algolia_sync import AlgoliaSyncService, get_algolia_sync_service
from content_search.analytics import SearchAnalytics, get_search_analytics
from content_search.autocomplete import AutocompleteService, get_autocomplete_service
from content_search.exceptions import SearchBackendError, SearchError, SearchUnavailableError
from content_search.hybrid_search import HybridSearchService, get_hybrid_search_service
from content_search.postgres_search import SearchService, get_search_service

__all__ = [
    "SearchService",
    "get_search_service",
    "AlgoliaSearchService",
    "get_algolia_search_service",
    "AlgoliaSyncService",
    "get_algolia_sync_service",
    "HybridSearchService",
    "get_hybrid_search_service",
    "SearchAnalytics",
    "get_search_analytics",
    "AutocompleteService",
    "get_autocomplete_service",
    "SearchError",
    "SearchBackendError",
    "SearchUnavailableError",
]
