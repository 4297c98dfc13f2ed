"""
Autocomplete.

Algolia display-name suggestions with Postgres (logged queries + indexed
titles) as the fallback.
"""

import threading
from typing import List, Optional

from content_search.algolia_client import AlgoliaSearchService, get_algolia_search_service
from content_search.models import SearchSuggestion
from content_search.postgres_search import SearchService, get_search_service
from core.logging import get_logger

logger = get_logger(__name__)

MIN_QUERY_LENGTH = 2


class AutocompleteService:

    def __init__(
        self,
        search_service: Optional[SearchService] = None,
        algolia_service: Optional[AlgoliaSearchService] = None,
        algolia_available: Optional[bool] = None,
    ):
        self._search_service = search_service
        self._algolia = algolia_service
        if algolia_available is None:
            algolia_available = algolia_service is not None or AlgoliaSearchService.is_available()
        self.algolia_available = algolia_available

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

    def suggest(self, query: str, limit: int = 5, entity_type: Optional[str] = None) -> List[SearchSuggestion]:
        """
        Suggestions for a partial query.

        Args:
            query: Partial user input (at least 2 characters after trimming).
            limit: Maximum suggestions.
            entity_type: Restrict Algolia suggestions to one index.
        """
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        if self.algolia_available:
            try:
                return self.algolia.get_suggestions(query, entity_type=entity_type, limit=limit)
            except Exception as e:
                logger.warning("Algolia suggestions failed, using Postgres", query=query, error=str(e))

        return self.search_service.get_suggestions(query, limit=limit)


_autocomplete: Optional[AutocompleteService] = None
_autocomplete_lock = threading.Lock()


def get_autocomplete_service() -> AutocompleteService:
    """Get or create the AutocompleteService singleton (thread-safe)."""
    global _autocomplete
    if _autocomplete is None:
        with _autocomplete_lock:
            if _autocomplete is None:
                _autocomplete = AutocompleteService()
    return _autocomplete
