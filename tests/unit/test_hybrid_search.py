"""
Unit tests for the hybrid search service.

Tests cover:
1. Complex filter detection and strategy routing
2. Algolia hit transformation
3. Merging (dedup, ordering, ties)
4. Search flows: algolia, hybrid top-up, postgres, fallback
5. Caching, query logging and performance tracking

Run with: PYTHONPATH=src python -m pytest tests/unit/test_hybrid_search.py -v
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from content_search.cache import TTLCache
from content_search.exceptions import SearchBackendError, SearchError
from content_search.hybrid_search import HybridSearchService
from content_search.models import (
    AlgoliaSearchResult,
    HybridSearchOptions,
    SearchFilters,
    SearchMethod,
    SearchResponse,
    SearchResult,
    SearchStrategy,
)


# =============================================================================
# Helpers
# =============================================================================

def _hit(object_id: str, score: int, entity_type: str = "products") -> dict:
    return {
        "objectID": object_id,
        "name": f"Item {object_id}",
        "_entityType": entity_type,
        "_rankingInfo": {"userScore": score},
    }


def _algolia_result(hits, nb_hits=None) -> AlgoliaSearchResult:
    return AlgoliaSearchResult(hits=hits, nb_hits=len(hits) if nb_hits is None else nb_hits, index="multi-index")


def _pg_result(entity_id: str, score: float) -> SearchResult:
    return SearchResult(entity_type="invoice", entity_id=entity_id, title=entity_id, relevance_score=score)


def _pg_response(results, total=None, filters=None) -> SearchResponse:
    return SearchResponse(
        results=results,
        total=len(results) if total is None else total,
        query="q",
        filters=filters or SearchFilters(),
    )


@pytest.fixture
def mock_pg():
    pg = MagicMock()
    pg.search.return_value = _pg_response([])
    return pg


@pytest.fixture
def mock_algolia():
    algolia = MagicMock()
    algolia.build_filters.return_value = ""
    algolia.search.return_value = _algolia_result([])
    return algolia


@pytest.fixture
def mock_analytics():
    return MagicMock()


@pytest.fixture
def service(mock_pg, mock_algolia, mock_analytics):
    return HybridSearchService(
        search_service=mock_pg,
        algolia_service=mock_algolia,
        analytics=mock_analytics,
        cache=TTLCache(ttl_seconds=300),
        algolia_available=True,
    )


# =============================================================================
# 1. Strategy
# =============================================================================

class TestComplexFilters:

    def test_simple_filters(self):
        assert HybridSearchService.has_complex_filters(SearchFilters()) is False
        assert HybridSearchService.has_complex_filters(SearchFilters(tags=["a", "b", "c"])) is False

    @pytest.mark.parametrize("filters", [
        SearchFilters(date_from=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        SearchFilters(date_to=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        SearchFilters(tags=["a", "b", "c", "d"]),
        SearchFilters(categories=["1", "2", "3", "4", "5", "6"]),
        SearchFilters(entity_types=["a", "b", "c", "d"]),
    ])
    def test_complex_filters(self, filters):
        assert HybridSearchService.has_complex_filters(filters) is True


class TestStrategy:

    def test_no_algolia_uses_postgres(self, mock_pg):
        service = HybridSearchService(search_service=mock_pg, analytics=MagicMock(), algolia_available=False)
        assert service.determine_search_strategy("acme", SearchFilters()) == SearchStrategy.POSTGRES

    def test_use_algolia_false(self, service):
        assert service.determine_search_strategy("acme", SearchFilters(), use_algolia=False) == SearchStrategy.POSTGRES

    def test_use_postgres_false(self, service):
        long_query = "x" * 150
        assert service.determine_search_strategy(long_query, SearchFilters(), use_postgres=False) == SearchStrategy.ALGOLIA

    def test_short_query(self, service):
        assert service.determine_search_strategy("a" * 50, SearchFilters()) == SearchStrategy.ALGOLIA

    def test_medium_query(self, service):
        assert service.determine_search_strategy("a" * 51, SearchFilters()) == SearchStrategy.HYBRID

    def test_long_query(self, service):
        assert service.determine_search_strategy("a" * 101, SearchFilters()) == SearchStrategy.HYBRID

    def test_complex_filters_force_hybrid(self, service):
        filters = SearchFilters(tags=["a", "b", "c", "d"])
        assert service.determine_search_strategy("acme", filters) == SearchStrategy.HYBRID


# =============================================================================
# 2. Transformation
# =============================================================================

class TestTransformAlgoliaResults:

    def test_full_hit(self, sample_algolia_hit):
        hit = {**sample_algolia_hit, "_entityType": "products"}

        result = HybridSearchService.transform_algolia_results(_algolia_result([hit]))[0]

        assert result.entity_type == "products"
        assert result.entity_id == "prod-001"
        assert result.title == "Consulting Hours"
        assert result.excerpt == "Hourly financial <em>consulting</em>"
        assert result.relevance_score == 42.0
        assert result.highlighted_title == "<em>Consulting</em> Hours"
        assert result.highlighted_excerpt == "Hourly financial <em>consulting</em>"
        assert result.created_at == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert result.source == "algolia"
        assert result.metadata == {}

    def test_metadata_comes_from_hit_metadata(self, sample_algolia_hit):
        hit = {**sample_algolia_hit, "metadata": {"sku": "CH-1"}}

        result = HybridSearchService.transform_algolia_results(_algolia_result([hit]))[0]

        assert result.metadata == {"sku": "CH-1"}

    def test_sparse_hit_fallbacks(self):
        hit = {"id": "c1", "first_name": "Ada", "last_name": "Lovelace", "excerpt": "Customer"}

        result = HybridSearchService.transform_algolia_results(_algolia_result([hit]))[0]

        assert result.entity_type == "unknown"
        assert result.entity_id == "c1"
        assert result.title == "Ada Lovelace"
        assert result.excerpt == "Customer"
        assert result.relevance_score == 0.0
        assert result.highlighted_title is None


# =============================================================================
# 3. Merge
# =============================================================================

class TestMergeResults:

    def test_dedup_primary_wins(self):
        primary = [SearchResult(entity_type="p", entity_id="1", relevance_score=1, source="algolia")]
        secondary = [SearchResult(entity_type="p", entity_id="1", relevance_score=9, source="postgres")]

        merged = HybridSearchService.merge_results(primary, secondary)

        assert len(merged) == 1
        assert merged[0].source == "algolia"

    def test_sorted_by_relevance_ties_keep_order(self):
        merged = HybridSearchService.merge_results(
            [_pg_result("a", 1.0), _pg_result("b", 5.0)],
            [_pg_result("c", 1.0), _pg_result("d", 3.0)],
        )

        assert [r.entity_id for r in merged] == ["b", "d", "a", "c"]

    def test_facet_attributes_unique(self):
        facets = HybridSearchService.get_facet_attributes(
            SearchFilters(entity_types=["invoice"], categories=["billing"], status=["paid"])
        )
        assert facets == ["entity_type", "category", "status"]


# =============================================================================
# 4. Search flows
# =============================================================================

class TestSearchFlows:

    def test_algolia_only(self, service, mock_pg, mock_algolia):
        mock_algolia.search.return_value = _algolia_result([_hit("p1", 5), _hit("p2", 3)], nb_hits=40)

        result = service.search(HybridSearchOptions(query="acme", filters=SearchFilters(limit=2)))

        assert result.search_method == SearchMethod.ALGOLIA
        assert [r.entity_id for r in result.results] == ["p1", "p2"]
        assert result.total == 40
        assert result.performance_metrics.algolia_time_ms is not None
        mock_pg.search.assert_not_called()

    def test_algolia_page_capped_at_limit(self, service, mock_algolia):
        hits = [_hit(f"p{i}", 10 - i) for i in range(6)]
        mock_algolia.search.return_value = _algolia_result(hits, nb_hits=60)

        result = service.search(HybridSearchOptions(query="acme", filters=SearchFilters(limit=2)))

        assert result.search_method == SearchMethod.ALGOLIA
        assert [r.entity_id for r in result.results] == ["p0", "p1"]
        assert result.total == 60

    def test_algolia_pagination(self, service, mock_algolia):
        service.search(HybridSearchOptions(query="acme", filters=SearchFilters(limit=10, offset=30)))

        options = mock_algolia.search.call_args[0][0]
        assert options.page == 3
        assert options.hits_per_page == 10
        assert options.get_ranking_info is True
        assert options.facets == ["entity_type", "category", "status"]

    def test_hybrid_tops_up_from_postgres(self, service, mock_pg, mock_algolia):
        mock_algolia.search.return_value = _algolia_result([_hit("a1", 9), _hit("dup", 2)], nb_hits=2)
        mock_pg.search.return_value = _pg_response(
            [_pg_result("dup", 50.0), _pg_result("p1", 0.5), _pg_result("p2", 0.4)],
            total=12,
        )
        filters = SearchFilters(limit=4, offset=0, tags=["a", "b", "c", "d"])

        result = service.search(HybridSearchOptions(query="acme", filters=filters))

        assert result.search_method == SearchMethod.HYBRID
        assert [r.entity_id for r in result.results] == ["a1", "dup", "p1", "p2"]
        assert result.results[1].source == "algolia"
        assert result.total == 12
        assert result.performance_metrics.postgres_time_ms is not None

        args, kwargs = mock_pg.search.call_args
        assert args[1].limit == 2
        assert args[1].offset == 2
        assert kwargs["log_query"] is False

    def test_hybrid_full_page_skips_postgres(self, service, mock_pg, mock_algolia):
        mock_algolia.search.return_value = _algolia_result([_hit("a1", 9), _hit("a2", 2)], nb_hits=50)

        result = service.search(HybridSearchOptions(query="q" * 60, filters=SearchFilters(limit=2)))

        assert result.search_method == SearchMethod.ALGOLIA
        mock_pg.search.assert_not_called()

    def test_postgres_only(self, service, mock_pg, mock_algolia):
        mock_pg.search.return_value = _pg_response([_pg_result("inv-1", 0.3)], total=1)

        result = service.search(HybridSearchOptions(query="acme", use_algolia=False))

        assert result.search_method == SearchMethod.POSTGRES
        assert result.total == 1
        assert result.postgres_results is not None
        mock_algolia.search.assert_not_called()

    def test_algolia_failure_falls_back(self, service, mock_pg, mock_algolia):
        mock_algolia.search.side_effect = SearchBackendError("algolia", "down")
        mock_pg.search.return_value = _pg_response([_pg_result("inv-1", 0.3)])

        result = service.search(HybridSearchOptions(query="acme"))

        assert result.search_method == SearchMethod.POSTGRES
        assert result.results[0].entity_id == "inv-1"

    def test_algolia_failure_without_fallback_raises(self, service, mock_algolia):
        mock_algolia.search.side_effect = SearchBackendError("algolia", "down")

        with pytest.raises(SearchError):
            service.search(HybridSearchOptions(query="acme", fallback_to_postgres=False))

    def test_unexpected_error_is_wrapped(self, service, mock_pg):
        mock_pg.search.side_effect = KeyError("boom")

        with pytest.raises(SearchError, match="Search failed"):
            service.search(HybridSearchOptions(query="acme", use_algolia=False))


# =============================================================================
# 5. Cache, logging, tracking
# =============================================================================

class TestCachingAndTracking:

    def test_second_call_is_cache_hit(self, service, mock_algolia):
        options = HybridSearchOptions(query="acme")

        first = service.search(options)
        second = service.search(options)

        assert first.performance_metrics.cache_hit is False
        assert second.performance_metrics.cache_hit is True
        assert mock_algolia.search.call_count == 1
        assert service.get_cache_stats().hits == 1

    def test_different_filters_miss_cache(self, service, mock_algolia):
        service.search(HybridSearchOptions(query="acme"))
        service.search(HybridSearchOptions(query="acme", filters=SearchFilters(categories=["billing"])))

        assert mock_algolia.search.call_count == 2

    def test_clear_cache(self, service, mock_algolia):
        options = HybridSearchOptions(query="acme")
        service.search(options)

        service.clear_cache()
        service.search(options)

        assert mock_algolia.search.call_count == 2

    def test_cache_key_is_canonical(self):
        a = HybridSearchService.cache_key("acme", SearchFilters(tags=["x"], limit=5))
        b = HybridSearchService.cache_key("acme", SearchFilters(limit=5, tags=["x"]))
        assert a == b
        assert a.startswith("search:acme:")

    def test_query_logged_once(self, service, mock_pg):
        service.search(HybridSearchOptions(query="acme", filters=SearchFilters(user_id="user-1")))

        mock_pg.log_search_query.assert_called_once()
        kwargs = mock_pg.log_search_query.call_args.kwargs
        assert kwargs["search_method"] == "algolia"
        assert kwargs["user_id"] == "user-1"

    def test_performance_tracked(self, service, mock_analytics):
        result = service.search(HybridSearchOptions(query="acme"))
        mock_analytics.track_performance.assert_called_once_with(result)

    def test_tracking_disabled(self, service, mock_analytics):
        service.search(HybridSearchOptions(query="acme", performance_tracking=False))
        mock_analytics.track_performance.assert_not_called()

    def test_tracking_failure_does_not_break_search(self, service, mock_analytics):
        mock_analytics.track_performance.side_effect = RuntimeError("down")

        result = service.search(HybridSearchOptions(query="acme"))

        assert result.search_method == SearchMethod.ALGOLIA


class TestSingleton:

    def test_singleton_lock_exists(self):
        from content_search import hybrid_search
        assert hasattr(hybrid_search, "_service_lock")
