"""
Tests for the FastAPI application (routes wired to mocked services).
"""
import os
import sys
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from content_search.algolia_sync import get_algolia_sync_service
from content_search.analytics import get_search_analytics
from content_search.autocomplete import get_autocomplete_service
from content_search.exceptions import SearchBackendError
from content_search.hybrid_search import get_hybrid_search_service
from content_search.models import (
    CacheStats,
    HybridSearchResult,
    PopularQuery,
    QueueStatus,
    SearchAnalyticsSummary,
    SearchFilters,
    SearchMethod,
    SearchResult,
    SearchSuggestion,
    SyncOptions,
    SyncResult,
)
from content_search.postgres_search import get_search_service


@pytest.fixture
def mocks():
    hybrid = MagicMock()
    hybrid.get_cache_stats.return_value = CacheStats(size=2, hits=1, misses=1, hit_rate=0.5, ttl_seconds=300)

    pg = MagicMock()
    pg.get_popular_queries.return_value = [PopularQuery(query="invoice", count=4)]
    pg.get_search_analytics.return_value = SearchAnalyticsSummary(period_days=30, total_searches=4)
    pg.rebuild_index.return_value = 12

    autocomplete = MagicMock()
    autocomplete.suggest.return_value = [SearchSuggestion(query="Acme Ltd")]

    analytics = MagicMock()
    analytics.log_click.return_value = True

    sync = MagicMock()
    sync.options = SyncOptions()
    sync.sync_entity.return_value = SyncResult(success=True, indexed=1)
    sync.batch_sync.return_value = SyncResult(success=True, indexed=2)
    sync.remove_from_algolia.return_value = SyncResult(success=False, indexed=0, errors=["404"])
    sync.get_queue_status.return_value = QueueStatus(pending=1, retry=0, is_processing=False)
    sync.process_retry_queue.return_value = 1

    return {"hybrid": hybrid, "pg": pg, "autocomplete": autocomplete, "analytics": analytics, "sync": sync}


@pytest.fixture
def client(mocks):
    """Test client with every service dependency replaced by a mock."""
    from api.app import create_app

    app = create_app()
    app.dependency_overrides[get_hybrid_search_service] = lambda: mocks["hybrid"]
    app.dependency_overrides[get_search_service] = lambda: mocks["pg"]
    app.dependency_overrides[get_autocomplete_service] = lambda: mocks["autocomplete"]
    app.dependency_overrides[get_search_analytics] = lambda: mocks["analytics"]
    app.dependency_overrides[get_algolia_sync_service] = lambda: mocks["sync"]
    return TestClient(app)


@pytest.fixture
def algolia_available():
    with patch("api.routes.search.AlgoliaSearchService.is_available", return_value=True):
        yield


def _hybrid_result(filters: SearchFilters) -> HybridSearchResult:
    return HybridSearchResult(
        results=[SearchResult(entity_type="invoice", entity_id="inv-1", title="Invoice 1", relevance_score=0.4)],
        total=1,
        query="invoice",
        filters=filters,
        search_method=SearchMethod.POSTGRES,
        execution_time_ms=5,
    )


class TestHealthEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    def test_live(self, client):
        assert client.get("/live").json() == {"status": "alive"}

    def test_ready_without_database(self, client):
        with patch("api.routes.health.get_supabase_client_optional", return_value=None):
            data = client.get("/ready").json()
        assert data["status"] == "not_ready"

    def test_detailed_health(self, client):
        mock_sb = MagicMock()
        mock_sb.table.return_value.select.return_value.limit.return_value.execute.return_value.data = [{"entity_id": "x"}]
        with patch("api.routes.health.get_supabase_client_optional", return_value=mock_sb):
            data = client.get("/health/detailed").json()
        assert data["status"] == "healthy"
        assert data["checks"]["supabase"]["status"] == "connected"
        assert data["checks"]["supabase"]["tables"]["search_index"] == "ok"

    def test_detailed_health_missing_table(self, client):
        mock_sb = MagicMock()
        mock_sb.table.return_value.select.return_value.limit.return_value.execute.side_effect = RuntimeError("missing")
        with patch("api.routes.health.get_supabase_client_optional", return_value=mock_sb):
            data = client.get("/health/detailed").json()
        assert data["status"] == "degraded"
        assert data["checks"]["supabase"]["status"] == "error"

    def test_search_health_postgres_only(self, client):
        with patch("api.routes.search.AlgoliaSearchService.is_available", return_value=False):
            data = client.get("/api/search/health").json()
        assert data["postgres"] == "healthy"
        assert data["algolia"] == "not_configured"
        assert data["status"] == "healthy"


class TestContentSearch:

    def test_search(self, client, mocks):
        mocks["hybrid"].search.side_effect = lambda options: _hybrid_result(options.filters)

        response = client.get(
            "/api/search/content",
            params={
                "q": "invoice",
                "limit": 10,
                "offset": 20,
                "entityTypes": "invoice, client",
                "tags": "q1",
                "useAlgolia": "false",
            },
            headers={"X-User-Id": "user-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["total"] == 1
        assert body["data"]["results"][0]["entity_id"] == "inv-1"
        assert "algolia_results" not in body["data"]

        options = mocks["hybrid"].search.call_args[0][0]
        assert options.query == "invoice"
        assert options.use_algolia is False
        assert options.filters.entity_types == ["invoice", "client"]
        assert options.filters.tags == ["q1"]
        assert options.filters.user_id == "user-1"
        assert options.filters.limit == 10
        assert options.filters.offset == 20

    def test_blank_query_is_400(self, client, mocks):
        response = client.get("/api/search/content", params={"q": "   "})
        assert response.status_code == 400
        mocks["hybrid"].search.assert_not_called()

    def test_missing_query_is_422(self, client):
        assert client.get("/api/search/content").status_code == 422

    def test_limit_out_of_range_is_422(self, client):
        assert client.get("/api/search/content", params={"q": "x", "limit": 500}).status_code == 422

    def test_inverted_date_range_is_422(self, client, mocks):
        response = client.get("/api/search/content", params={
            "q": "x", "dateFrom": "2024-02-01T00:00:00Z", "dateTo": "2024-01-01T00:00:00Z",
        })
        assert response.status_code == 422
        mocks["hybrid"].search.assert_not_called()

    def test_mixed_naive_and_aware_dates(self, client, mocks):
        mocks["hybrid"].search.side_effect = lambda options: _hybrid_result(options.filters)

        response = client.get("/api/search/content", params={
            "q": "invoice", "dateFrom": "2024-01-01T00:00:00", "dateTo": "2024-02-01T00:00:00Z",
        })

        assert response.status_code == 200
        options = mocks["hybrid"].search.call_args[0][0]
        assert options.filters.date_from.tzinfo is not None

    def test_mixed_naive_and_aware_inverted_dates_is_422(self, client):
        response = client.get("/api/search/content", params={
            "q": "invoice", "dateFrom": "2024-03-01T00:00:00", "dateTo": "2024-02-01T00:00:00Z",
        })
        assert response.status_code == 422

    def test_backend_error_is_502(self, client, mocks):
        mocks["hybrid"].search.side_effect = SearchBackendError("postgres", "down")

        response = client.get("/api/search/content", params={"q": "invoice"})

        assert response.status_code == 502
        assert "postgres" in response.json()["detail"]

    def test_suggestions(self, client, mocks):
        response = client.post("/api/search/content", json={"query": "acm", "limit": 3})

        assert response.status_code == 200
        assert response.json()["data"][0]["query"] == "Acme Ltd"
        mocks["autocomplete"].suggest.assert_called_once_with("acm", limit=3, entity_type=None)

    def test_popular(self, client, mocks):
        response = client.get("/api/search/content/popular", params={"limit": 5})

        assert response.json()["data"] == [{"query": "invoice", "count": 4}]
        mocks["pg"].get_popular_queries.assert_called_once_with(limit=5, days=30)


class TestAnalyticsEndpoints:

    def test_analytics_scoped_to_user(self, client, mocks):
        response = client.get("/api/search/analytics", params={"days": 7}, headers={"X-User-Id": "user-1"})

        assert response.json()["data"]["total_searches"] == 4
        mocks["pg"].get_search_analytics.assert_called_once_with(days=7, user_id="user-1")

    def test_click(self, client, mocks):
        response = client.post(
            "/api/search/click",
            json={"query": "acme", "entity_type": "vendor", "entity_id": "v1", "position": 1},
        )

        assert response.status_code == 201
        assert response.json()["data"]["recorded"] is True

    def test_click_position_validated(self, client):
        response = client.post(
            "/api/search/click",
            json={"query": "acme", "entity_type": "vendor", "entity_id": "v1", "position": 0},
        )
        assert response.status_code == 422

    def test_rebuild_index(self, client, mocks):
        response = client.post("/api/search/index/rebuild", params={"entityType": "invoice"})

        assert response.json()["data"] == {"entity_type": "invoice", "rows": 12}
        mocks["pg"].rebuild_index.assert_called_once_with("invoice")


class TestSyncEndpoints:

    def test_sync_requires_algolia(self, client):
        with patch("api.routes.search.AlgoliaSearchService.is_available", return_value=False):
            response = client.post("/api/search/sync", json={"entity_type": "product", "entity": {"id": "p1"}})
        assert response.status_code == 503

    def test_sync_entity(self, client, mocks, algolia_available):
        response = client.post(
            "/api/search/sync",
            json={"entity_type": "product", "entity": {"id": "p1"}, "operation": "create", "dry_run": True},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        entity_type, entity, operation, options = mocks["sync"].sync_entity.call_args[0]
        assert entity_type == "product"
        assert operation.value == "create"
        assert options.dry_run is True

    def test_sync_entity_requires_id(self, client, algolia_available):
        response = client.post("/api/search/sync", json={"entity_type": "product", "entity": {"name": "x"}})
        assert response.status_code == 422

    def test_batch_sync(self, client, mocks, algolia_available):
        response = client.post("/api/search/sync/batch", json={
            "items": [
                {"entity_type": "product", "entity": {"id": "p1"}},
                {"entity_type": "vendor", "entity": {"id": "v1"}, "operation": "delete"},
            ],
            "batch_size": 50,
        })

        assert response.json()["data"]["indexed"] == 2
        items, options = mocks["sync"].batch_sync.call_args[0]
        assert len(items) == 2
        assert options.batch_size == 50

    def test_remove_reports_failure(self, client, mocks, algolia_available):
        response = client.delete("/api/search/sync/product/p1")

        body = response.json()
        assert body["success"] is False
        assert body["data"]["errors"] == ["404"]
        mocks["sync"].remove_from_algolia.assert_called_once_with("product", "p1")

    def test_status(self, client):
        data = client.get("/api/search/sync/status").json()["data"]
        assert data["pending"] == 1
        assert data["is_processing"] is False

    def test_retry(self, client, mocks, algolia_available):
        data = client.post("/api/search/sync/retry").json()["data"]
        assert data["processed"] == 1


class TestCacheEndpoints:

    def test_stats(self, client):
        data = client.get("/api/search/cache/stats").json()["data"]
        assert data["hit_rate"] == 0.5

    def test_clear(self, client, mocks):
        response = client.delete("/api/search/cache")

        assert response.json()["data"]["cleared"] is True
        mocks["hybrid"].clear_cache.assert_called_once()
