"""
Pytest configuration and shared fixtures for the content search tests.
"""
import os
import sys
from unittest.mock import MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

# Load environment variables
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))

# Required settings must exist before any module calls get_settings()
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-key")


# ============================================================================
# Fixtures: Test Data Factories
# ============================================================================

@pytest.fixture
def sample_product() -> dict:
    """Sample product row (from Supabase)."""
    return {
        "id": "prod-001",
        "user_id": "user-001",
        "name": "Consulting Hours",
        "description": "Hourly financial consulting",
        "category": "services",
        "sku": "CONS-001",
        "unit_price": 150.0,
        "cost_price": 60.0,
        "total_quantity": 100,
        "total_available": 80,
        "status": "active",
        "notes": None,
        "tags": ["consulting", "hourly"],
        "created_at": "2024-01-15T10:00:00+00:00",
        "updated_at": "2024-02-01T12:30:00+00:00",
    }


@pytest.fixture
def sample_algolia_hit() -> dict:
    """Sample Algolia hit as returned by search_single_index().to_dict()."""
    return {
        "objectID": "prod-001",
        "entity_type": "product",
        "name": "Consulting Hours",
        "description": "Hourly financial consulting",
        "category": "services",
        "tags": ["consulting"],
        "created_at": 1705312800000,
        "_highlightResult": {"name": {"value": "<em>Consulting</em> Hours"}},
        "_snippetResult": {"description": {"value": "Hourly financial <em>consulting</em>"}},
        "_rankingInfo": {"userScore": 42},
    }


@pytest.fixture
def sample_search_row() -> dict:
    """Sample row returned by the search_content RPC."""
    return {
        "entity_type": "invoice",
        "entity_id": "inv-001",
        "title": "Invoice INV-001",
        "excerpt": "Consulting services for January",
        "category": "billing",
        "tags": ["consulting"],
        "metadata": {"amount": 1500},
        "created_at": "2024-01-20T09:00:00+00:00",
        "rank": 0.42,
        "highlighted_title": "Invoice INV-001",
        "headline": "<mark>Consulting</mark> services for January",
        "total_count": 7,
    }


# ============================================================================
# Fixtures: Mock Services
# ============================================================================

@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()

    # Mock RPC calls
    mock_client.rpc.return_value.execute.return_value.data = []

    # Mock table operations
    mock_client.table.return_value.select.return_value.execute.return_value.data = []
    mock_client.table.return_value.insert.return_value.execute.return_value.data = [{"id": "test"}]
    mock_client.table.return_value.upsert.return_value.execute.return_value.data = [{"id": "test"}]

    return mock_client


@pytest.fixture
def mock_algolia_client():
    """Mock algoliasearch SearchClientSync."""
    mock_client = MagicMock()
    mock_client.search_single_index.return_value.to_dict.return_value = {
        "hits": [],
        "nbHits": 0,
        "page": 0,
        "nbPages": 0,
        "hitsPerPage": 20,
        "processingTimeMS": 1,
        "query": "",
        "params": "",
    }
    return mock_client


# ============================================================================
# Markers auto-use
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "supabase: marks tests that require Supabase")


# ============================================================================
# Skip conditions
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Auto-skip integration tests if no server URL is configured."""
    skip_integration = pytest.mark.skip(reason="Integration tests require running server")
    skip_supabase = pytest.mark.skip(reason="Supabase tests require credentials")

    server_url = os.getenv("TEST_SERVER_URL")
    supabase_url = os.getenv("SUPABASE_URL")

    for item in items:
        if "integration" in item.keywords and not server_url:
            item.add_marker(skip_integration)
        if "supabase" in item.keywords and (not supabase_url or "test.supabase.co" in supabase_url):
            item.add_marker(skip_supabase)
