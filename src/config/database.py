"""
Supabase access for the content search service.

One client is shared by the Postgres search, query log and analytics
writers. Health checks use check_search_tables to confirm the search tables
from sql/search_schema.sql are reachable.
"""

from functools import lru_cache
from typing import Dict, Optional

from supabase import Client, create_client

from config.settings import Settings, get_settings
from core.logging import get_logger

logger = get_logger(__name__)

SEARCH_TABLES = ("search_index", "search_queries", "search_clicks", "search_performance")


class SupabaseClientError(Exception):
    """Raised when the search database client cannot be created."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


def create_search_client(settings: Settings) -> Client:
    """
    Build a Supabase client from search settings.

    Raises:
        SupabaseClientError: if the URL or service key is missing, or the
            client library rejects them
    """
    url = (settings.supabase_url or "").strip()
    key = (settings.supabase_service_key or "").strip()
    if not url.startswith(("http://", "https://")):
        raise SupabaseClientError(f"SUPABASE_URL must be an http(s) URL, got {url!r}", url=url or None)
    if not key:
        raise SupabaseClientError("SUPABASE_SERVICE_KEY is empty; search tables need the service role", url=url)

    try:
        return create_client(url, key)
    except Exception as e:
        raise SupabaseClientError(f"Search database client for {url} could not be created: {e}", url=url) from e


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Shared client for the configured project."""
    return create_search_client(get_settings())


def get_supabase_client_optional() -> Optional[Client]:
    """Client or None, for health checks that must not fail."""
    try:
        return get_supabase_client()
    except SupabaseClientError as e:
        logger.warning("Search database unavailable", url=e.url, error=str(e))
        return None


def check_search_tables(client: Client) -> Dict[str, str]:
    """
    Probe each search table with a one-row select.

    Returns:
        Table name -> "ok" or the error message
    """
    status = {}
    for table in SEARCH_TABLES:
        try:
            client.table(table).select("*").limit(1).execute()
            status[table] = "ok"
        except Exception as e:
            status[table] = str(e)
    return status
