"""Exceptions raised by the content search services."""


class SearchError(Exception):
    """Base error for a search request that could not be served."""
    pass


class SearchBackendError(SearchError):
    """A search engine (Postgres or Algolia) call failed."""

    def __init__(self, backend: str, message: str):
        self.backend = backend
        super().__init__(f"{backend}: {message}")


class SearchUnavailableError(SearchError):
    """Algolia is not configured (missing app id or API keys)."""
    pass
