"""
Pydantic models for the content search services and API.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================================
# Enums
# ============================================================================

class SearchMethod(str, Enum):
    """Engine that produced a search response."""
    ALGOLIA = "algolia"
    POSTGRES = "postgres"
    HYBRID = "hybrid"


class SearchStrategy(str, Enum):
    """Routing decision made before a search runs."""
    ALGOLIA = "algolia"
    POSTGRES = "postgres"
    HYBRID = "hybrid"


class SyncOperation(str, Enum):
    """Algolia sync operation."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ============================================================================
# Filters + Results
# ============================================================================

class SearchFilters(BaseModel):
    """Filters shared by the Postgres, Algolia and hybrid search paths."""
    entity_types: Optional[List[str]] = Field(None, description="invoice, client, product, vendor, ...")
    categories: Optional[List[str]] = Field(None, description="Entity categories")
    tags: Optional[List[str]] = Field(None, description="Entity tags (any match)")
    status: Optional[List[str]] = Field(None, description="Entity status values")
    date_from: Optional[datetime] = Field(None, description="Created at or after")
    date_to: Optional[datetime] = Field(None, description="Created at or before")
    user_id: Optional[str] = Field(None, description="Tenant scope")
    limit: int = Field(20, ge=1, le=100, description="Results per page")
    offset: int = Field(0, ge=0, description="Results to skip")

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Naive bounds are UTC, matching to_epoch_millis
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def validate_date_range(self):
        """Ensure date_from <= date_to when both are set."""
        if self.date_from is not None and self.date_to is not None:
            if self.date_from > self.date_to:
                raise ValueError(f"date_from ({self.date_from}) must be <= date_to ({self.date_to})")
        return self


class SearchResult(BaseModel):
    """A single search hit, normalized across engines."""
    entity_type: str
    entity_id: str
    title: str = ""
    excerpt: str = ""
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    relevance_score: float = 0.0
    highlighted_title: Optional[str] = None
    highlighted_excerpt: Optional[str] = None
    created_at: Optional[datetime] = None
    source: str = "postgres"


class SearchResponse(BaseModel):
    """Postgres full-text search response."""
    results: List[SearchResult]
    total: int
    query: str
    filters: SearchFilters


class SearchDocument(BaseModel):
    """A row of the Postgres search_index table."""
    entity_type: str
    entity_id: str
    title: str
    content: str = ""
    excerpt: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    status: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None


# ============================================================================
# Algolia
# ============================================================================

class AlgoliaSearchOptions(BaseModel):
    """Parameters for an Algolia query."""
    query: str
    filters: Optional[str] = None
    facets: Optional[List[str]] = None
    page: int = 0
    hits_per_page: int = 20
    attributes_to_retrieve: Optional[List[str]] = None
    attributes_to_highlight: Optional[List[str]] = None
    attributes_to_snippet: Optional[List[str]] = None
    get_ranking_info: bool = False
    analytics: bool = True
    enable_personalization: bool = False


class AlgoliaSearchResult(BaseModel):
    """Algolia response (single index or merged across indices)."""
    hits: List[Dict[str, Any]] = Field(default_factory=list)
    nb_hits: int = 0
    page: int = 0
    nb_pages: int = 0
    hits_per_page: int = 20
    processing_time_ms: int = 0
    facets: Optional[Dict[str, Dict[str, int]]] = None
    facets_stats: Optional[Dict[str, Dict[str, float]]] = None
    query: str = ""
    params: str = ""
    index: str = ""


class AlgoliaFacetResult(BaseModel):
    """Facet values with counts for one facet."""
    name: str
    data: Dict[str, int]
    stats: Optional[Dict[str, float]] = None


class SearchSuggestion(BaseModel):
    """Autocomplete suggestion."""
    query: str
    count: int = 1
    popularity: float = 0.0
    source: str = "algolia"


# ============================================================================
# Hybrid
# ============================================================================

class PerformanceMetrics(BaseModel):
    """Per-engine timing for a hybrid search."""
    algolia_time_ms: Optional[int] = None
    postgres_time_ms: Optional[int] = None
    cache_hit: bool = False


class HybridSearchOptions(BaseModel):
    """Input to HybridSearchService.search."""
    query: str
    filters: SearchFilters = Field(default_factory=SearchFilters)
    use_algolia: bool = True
    use_postgres: bool = True
    fallback_to_postgres: bool = True
    performance_tracking: bool = True


class HybridSearchResult(BaseModel):
    """Output of HybridSearchService.search."""
    results: List[SearchResult]
    total: int
    query: str
    filters: SearchFilters
    search_method: SearchMethod
    execution_time_ms: int
    algolia_results: Optional[AlgoliaSearchResult] = None
    postgres_results: Optional[SearchResponse] = None
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)


class CacheStats(BaseModel):
    """Hybrid search cache statistics."""
    size: int
    hits: int
    misses: int
    hit_rate: float
    ttl_seconds: float


# ============================================================================
# Analytics
# ============================================================================

class PopularQuery(BaseModel):
    """A logged query with its frequency."""
    query: str
    count: int


class SearchAnalyticsSummary(BaseModel):
    """Aggregated search_queries statistics for a time window."""
    period_days: int
    total_searches: int = 0
    unique_queries: int = 0
    average_results: float = 0.0
    zero_result_rate: float = 0.0
    average_execution_time_ms: Optional[float] = None
    top_queries: List[PopularQuery] = Field(default_factory=list)
    zero_result_queries: List[PopularQuery] = Field(default_factory=list)
    search_methods: Dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Sync
# ============================================================================

class SyncOptions(BaseModel):
    """Options for Algolia sync operations."""
    retry_attempts: int = Field(3, ge=0, description="Retries before an item is dead-lettered")
    retry_delay_seconds: float = Field(5.0, ge=0, description="Delay before the retry queue runs")
    batch_size: int = Field(100, ge=1, le=1000)
    dry_run: bool = False


class SyncResult(BaseModel):
    """Outcome of a sync operation."""
    success: bool
    indexed: int
    errors: List[str] = Field(default_factory=list)
    execution_time_ms: int = 0


@dataclass
class SyncQueueItem:
    """A failed sync operation waiting to be retried."""
    id: str
    operation: SyncOperation
    entity_type: str
    entity_id: str
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0


class QueueStatus(BaseModel):
    """Retry queue status."""
    pending: int
    retry: int
    is_processing: bool
    dead_letter: int = 0


# ============================================================================
# API Request / Response Models
# ============================================================================

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard API envelope."""
    success: bool = True
    data: T


class SuggestionRequest(BaseModel):
    """Request body for search suggestions."""
    query: str = Field(..., max_length=200)
    limit: int = Field(5, ge=1, le=20)
    entity_type: Optional[str] = None


class SearchClickRequest(BaseModel):
    """Record a search result click."""
    query: str
    entity_type: str
    entity_id: str
    position: int = Field(..., ge=1)


class SyncEntityRequest(BaseModel):
    """Sync one entity to Algolia."""
    entity_type: str
    entity: Dict[str, Any]
    operation: SyncOperation = SyncOperation.UPDATE
    dry_run: bool = False

    @model_validator(mode="after")
    def validate_entity_id(self):
        if not self.entity.get("id"):
            raise ValueError("entity.id is required")
        return self


class BatchSyncItem(BaseModel):
    """One entry of a batch sync."""
    entity_type: str
    entity: Dict[str, Any]
    operation: SyncOperation = SyncOperation.UPDATE


class BatchSyncRequest(BaseModel):
    """Batch sync request."""
    items: List[BatchSyncItem] = Field(..., min_length=1)
    batch_size: int = Field(100, ge=1, le=1000)
    dry_run: bool = False


class RebuildIndexResponse(BaseModel):
    """Result of a Postgres index rebuild."""
    entity_type: Optional[str] = None
    rows: int
