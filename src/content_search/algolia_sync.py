"""
Algolia Sync Service.

Pushes entity changes to Algolia. Single-entity failures land in a retry
queue keyed by "{entity_type}-{entity_id}" that is drained on a background
timer; items that keep failing move to a bounded dead-letter list.
"""

import threading
import time
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, Iterable, List, Optional

from config.settings import get_settings
from content_search.algolia_client import AlgoliaSearchService, get_algolia_search_service
from content_search.algolia_config import prepare_entity_for_algolia
from content_search.models import (
    BatchSyncItem,
    QueueStatus,
    SyncOperation,
    SyncOptions,
    SyncQueueItem,
    SyncResult,
)
from core.logging import get_logger
from core.utils import chunk_list

logger = get_logger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


class AlgoliaSyncService:
    """Entity sync to Algolia with a retry queue."""

    def __init__(
        self,
        algolia: Optional[AlgoliaSearchService] = None,
        options: Optional[SyncOptions] = None,
        dead_letter_size: Optional[int] = None,
    ):
        settings = get_settings()
        self._algolia = algolia
        self.options = options or SyncOptions(
            retry_attempts=settings.algolia_sync_max_retries,
            retry_delay_seconds=settings.algolia_sync_retry_delay_seconds,
            batch_size=settings.algolia_sync_batch_size,
        )

        self._queue: "OrderedDict[str, SyncQueueItem]" = OrderedDict()
        self._dead_letter: Deque[SyncQueueItem] = deque(
            maxlen=dead_letter_size or settings.algolia_sync_dead_letter_size
        )
        self._lock = threading.Lock()
        self._processing = False
        self._timer: Optional[threading.Timer] = None

    @property
    def algolia(self) -> AlgoliaSearchService:
        if self._algolia is None:
            self._algolia = get_algolia_search_service()
        return self._algolia

    # =========================================================================
    # Single Entity
    # =========================================================================

    def sync_entity(
        self,
        entity_type: str,
        entity: Dict[str, Any],
        operation: SyncOperation = SyncOperation.UPDATE,
        options: Optional[SyncOptions] = None,
    ) -> SyncResult:
        """
        Save or delete one entity in its Algolia index.

        Failures are returned (not raised) and queued for retry.
        """
        options = options or self.options
        start = time.time()

        if not entity.get("id"):
            return SyncResult(
                success=False,
                indexed=0,
                errors=[f"{entity_type} entity is missing 'id'"],
                execution_time_ms=_elapsed_ms(start),
            )
        entity_id = str(entity["id"])

        if options.dry_run:
            if operation != SyncOperation.DELETE:
                prepare_entity_for_algolia(entity_type, entity)
            logger.info("Dry run sync", entity_type=entity_type, entity_id=entity_id, operation=operation.value)
            return SyncResult(success=True, indexed=1, execution_time_ms=_elapsed_ms(start))

        try:
            self._apply(operation, entity_type, entity_id, entity)
        except Exception as e:
            logger.error(
                "Algolia sync failed",
                entity_type=entity_type,
                entity_id=entity_id,
                operation=operation.value,
                error=str(e),
            )
            self._enqueue(SyncQueueItem(
                id=f"{entity_type}-{entity_id}",
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                data=entity,
            ))
            return SyncResult(success=False, indexed=0, errors=[str(e)], execution_time_ms=_elapsed_ms(start))

        logger.debug("Synced entity", entity_type=entity_type, entity_id=entity_id, operation=operation.value)
        return SyncResult(success=True, indexed=1, execution_time_ms=_elapsed_ms(start))

    def sync_product(self, product: Dict[str, Any], operation: SyncOperation = SyncOperation.UPDATE,
                     options: Optional[SyncOptions] = None) -> SyncResult:
        return self.sync_entity("product", product, operation, options)

    def sync_vendor(self, vendor: Dict[str, Any], operation: SyncOperation = SyncOperation.UPDATE,
                    options: Optional[SyncOptions] = None) -> SyncResult:
        return self.sync_entity("vendor", vendor, operation, options)

    def sync_customer(self, customer: Dict[str, Any], operation: SyncOperation = SyncOperation.UPDATE,
                      options: Optional[SyncOptions] = None) -> SyncResult:
        return self.sync_entity("customer", customer, operation, options)

    def remove_from_algolia(
        self,
        entity_type: str,
        entity_id: str,
        options: Optional[SyncOptions] = None,
    ) -> SyncResult:
        """Delete one record. Failures are reported but not queued."""
        options = options or self.options
        start = time.time()

        if options.dry_run:
            return SyncResult(success=True, indexed=1, execution_time_ms=_elapsed_ms(start))

        try:
            self.algolia.delete_object(entity_type, str(entity_id))
        except Exception as e:
            logger.error("Algolia delete failed", entity_type=entity_type, entity_id=entity_id, error=str(e))
            return SyncResult(success=False, indexed=0, errors=[str(e)], execution_time_ms=_elapsed_ms(start))

        return SyncResult(success=True, indexed=1, execution_time_ms=_elapsed_ms(start))

    def _apply(self, operation: SyncOperation, entity_type: str, entity_id: str,
               data: Optional[Dict[str, Any]]) -> None:
        # Raises on failure; never enqueues
        if operation == SyncOperation.DELETE:
            self.algolia.delete_object(entity_type, entity_id)
        else:
            self.algolia.save_object(entity_type, prepare_entity_for_algolia(entity_type, data or {"id": entity_id}))

    # =========================================================================
    # Batch
    # =========================================================================

    def batch_sync(self, items: Iterable[BatchSyncItem], options: Optional[SyncOptions] = None) -> SyncResult:
        """
        Sync many entities, grouped by entity type and chunked by batch_size.

        The first failing chunk aborts the batch.
        """
        options = options or self.options
        start = time.time()

        groups: Dict[str, List[BatchSyncItem]] = {}
        for item in items:
            groups.setdefault(item.entity_type, []).append(item)

        indexed = 0
        for entity_type, group in groups.items():
            for chunk in chunk_list(group, options.batch_size):
                try:
                    records = [
                        prepare_entity_for_algolia(entity_type, item.entity)
                        for item in chunk
                        if item.operation != SyncOperation.DELETE
                    ]
                    delete_ids = [
                        str(item.entity["id"])
                        for item in chunk
                        if item.operation == SyncOperation.DELETE
                    ]
                    if not options.dry_run:
                        if records:
                            self.algolia.save_objects(entity_type, records, batch_size=options.batch_size)
                        if delete_ids:
                            self.algolia.delete_objects(entity_type, delete_ids, batch_size=options.batch_size)
                except Exception as e:
                    logger.error("Batch sync failed", entity_type=entity_type, indexed=indexed, error=str(e))
                    return SyncResult(
                        success=False,
                        indexed=indexed,
                        errors=[f"{entity_type}: {e}"],
                        execution_time_ms=_elapsed_ms(start),
                    )
                indexed += len(chunk)

        logger.info("Batch sync complete", indexed=indexed, groups=len(groups), dry_run=options.dry_run)
        return SyncResult(success=True, indexed=indexed, execution_time_ms=_elapsed_ms(start))

    # =========================================================================
    # Retry Queue
    # =========================================================================

    def _enqueue(self, item: SyncQueueItem) -> None:
        with self._lock:
            self._queue.pop(item.id, None)
            self._queue[item.id] = item
            self._schedule_locked()

    def _schedule_locked(self) -> None:
        # Caller holds the lock
        if self._timer is not None and self._timer.is_alive():
            return
        self._timer = threading.Timer(self.options.retry_delay_seconds, self.process_retry_queue)
        self._timer.daemon = True
        self._timer.start()

    def process_retry_queue(self) -> int:
        """
        Retry every queued item once.

        Returns:
            Number of items attempted (0 if a run is in progress or the queue is empty).
        """
        with self._lock:
            if self._processing or not self._queue:
                return 0
            self._processing = True
            if self._timer is not None:
                # No-op when called from the timer's own thread
                self._timer.cancel()
                self._timer = None
            snapshot = list(self._queue.values())
            self._queue.clear()

        max_retries = self.options.retry_attempts
        try:
            for item in snapshot:
                try:
                    self._apply(item.operation, item.entity_type, item.entity_id, item.data)
                    logger.info("Retry succeeded", item_id=item.id, retry_count=item.retry_count)
                except Exception as e:
                    with self._lock:
                        if item.retry_count < max_retries:
                            item.retry_count += 1
                            # A newer failure for the same entity wins
                            self._queue.setdefault(item.id, item)
                        else:
                            self._dead_letter.append(item)
                            logger.error(
                                "Max retries exceeded",
                                item_id=item.id,
                                operation=item.operation.value,
                                retries=item.retry_count,
                                error=str(e),
                            )
        finally:
            with self._lock:
                self._processing = False
                if self._queue:
                    self._schedule_locked()

        return len(snapshot)

    def get_queue_status(self) -> QueueStatus:
        with self._lock:
            return QueueStatus(
                pending=len(self._queue),
                retry=sum(1 for item in self._queue.values() if item.retry_count > 0),
                is_processing=self._processing,
                dead_letter=len(self._dead_letter),
            )

    def get_dead_letters(self) -> List[SyncQueueItem]:
        with self._lock:
            return list(self._dead_letter)

    def clear_queues(self) -> None:
        with self._lock:
            self._queue.clear()
            self._dead_letter.clear()

    def shutdown(self) -> None:
        """Cancel the pending retry timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


# =============================================================================
# Singleton
# =============================================================================

_sync_service: Optional[AlgoliaSyncService] = None
_sync_lock = threading.Lock()


def get_algolia_sync_service() -> AlgoliaSyncService:
    """Get or create the AlgoliaSyncService singleton (thread-safe)."""
    global _sync_service
    if _sync_service is None:
        with _sync_lock:
            if _sync_service is None:
                _sync_service = AlgoliaSyncService()
    return _sync_service
