# -*- coding: utf-8 -*-
"""
Sync Orchestrator

Drains the sync queue against the remote service, one item at a time.

Per cycle: idle -> starting -> syncing -> completed | error -> idle.
Bands are processed high, medium, low; FIFO inside a band; never two items
at once, so mutations of the same entity reach the server in causal order.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, List, Optional

from .broadcaster import SyncBroadcaster
from .conflict_handler import ConflictResolver, is_deleted
from .endpoints import EndpointRegistry
from .errors import (
    ClientError, ConflictError, ServerError, SyncError, SyncInProgressError,
)
from .local_store import LocalEntityStore
from .models import (
    PRIORITY_ORDER, ConflictResolution, ConflictType, CycleState, FailureKind,
    ItemOutcome, RetryPolicy, SyncCycleResult, SyncQueueItem, SyncStats,
)
from .outbox import SyncQueue, utcnow
from .sync_client import RemoteResponse, SyncClient

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Sync cycle driver.

    Usage:
        orchestrator = build_engine(settings).orchestrator
        orchestrator.on_progress(print)
        result = orchestrator.sync_when_online()
    """

    def __init__(
        self,
        queue: SyncQueue,
        client: SyncClient,
        local_store: LocalEntityStore,
        registry: Optional[EndpointRegistry] = None,
        resolver: Optional[ConflictResolver] = None,
        broadcaster: Optional[SyncBroadcaster] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            queue: Pending mutations
            client: Remote service client
            local_store: Locally held entities, read and written on conflicts
            registry: Entity type -> remote resource
            resolver: Conflict resolver
            broadcaster: Progress/status channel
            retry_policy: Which failed items retry_failed_items() picks up
            clock: Returns the current time
        """
        self.queue = queue
        self.client = client
        self.local_store = local_store
        self.registry = registry or EndpointRegistry()
        self.resolver = resolver or ConflictResolver()
        self.broadcaster = broadcaster or SyncBroadcaster()
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock or utcnow

        self._is_syncing = False
        self._lock = threading.Lock()
        self._state = CycleState.IDLE
        self.last_sync: Optional[datetime] = None

    # ============================================================
    # EXCLUSIVITY
    # ============================================================

    def _acquire(self):
        with self._lock:
            if self._is_syncing:
                raise SyncInProgressError("Sync already in progress")
            self._is_syncing = True

    def _release(self):
        with self._lock:
            self._is_syncing = False
            self._state = CycleState.IDLE

    @property
    def state(self) -> CycleState:
        return self._state

    def is_currently_syncing(self) -> bool:
        return self._is_syncing

    # ============================================================
    # CYCLES
    # ============================================================

    def sync_when_online(self) -> SyncCycleResult:
        """
        Run one sync cycle over every pending item.

        Returns:
            SyncCycleResult

        Raises:
            SyncInProgressError: A cycle is already running
        """
        self._acquire()
        try:
            pending = self._guarded(self.queue.get_pending_by_priority, self.retry_policy)
            items = [item for band in PRIORITY_ORDER for item in pending[band.value]]

            if not items:
                self.broadcaster.reset()
                self.broadcaster.publish_status(CycleState.IDLE, "No items to sync")
                return SyncCycleResult.empty()

            return self._guarded(self._run_cycle, items)
        finally:
            self._release()

    def retry_failed_items(self) -> SyncCycleResult:
        """
        Re-run the pipeline over items with retryable failures that are
        still under the retry ceiling.

        Raises:
            SyncInProgressError: A cycle is already running
        """
        self._acquire()
        try:
            candidates = self._guarded(self.queue.get_items_needing_retry, self.retry_policy)
            if not candidates:
                self.broadcaster.reset()
                self.broadcaster.publish_status(CycleState.IDLE, "No items eligible for retry")
                return SyncCycleResult.empty()

            self.broadcaster.publish_status(
                CycleState.STARTING, f"Retrying {len(candidates)} failed items...")
            now = self.clock()
            for item in candidates:
                self.queue.update(item.id, last_retry_at=now)

            return self._guarded(self._run_cycle, self._in_processing_order(candidates))
        finally:
            self._release()

    def _in_processing_order(self, items: List[SyncQueueItem]) -> List[SyncQueueItem]:
        sequence = {item.id: index for index, item in enumerate(self.queue.get_all())}
        band = {priority: index for index, priority in enumerate(PRIORITY_ORDER)}
        return sorted(items, key=lambda item: (band[item.priority], sequence.get(item.id, 0)))

    def _guarded(self, func: Callable, *args: Any):
        """Run a cycle step; on failure publish the error state and re-raise."""
        try:
            return func(*args)
        except Exception as e:
            self._state = CycleState.ERROR
            logger.error(f"Sync cycle failed: {e}")
            self.broadcaster.update_progress(status=CycleState.ERROR, current=None, error=str(e))
            self.broadcaster.publish_status(CycleState.ERROR, "Background sync failed")
            raise

    def _run_cycle(self, items: List[SyncQueueItem]) -> SyncCycleResult:
        total = len(items)
        self._state = CycleState.STARTING
        self.broadcaster.start_cycle(total)
        self.broadcaster.publish_status(
            CycleState.STARTING, f"Processing {total} queued operations...")
        logger.info(f"Sync cycle started: {total} items")

        self._state = CycleState.SYNCING
        self.broadcaster.update_progress(status=CycleState.SYNCING)

        outcomes: List[ItemOutcome] = []
        for item in items:
            self.broadcaster.update_progress(current=item)
            self.broadcaster.publish_status(
                CycleState.SYNCING,
                f"Syncing {item.operation.value} operation for {item.entity_type}...",
            )
            outcomes.append(self._process_item(item))
            self.broadcaster.update_progress(processed=len(outcomes))

        result = SyncCycleResult.from_outcomes(outcomes)

        self._state = CycleState.COMPLETED
        self.last_sync = self.clock()
        self.broadcaster.update_progress(status=CycleState.COMPLETED, current=None)
        summary = (
            f"Sync completed: {result.successful} successful, "
            f"{result.failed} failed, {result.conflicts} conflicts"
        )
        self.broadcaster.publish_status(CycleState.COMPLETED, summary)
        logger.info(summary)
        return result

    # ============================================================
    # PER ITEM PIPELINE
    # ============================================================

    def _process_item(self, item: SyncQueueItem) -> ItemOutcome:
        """Send one item and record the outcome; never raises."""
        try:
            request = self.registry.request_for(item)
            response = self.client.send(request, idempotency_key=item.id)
            return self._handle_response(item, response)
        except SyncError as e:
            return self._fail(item, e.reason, e.failure_kind or FailureKind.UNKNOWN)
        except Exception as e:
            logger.exception(f"Unexpected error while syncing item {item.id}")
            return self._fail(item, f"Unexpected error: {e}", FailureKind.UNKNOWN)

    def _handle_response(self, item: SyncQueueItem, response: RemoteResponse) -> ItemOutcome:
        if response.ok:
            self.queue.mark_synced(item.id)
            logger.debug(f"Synced {item.operation.value} {item.entity_type} ({item.id})")
            return ItemOutcome(item_id=item.id, success=True)

        if response.status == 409:
            # Without the remote entity there is nothing to reconcile against
            if not isinstance(response.body, dict) or not response.body:
                raise ServerError(response.status, response.status_text)
            return self._handle_conflict(item, ConflictError(response.body, response.status_text))
        if 400 <= response.status < 500:
            raise ClientError(response.status, response.status_text)
        raise ServerError(response.status, response.status_text)

    def _handle_conflict(self, item: SyncQueueItem, error: ConflictError) -> ItemOutcome:
        """Resolve a 409, apply the winner locally and drop the item."""
        remote_data = error.remote_data
        entity_key = self.registry.canonical_key(item.entity_type)
        local_data = self.local_store.get(entity_key, item.entity_id)

        conflict = self.resolver.detect(item, local_data, remote_data)
        resolution = self.resolver.resolve(conflict, item)
        self._apply_resolution(entity_key, item, conflict.conflict_type, resolution)

        self.queue.mark_synced(item.id)
        return ItemOutcome(item_id=item.id, success=True, resolution=resolution)

    def _apply_resolution(self, entity_key: str, item: SyncQueueItem,
                          conflict_type: ConflictType, resolution: ConflictResolution):
        data = resolution.resolved_data
        if conflict_type is ConflictType.DELETION and (not data or is_deleted(data)):
            self.local_store.delete(entity_key, item.entity_id)
        else:
            self.local_store.put(entity_key, data)

    def _fail(self, item: SyncQueueItem, reason: str, kind: FailureKind) -> ItemOutcome:
        self.queue.mark_failed(item.id, reason, kind)
        log = logger.warning if kind.is_retryable else logger.error
        log(f"Sync failed for {item.entity_type} ({item.id}): {reason}")
        return ItemOutcome(item_id=item.id, success=False, error=reason, failure_kind=kind)

    # ============================================================
    # OBSERVER INTERFACE
    # ============================================================

    def on_progress(self, callback) -> Callable[[], None]:
        return self.broadcaster.on_progress(callback)

    def on_status(self, callback) -> Callable[[], None]:
        return self.broadcaster.on_status(callback)

    def get_progress(self):
        return self.broadcaster.get_progress()

    def get_sync_stats(self) -> SyncStats:
        """Queue statistics plus the last completed cycle time."""
        stats = self.queue.get_stats(self.retry_policy)
        return SyncStats(
            pending=stats.pending,
            failed=stats.failed,
            permanent_failed=stats.parked,
            last_sync=self.last_sync,
            sync_health=self.queue.get_health_status(stats),
        )

    def cleanup_old_items(self, max_age_days: int = 7) -> int:
        """
        Purge old items that failed permanently or exhausted their retries.

        Returns:
            Number of removed items
        """
        return self.queue.clear_old_items(max_age_days, policy=self.retry_policy)
