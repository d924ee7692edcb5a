# -*- coding: utf-8 -*-
"""
Sync Queue - Pending Local Mutations

Every locally originated create/update/delete is recorded here until the
remote service accepts it. Each mutation runs in its own SQLite transaction
so a restart in the middle of a cycle always finds a consistent queue.
"""

import json
import logging
import sqlite3
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .config import HEALTH_AVG_RETRY_CEILING, HEALTH_PENDING_CEILING
from .errors import InvalidQueueItemError
from .models import (
    PRIORITY_ORDER, FailureKind, QueueStats, RetryPolicy, SyncHealth,
    SyncOperation, SyncPriority, SyncQueueItem,
)

logger = logging.getLogger(__name__)

# Reason prefixes written by the orchestrator, mapped back to failure kinds
REASON_PREFIXES = (
    ("Client error", FailureKind.CLIENT),
    ("Configuration error", FailureKind.CONFIGURATION),
    ("Server error", FailureKind.SERVER),
    ("Network error", FailureKind.NETWORK),
)

RETRYABLE_KINDS = tuple(kind.value for kind in FailureKind if kind.is_retryable)

UPDATABLE_FIELDS = frozenset({
    'payload', 'priority', 'retry_count', 'last_error', 'failure_kind', 'last_retry_at',
})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Create a new queue item id."""
    return str(uuid.uuid4())


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def failure_kind_for_reason(reason: str) -> FailureKind:
    """Derive the failure class from a reason string."""
    for prefix, kind in REASON_PREFIXES:
        if reason.startswith(prefix):
            return kind
    return FailureKind.UNKNOWN


def _coerce_operation(value: Any) -> SyncOperation:
    try:
        return value if isinstance(value, SyncOperation) else SyncOperation(str(value).lower())
    except ValueError:
        raise InvalidQueueItemError(f"Unknown operation: {value}") from None


def _coerce_priority(value: Any) -> SyncPriority:
    try:
        return value if isinstance(value, SyncPriority) else SyncPriority(str(value).lower())
    except ValueError:
        raise InvalidQueueItemError(f"Unknown priority: {value}") from None


def _validate_payload(operation: SyncOperation, payload: Any):
    if not isinstance(payload, Mapping):
        raise InvalidQueueItemError("Payload must be a mapping")
    if operation is not SyncOperation.CREATE and payload.get('id') in (None, ''):
        raise InvalidQueueItemError(f"Payload for {operation.value} must include 'id'")


class SyncQueue:
    """
    Persisted, ordered ledger of pending mutations.

    Items are removed only by mark_synced(); failures stay queued with their
    reason. FIFO order is the insertion sequence, not the timestamp.
    """

    def __init__(
        self,
        db_path: str,
        clock: Optional[Callable[[], datetime]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        health_avg_retry_ceiling: float = HEALTH_AVG_RETRY_CEILING,
        health_pending_ceiling: int = HEALTH_PENDING_CEILING,
    ):
        """
        Args:
            db_path: SQLite database path
            clock: Returns the current (UTC) time, injectable for tests
            retry_policy: Decides when a retryable failure is out of attempts
            health_avg_retry_ceiling: Average retry count that makes health critical
            health_pending_ceiling: Queue size that makes health critical
        """
        self.db_path = db_path
        self.clock = clock or utcnow
        self.retry_policy = retry_policy or RetryPolicy()
        self.health_avg_retry_ceiling = health_avg_retry_ceiling
        self.health_pending_ceiling = health_pending_ceiling
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        """Open a connection to the queue database"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_table(self):
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS sync_queue (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT NOT NULL UNIQUE,
                        operation TEXT NOT NULL,
                        entity_type TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        priority TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
                        last_error TEXT,
                        failure_kind TEXT,
                        last_retry_at TEXT
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_queue_priority ON sync_queue(priority)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_queue_created ON sync_queue(created_at)")
        finally:
            conn.close()

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> SyncQueueItem:
        return SyncQueueItem(
            id=row['id'],
            operation=SyncOperation(row['operation']),
            entity_type=row['entity_type'],
            payload=json.loads(row['payload']),
            priority=SyncPriority(row['priority']),
            created_at=_from_iso(row['created_at']),
            retry_count=row['retry_count'],
            last_error=row['last_error'],
            failure_kind=FailureKind(row['failure_kind']) if row['failure_kind'] else None,
            last_retry_at=_from_iso(row['last_retry_at']),
        )

    def _select(self, where: str = "", params: Iterable[Any] = ()) -> List[SyncQueueItem]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"SELECT * FROM sync_queue {where} ORDER BY seq ASC", tuple(params)
            ).fetchall()
            return [self._row_to_item(row) for row in rows]
        finally:
            conn.close()

    # ============================================================
    # WRITES
    # ============================================================

    def _prepare_row(self, operation, entity_type, payload, priority) -> tuple:
        operation = _coerce_operation(operation)
        priority = _coerce_priority(priority)
        if not entity_type:
            raise InvalidQueueItemError("Entity type is required")
        _validate_payload(operation, payload)
        return (
            generate_id(),
            operation.value,
            entity_type,
            json.dumps(dict(payload), ensure_ascii=False, default=str),
            priority.value,
            _to_iso(self.clock()),
        )

    def enqueue(
        self,
        operation: Any,
        entity_type: str,
        payload: Mapping[str, Any],
        priority: Any = SyncPriority.MEDIUM,
    ) -> str:
        """
        Add a mutation to the queue.

        Args:
            operation: create / update / delete
            entity_type: Logical table name (panels, inspections, ...)
            payload: Entity document; update/delete must carry 'id'
            priority: high / medium / low

        Returns:
            The new item id

        Raises:
            InvalidQueueItemError: The item violates the queue contract
        """
        row = self._prepare_row(operation, entity_type, payload, priority)
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO sync_queue (
                        id, operation, entity_type, payload, priority, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, row)
        finally:
            conn.close()

        logger.debug(f"Queued {row[1]} for {entity_type} ({row[0]})")
        return row[0]

    def bulk_enqueue(self, items: Iterable[Mapping[str, Any]]) -> List[str]:
        """
        Add several mutations in a single transaction.

        Args:
            items: Dicts with operation, entity_type, payload and optional priority

        Returns:
            Item ids in input order
        """
        rows = [
            self._prepare_row(
                item.get('operation'),
                item.get('entity_type'),
                item.get('payload'),
                item.get('priority', SyncPriority.MEDIUM),
            )
            for item in items
        ]
        if not rows:
            return []

        conn = self._get_connection()
        try:
            with conn:
                conn.executemany("""
                    INSERT INTO sync_queue (
                        id, operation, entity_type, payload, priority, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, rows)
        finally:
            conn.close()
        return [row[0] for row in rows]

    def mark_synced(self, item_id: str) -> bool:
        """Remove an item the remote service has accepted."""
        conn = self._get_connection()
        try:
            with conn:
                cur = conn.execute("DELETE FROM sync_queue WHERE id = ?", (item_id,))
            return cur.rowcount > 0
        finally:
            conn.close()

    def mark_failed(self, item_id: str, reason: str,
                    kind: Optional[FailureKind] = None) -> bool:
        """
        Record a failed attempt. The item stays queued.

        retry_count is incremented only for retryable failure kinds.

        Args:
            item_id: Queue item id
            reason: Failure reason, e.g. "Server error: HTTP 503: Service Unavailable"
            kind: Failure class; derived from the reason prefix when omitted

        Returns:
            True if the item existed
        """
        kind = kind or failure_kind_for_reason(reason)
        increment = 1 if kind.is_retryable else 0
        conn = self._get_connection()
        try:
            with conn:
                cur = conn.execute("""
                    UPDATE sync_queue
                    SET retry_count = retry_count + ?,
                        last_error = ?,
                        failure_kind = ?,
                        last_retry_at = ?
                    WHERE id = ?
                """, (increment, reason, kind.value, _to_iso(self.clock()), item_id))
            return cur.rowcount > 0
        finally:
            conn.close()

    def update(self, item_id: str, **changes: Any) -> bool:
        """
        Partially update an item.

        Only payload, priority, retry_count, last_error, failure_kind and
        last_retry_at may change.

        Returns:
            True if the item existed
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidQueueItemError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if not changes:
            return self.get(item_id) is not None

        columns = []
        values: List[Any] = []
        for name, value in changes.items():
            if name == 'payload':
                current = self.get(item_id)
                if current is None:
                    return False
                _validate_payload(current.operation, value)
                value = json.dumps(dict(value), ensure_ascii=False, default=str)
            elif name == 'priority':
                value = _coerce_priority(value).value
            elif name == 'retry_count':
                if int(value) < 0:
                    raise InvalidQueueItemError("retry_count cannot be negative")
                value = int(value)
            elif name == 'failure_kind':
                value = FailureKind(value).value if value is not None else None
            elif name == 'last_retry_at':
                value = _to_iso(value)
            columns.append(f"{name} = ?")
            values.append(value)

        conn = self._get_connection()
        try:
            with conn:
                cur = conn.execute(
                    f"UPDATE sync_queue SET {', '.join(columns)} WHERE id = ?",
                    values + [item_id],
                )
            return cur.rowcount > 0
        finally:
            conn.close()

    def clear_old_items(self, max_age_days: int = 7,
                        policy: Optional[RetryPolicy] = None) -> int:
        """
        Purge parked items older than max_age_days.

        Only permanently failed items and items whose retryable failures
        exhausted the retry policy are purged. Items never attempted, or
        still under the retry ceiling, are kept however old they are.

        Returns:
            Number of removed items
        """
        policy = policy or self.retry_policy
        cutoff = self.clock() - timedelta(days=max_age_days)
        stale = [
            item for item in self._select("WHERE failure_kind IS NOT NULL AND created_at < ?",
                                          (_to_iso(cutoff),))
            if policy.is_parked(item)
        ]
        if not stale:
            return 0

        conn = self._get_connection()
        try:
            with conn:
                cur = conn.executemany(
                    "DELETE FROM sync_queue WHERE id = ?", [(item.id,) for item in stale]
                )
            deleted = cur.rowcount
        finally:
            conn.close()

        if deleted:
            logger.info(f"Removed {deleted} stale failed items from the sync queue")
        return deleted

    def clear_all(self):
        """Drop every queued item (operator tooling)."""
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("DELETE FROM sync_queue")
        finally:
            conn.close()

    # ============================================================
    # READS
    # ============================================================

    def get(self, item_id: str) -> Optional[SyncQueueItem]:
        items = self._select("WHERE id = ?", (item_id,))
        return items[0] if items else None

    def get_all(self, entity_type: Optional[str] = None,
                operation: Any = None, priority: Any = None) -> List[SyncQueueItem]:
        """All items in enqueue order, optionally filtered."""
        clauses = []
        params: List[Any] = []
        if entity_type is not None:
            clauses.append("entity_type = ?")
            params.append(entity_type)
        if operation is not None:
            clauses.append("operation = ?")
            params.append(_coerce_operation(operation).value)
        if priority is not None:
            clauses.append("priority = ?")
            params.append(_coerce_priority(priority).value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return self._select(where, params)

    def get_pending_by_priority(self, policy: Optional[RetryPolicy] = None
                                ) -> Dict[str, List[SyncQueueItem]]:
        """
        Items eligible for a sync cycle, grouped by priority band.

        Parked items (permanent failures, or retryable failures that reached
        the retry ceiling) are not returned.

        Returns:
            {'high': [...], 'medium': [...], 'low': [...]} in enqueue order
        """
        policy = policy or self.retry_policy
        grouped: Dict[str, List[SyncQueueItem]] = {p.value: [] for p in PRIORITY_ORDER}
        placeholders = ','.join('?' * len(RETRYABLE_KINDS))
        for item in self._select(
            f"WHERE failure_kind IS NULL OR failure_kind IN ({placeholders})",
            RETRYABLE_KINDS,
        ):
            if not policy.is_parked(item):
                grouped[item.priority.value].append(item)
        return grouped

    def get_items_needing_retry(self, policy: Optional[RetryPolicy] = None) -> List[SyncQueueItem]:
        """Items with a retryable failure still under the retry ceiling, oldest attempt first."""
        policy = policy or self.retry_policy
        placeholders = ','.join('?' * len(RETRYABLE_KINDS))
        items = self._select(f"WHERE failure_kind IN ({placeholders})", RETRYABLE_KINDS)
        candidates = [item for item in items if policy.allows(item)]
        min_time = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(candidates, key=lambda item: item.last_retry_at or min_time)

    def get_stats(self, policy: Optional[RetryPolicy] = None) -> QueueStats:
        """
        Aggregate counts. Every failed item lands in exactly one of
        retrying, exhausted or permanent_failures.
        """
        policy = policy or self.retry_policy
        items = self.get_all()
        permanent = [item for item in items if item.is_permanently_failed]
        exhausted = [item for item in items
                     if not item.is_permanently_failed and policy.is_parked(item)]
        return QueueStats(
            total=len(items),
            pending=len(items) - len(permanent) - len(exhausted),
            retrying=sum(1 for item in items if policy.allows(item)),
            exhausted=len(exhausted),
            permanent_failures=len(permanent),
            total_retries=sum(item.retry_count for item in items),
            by_priority={p.value: sum(1 for i in items if i.priority is p) for p in PRIORITY_ORDER},
            by_operation={op.value: sum(1 for i in items if i.operation is op) for op in SyncOperation},
            by_entity_type=dict(Counter(item.entity_type for item in items)),
        )

    def get_health_status(self, stats: Optional[QueueStats] = None) -> SyncHealth:
        """
        Classify retry pressure.

        good: no item has been retried.
        warning: 0 < average retry count < ceiling and queue size < pending ceiling.
        critical: otherwise.
        """
        stats = stats or self.get_stats()
        if stats.total_retries == 0:
            return SyncHealth.GOOD
        if (stats.average_retry_count < self.health_avg_retry_ceiling
                and stats.total < self.health_pending_ceiling):
            return SyncHealth.WARNING
        return SyncHealth.CRITICAL
