# -*- coding: utf-8 -*-
"""
Sync Data Models

Data structures shared by the queue, the resolver and the orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple


class SyncOperation(Enum):
    """Mutation kinds carried by a queue item"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncPriority(Enum):
    """Priority bands, in processing order"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER: Tuple[SyncPriority, ...] = (
    SyncPriority.HIGH,
    SyncPriority.MEDIUM,
    SyncPriority.LOW,
)


class ConflictType(Enum):
    """Conflict classes reported for a 409 response"""
    VERSION = "version"
    DELETION = "deletion"
    CONCURRENT_EDIT = "concurrent-edit"


class ResolutionStrategy(Enum):
    """Which side a conflict resolution kept"""
    LOCAL = "local"
    REMOTE = "remote"
    MERGED = "merged"


class CycleState(Enum):
    """Sync cycle states"""
    IDLE = "idle"
    STARTING = "starting"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"


class SyncHealth(Enum):
    """Qualitative queue health"""
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


class FailureKind(Enum):
    """Failure classes recorded on a queue item"""
    NETWORK = "network"
    SERVER = "server"
    UNKNOWN = "unknown"
    CLIENT = "client"
    CONFIGURATION = "configuration"

    @property
    def is_retryable(self) -> bool:
        return self in (FailureKind.NETWORK, FailureKind.SERVER, FailureKind.UNKNOWN)


@dataclass
class SyncQueueItem:
    """A pending local mutation"""
    id: str
    operation: SyncOperation
    entity_type: str
    payload: Dict[str, Any]
    priority: SyncPriority
    created_at: datetime
    retry_count: int = 0
    last_error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    last_retry_at: Optional[datetime] = None

    @property
    def entity_id(self) -> Any:
        """Remote identifier of the entity (None for most creates)"""
        return self.payload.get('id')

    @property
    def is_permanently_failed(self) -> bool:
        return self.failure_kind is not None and not self.failure_kind.is_retryable

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict"""
        return {
            'id': self.id,
            'operation': self.operation.value,
            'entity_type': self.entity_type,
            'payload': self.payload,
            'priority': self.priority.value,
            'created_at': self.created_at.isoformat(),
            'retry_count': self.retry_count,
            'last_error': self.last_error,
            'failure_kind': self.failure_kind.value if self.failure_kind else None,
            'last_retry_at': self.last_retry_at.isoformat() if self.last_retry_at else None,
        }


@dataclass(frozen=True)
class ConflictRecord:
    """Local and remote versions of a diverged entity"""
    local_data: Dict[str, Any]
    remote_data: Dict[str, Any]
    conflict_type: ConflictType


@dataclass(frozen=True)
class ConflictResolution:
    """Outcome of the conflict resolver"""
    strategy: ResolutionStrategy
    resolved_data: Dict[str, Any]
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy.value,
            'resolved_data': self.resolved_data,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class ItemOutcome:
    """Result of processing a single queue item"""
    item_id: str
    success: bool
    error: Optional[str] = None
    resolution: Optional[ConflictResolution] = None
    failure_kind: Optional[FailureKind] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'item_id': self.item_id, 'success': self.success}
        if self.error is not None:
            data['error'] = self.error
        if self.failure_kind is not None:
            data['failure_kind'] = self.failure_kind.value
        if self.resolution is not None:
            data['resolution'] = self.resolution.to_dict()
        return data


@dataclass(frozen=True)
class SyncCycleResult:
    """Immutable summary of one sync cycle"""
    processed: int = 0
    successful: int = 0
    failed: int = 0
    conflicts: int = 0
    outcomes: Tuple[ItemOutcome, ...] = ()

    @classmethod
    def empty(cls) -> 'SyncCycleResult':
        return cls()

    @classmethod
    def from_outcomes(cls, outcomes: List[ItemOutcome]) -> 'SyncCycleResult':
        """Aggregate per-item outcomes into a cycle summary"""
        successful = sum(1 for o in outcomes if o.success)
        conflicts = sum(1 for o in outcomes if o.resolution is not None)
        return cls(
            processed=len(outcomes),
            successful=successful,
            failed=len(outcomes) - successful,
            conflicts=conflicts,
            outcomes=tuple(outcomes),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict"""
        return {
            'processed': self.processed,
            'successful': self.successful,
            'failed': self.failed,
            'conflicts': self.conflicts,
            'outcomes': [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class SyncProgress:
    """Snapshot of the running (or last) cycle"""
    total: int = 0
    processed: int = 0
    current: Optional[SyncQueueItem] = None
    status: CycleState = CycleState.IDLE
    error: Optional[str] = None


@dataclass(frozen=True)
class StatusUpdate:
    """Human readable status message for observers"""
    state: CycleState
    message: str


@dataclass(frozen=True)
class QueueStats:
    """Aggregate view of the sync queue"""
    total: int = 0
    pending: int = 0
    retrying: int = 0
    exhausted: int = 0
    permanent_failures: int = 0
    total_retries: int = 0
    by_priority: Dict[str, int] = field(default_factory=dict)
    by_operation: Dict[str, int] = field(default_factory=dict)
    by_entity_type: Dict[str, int] = field(default_factory=dict)

    @property
    def average_retry_count(self) -> float:
        if not self.total:
            return 0.0
        return self.total_retries / self.total

    @property
    def parked(self) -> int:
        """Failed items no cycle will send again"""
        return self.exhausted + self.permanent_failures

    @property
    def failed(self) -> int:
        """Items whose last attempt failed; each item counted once"""
        return self.retrying + self.parked


@dataclass(frozen=True)
class SyncStats:
    """Observer facing statistics"""
    pending: int
    failed: int
    permanent_failed: int
    last_sync: Optional[datetime]
    sync_health: SyncHealth

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pending': self.pending,
            'failed': self.failed,
            'permanent_failed': self.permanent_failed,
            'lastSync': self.last_sync.isoformat() if self.last_sync else None,
            'syncHealth': self.sync_health.value,
        }


# Entity types whose updates get more attempts before they are parked
EXTENDED_RETRY_ENTITY_TYPES = frozenset({
    'manufacturing_orders', 'manufacturingorders', 'manufacturing-orders',
})


@dataclass(frozen=True)
class RetryPolicy:
    """Which failed items may be attempted again"""
    max_retries: int = 3
    extended_max_retries: int = 5

    def max_retries_for(self, item: SyncQueueItem) -> int:
        if (item.operation is SyncOperation.DELETE
                or item.entity_type.lower() in EXTENDED_RETRY_ENTITY_TYPES):
            return self.extended_max_retries
        return self.max_retries

    def allows(self, item: SyncQueueItem) -> bool:
        if item.failure_kind is None or not item.failure_kind.is_retryable:
            return False
        return item.retry_count < self.max_retries_for(item)

    def is_parked(self, item: SyncQueueItem) -> bool:
        """Failed permanently, or retryable but out of attempts"""
        return item.failure_kind is not None and not self.allows(item)
