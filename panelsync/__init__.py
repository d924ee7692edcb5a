# -*- coding: utf-8 -*-
"""
Panel Production Offline Sync Engine

Keeps shop floor edits (panels, inspections, manufacturing orders,
stations) in a local queue while the client is offline and replays them
against the remote system of record once connectivity returns.

Conflict Resolution: deletions follow the server, versions win by number,
safety relevant entities by recency, panels by field merge.
"""

from .models import (
    SyncOperation,
    SyncPriority,
    ConflictType,
    ResolutionStrategy,
    CycleState,
    SyncHealth,
    FailureKind,
    SyncQueueItem,
    ConflictRecord,
    ConflictResolution,
    ItemOutcome,
    SyncCycleResult,
    SyncProgress,
    StatusUpdate,
    QueueStats,
    SyncStats,
    RetryPolicy,
)
from .errors import (
    SyncError,
    NetworkError,
    ServerError,
    ClientError,
    ConflictError,
    ConfigurationError,
    InvalidQueueItemError,
    SyncInProgressError,
)
from .config import SyncSettings, get_settings
from .outbox import SyncQueue
from .endpoints import EndpointDescriptor, EndpointRegistry, RemoteRequest
from .conflict_handler import ConflictResolver
from .broadcaster import SyncBroadcaster
from .sync_client import SyncClient, RemoteResponse
from .local_store import LocalEntityStore
from .orchestrator import SyncOrchestrator
from .sync_service import SyncService
from .bootstrap import SyncEngine, build_engine, configure_logging

__all__ = [
    # Models
    'SyncOperation',
    'SyncPriority',
    'ConflictType',
    'ResolutionStrategy',
    'CycleState',
    'SyncHealth',
    'FailureKind',
    'SyncQueueItem',
    'ConflictRecord',
    'ConflictResolution',
    'ItemOutcome',
    'SyncCycleResult',
    'SyncProgress',
    'StatusUpdate',
    'QueueStats',
    'SyncStats',
    'RetryPolicy',
    # Errors
    'SyncError',
    'NetworkError',
    'ServerError',
    'ClientError',
    'ConflictError',
    'ConfigurationError',
    'InvalidQueueItemError',
    'SyncInProgressError',
    # Config
    'SyncSettings',
    'get_settings',
    # Components
    'SyncQueue',
    'EndpointDescriptor',
    'EndpointRegistry',
    'RemoteRequest',
    'ConflictResolver',
    'SyncBroadcaster',
    'SyncClient',
    'RemoteResponse',
    'LocalEntityStore',
    'SyncOrchestrator',
    'SyncService',
    # Wiring
    'SyncEngine',
    'build_engine',
    'configure_logging',
]

__version__ = '1.0.0'
