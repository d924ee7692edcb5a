# -*- coding: utf-8 -*-
"""
Progress / Status Broadcaster

In-memory publish/subscribe for the state of the current sync cycle.
Nothing here is persisted; each cycle overwrites the previous snapshot.
"""

import itertools
import logging
import threading
from dataclasses import replace
from typing import Callable, List, Tuple

from .models import CycleState, StatusUpdate, SyncProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SyncProgress], None]
StatusCallback = Callable[[StatusUpdate], None]

ACTIVE_STATES = (CycleState.STARTING, CycleState.SYNCING)


class SyncBroadcaster:
    """
    Observer registry for sync progress and status.

    Callbacks run synchronously, in registration order, on the thread that
    publishes. A failing callback is logged and skipped.
    """

    def __init__(self):
        self._progress = SyncProgress()
        self._progress_callbacks: List[Tuple[int, ProgressCallback]] = []
        self._status_callbacks: List[Tuple[int, StatusCallback]] = []
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    # ============================================================
    # SUBSCRIBERS
    # ============================================================

    def _subscribe(self, registry: list, callback) -> Callable[[], None]:
        token = next(self._tokens)
        with self._lock:
            registry.append((token, callback))

        def unsubscribe():
            with self._lock:
                registry[:] = [entry for entry in registry if entry[0] != token]

        return unsubscribe

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Subscribe to progress snapshots.

        Returns:
            Idempotent unsubscribe function
        """
        return self._subscribe(self._progress_callbacks, callback)

    def on_status(self, callback: StatusCallback) -> Callable[[], None]:
        """
        Subscribe to status messages.

        Returns:
            Idempotent unsubscribe function
        """
        return self._subscribe(self._status_callbacks, callback)

    def get_progress(self) -> SyncProgress:
        """Current snapshot (immutable)."""
        return self._progress

    def is_currently_syncing(self) -> bool:
        return self._progress.status in ACTIVE_STATES

    # ============================================================
    # PUBLISHERS
    # ============================================================

    def start_cycle(self, total: int):
        """Reset progress for a new cycle."""
        self._progress = SyncProgress(total=total, status=CycleState.STARTING)
        self._notify_progress()

    def reset(self):
        """Back to an idle, empty snapshot."""
        self._progress = SyncProgress()
        self._notify_progress()

    def update_progress(self, **changes):
        """Apply changes to the snapshot and notify subscribers."""
        self._progress = replace(self._progress, **changes)
        self._notify_progress()

    def publish_status(self, state: CycleState, message: str):
        update = StatusUpdate(state=state, message=message)
        with self._lock:
            callbacks = [cb for _, cb in self._status_callbacks]
        for callback in callbacks:
            try:
                callback(update)
            except Exception as e:
                logger.error(f"Status callback error: {e}")

    def _notify_progress(self):
        snapshot = self._progress
        with self._lock:
            callbacks = [cb for _, cb in self._progress_callbacks]
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Progress callback error: {e}")
