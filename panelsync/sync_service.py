# -*- coding: utf-8 -*-
"""
Background Sync Service

Follows the online/offline signal and starts a sync cycle when the client
comes back online. Optionally polls a caller supplied connectivity probe and
runs periodic cycles while online.
"""

import logging
import threading
from typing import Callable, Optional

from .errors import SyncInProgressError
from .models import SyncCycleResult
from .orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncService:
    """
    Connectivity driven sync trigger.

    Features:
    - Edge triggered: offline -> online runs sync_when_online()
    - Optional polling loop with a connectivity probe
    - Periodic cycles while online and items are pending
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        probe: Optional[Callable[[], bool]] = None,
        interval: int = 30,
        on_sync_complete: Optional[Callable[[SyncCycleResult], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Args:
            orchestrator: SyncOrchestrator instance
            probe: Returns True when the remote service is reachable
            interval: Polling interval in seconds
            on_sync_complete: Called with each cycle result
            on_error: Called when a cycle raises
        """
        self.orchestrator = orchestrator
        self.probe = probe
        self.interval = interval
        self.on_sync_complete = on_sync_complete
        self.on_error = on_error

        self._online = False
        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> Optional[SyncCycleResult]:
        """
        Update the connectivity state.

        Returns:
            The cycle result when this call brought the client online
        """
        with self._lock:
            came_online = online and not self._online
            self._online = online

        if not came_online:
            return None

        logger.info("Connection restored, starting sync")
        return self._trigger()

    def _trigger(self) -> Optional[SyncCycleResult]:
        try:
            result = self.orchestrator.sync_when_online()
        except SyncInProgressError:
            logger.info("Sync already running, trigger skipped")
            return None
        except Exception as e:
            logger.error(f"Sync cycle error: {e}")
            if self.on_error:
                self.on_error(e)
            return None

        if self.on_sync_complete:
            self.on_sync_complete(result)
        return result

    # ============================================================
    # POLLING LOOP
    # ============================================================

    def start(self):
        """Start polling the probe in a daemon thread"""
        if self.probe is None:
            raise ValueError("A connectivity probe is required for background polling")
        if self._running:
            logger.warning("Sync service is already running")
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.name = "SyncService"
        self._thread.start()
        logger.info(f"Sync service started (interval={self.interval}s)")

    def stop(self):
        """Stop the polling loop"""
        self._running = False
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Sync service stopped")

    def tick(self):
        """One polling step: refresh connectivity, then sync if work is pending."""
        was_online = self._online
        self.set_online(bool(self.probe()))
        if was_online and self._online and self.orchestrator.get_sync_stats().pending:
            self._trigger()

    def _run_loop(self):
        while self._running:
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Sync service loop error: {e}")
            self._stop_event.wait(self.interval)
