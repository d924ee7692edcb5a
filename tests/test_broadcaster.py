# -*- coding: utf-8 -*-
"""Progress and status subscriptions."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from panelsync.broadcaster import SyncBroadcaster  # noqa: E402
from panelsync.models import CycleState, SyncProgress  # noqa: E402


class SyncBroadcasterTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.broadcaster = SyncBroadcaster()

    def test_initial_snapshot_is_idle(self) -> None:
        progress = self.broadcaster.get_progress()
        self.assertEqual(progress, SyncProgress())
        self.assertFalse(self.broadcaster.is_currently_syncing())

    def test_progress_updates_reach_subscribers_in_order(self) -> None:
        calls: list[tuple[str, int]] = []
        self.broadcaster.on_progress(lambda p: calls.append(("a", p.processed)))
        self.broadcaster.on_progress(lambda p: calls.append(("b", p.processed)))

        self.broadcaster.start_cycle(3)
        self.broadcaster.update_progress(processed=1)
        self.assertEqual(calls, [("a", 0), ("b", 0), ("a", 1), ("b", 1)])
        self.assertTrue(self.broadcaster.is_currently_syncing())

    def test_snapshots_are_immutable(self) -> None:
        seen: list[SyncProgress] = []
        self.broadcaster.on_progress(seen.append)
        self.broadcaster.start_cycle(2)
        self.broadcaster.update_progress(processed=2, status=CycleState.COMPLETED)
        self.assertEqual(seen[0].processed, 0)
        self.assertEqual(seen[1].processed, 2)
        self.assertFalse(self.broadcaster.is_currently_syncing())

    def test_reset_returns_to_idle_snapshot(self) -> None:
        seen: list[SyncProgress] = []
        self.broadcaster.start_cycle(3)
        self.broadcaster.update_progress(processed=3, status=CycleState.COMPLETED)
        self.broadcaster.on_progress(seen.append)

        self.broadcaster.reset()

        self.assertEqual(self.broadcaster.get_progress(), SyncProgress())
        self.assertEqual(seen, [SyncProgress()])

    def test_unsubscribe_is_idempotent_and_per_registration(self) -> None:
        calls: list[str] = []

        def callback(update) -> None:
            calls.append(update.message)

        first = self.broadcaster.on_status(callback)
        self.broadcaster.on_status(callback)

        self.broadcaster.publish_status(CycleState.STARTING, "one")
        first()
        first()
        self.broadcaster.publish_status(CycleState.SYNCING, "two")
        self.assertEqual(calls, ["one", "one", "two"])

    def test_failing_callback_does_not_stop_others(self) -> None:
        received: list[str] = []

        def broken(update) -> None:
            raise RuntimeError("observer bug")

        self.broadcaster.on_status(broken)
        self.broadcaster.on_status(lambda update: received.append(update.message))

        with self.assertLogs("panelsync.broadcaster", level="ERROR"):
            self.broadcaster.publish_status(CycleState.ERROR, "Background sync failed")
        self.assertEqual(received, ["Background sync failed"])

    def test_unsubscribe_during_notification(self) -> None:
        calls: list[int] = []
        holder: dict = {}

        def once(progress) -> None:
            calls.append(progress.total)
            holder["unsubscribe"]()

        holder["unsubscribe"] = self.broadcaster.on_progress(once)
        self.broadcaster.start_cycle(4)
        self.broadcaster.start_cycle(5)
        self.assertEqual(calls, [4])


if __name__ == "__main__":  # pragma: no cover - manual run
    unittest.main()
