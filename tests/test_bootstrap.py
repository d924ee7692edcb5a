# -*- coding: utf-8 -*-
"""Settings loading, engine wiring and the command line entry point."""

from __future__ import annotations

import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from panelsync.__main__ import main  # noqa: E402
from panelsync.bootstrap import build_engine  # noqa: E402
from panelsync.config import SyncSettings, get_settings  # noqa: E402
from panelsync.local_store import LocalEntityStore  # noqa: E402


class SettingsTestCase(unittest.TestCase):
    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = SyncSettings(_env_file=None)
        self.assertEqual(settings.MAX_RETRIES, 3)
        self.assertEqual(settings.EXTENDED_MAX_RETRIES, 5)
        self.assertEqual(settings.CLEANUP_MAX_AGE_DAYS, 7)
        self.assertEqual(settings.HEALTH_PENDING_CEILING, 50)
        self.assertIsNone(settings.API_TOKEN)

    def test_environment_prefix(self) -> None:
        env = {"PANELSYNC_API_BASE_URL": "https://mes.plant-2.local", "PANELSYNC_MAX_RETRIES": "4"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = SyncSettings(_env_file=None)
        self.assertEqual(settings.API_BASE_URL, "https://mes.plant-2.local")
        self.assertEqual(settings.MAX_RETRIES, 4)


class EngineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.env = {
            "PANELSYNC_QUEUE_DB_PATH": os.path.join(self._tmpdir.name, "queue.db"),
            "PANELSYNC_LOCAL_DB_PATH": os.path.join(self._tmpdir.name, "local.db"),
            "PANELSYNC_MAX_RETRIES": "2",
        }
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()
        self._tmpdir.cleanup()

    def test_build_engine_wires_settings(self) -> None:
        with mock.patch.dict(os.environ, self.env, clear=True):
            engine = build_engine(SyncSettings(_env_file=None))
        try:
            self.assertIs(engine.orchestrator.queue, engine.queue)
            self.assertIs(engine.orchestrator.client, engine.client)
            self.assertEqual(engine.orchestrator.retry_policy.max_retries, 2)
            self.assertIs(engine.queue.retry_policy, engine.orchestrator.retry_policy)
            self.assertEqual(engine.queue.db_path, self.env["PANELSYNC_QUEUE_DB_PATH"])
            self.assertIsInstance(engine.local_store, LocalEntityStore)
            self.assertIs(engine.service.orchestrator, engine.orchestrator)
        finally:
            engine.close()

    def _run(self, *argv: str) -> tuple[int, str]:
        out = io.StringIO()
        with mock.patch.dict(os.environ, self.env, clear=True), redirect_stdout(out):
            code = main(list(argv))
        return code, out.getvalue()

    def test_cli_stats_on_empty_queue(self) -> None:
        code, output = self._run("stats")
        self.assertEqual(code, 0)
        stats = json.loads(output)
        self.assertEqual(stats["pending"], 0)
        self.assertEqual(stats["syncHealth"], "good")

    def test_cli_sync_with_nothing_queued(self) -> None:
        code, output = self._run("sync")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["processed"], 0)

    def test_cli_cleanup(self) -> None:
        code, _ = self._run("cleanup", "--days", "3")
        self.assertEqual(code, 0)

    def test_cli_requires_command(self) -> None:
        with self.assertRaises(SystemExit):
            self._run()


if __name__ == "__main__":  # pragma: no cover - manual run
    unittest.main()
