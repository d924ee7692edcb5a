# -*- coding: utf-8 -*-
"""Local entity store."""

from __future__ import annotations

import os
import sys
import tempfile
import unittest
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from panelsync.local_store import LocalEntityStore  # noqa: E402


class LocalEntityStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.store = LocalEntityStore(os.path.join(self._tmpdir.name, "local.db"))

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def test_put_get_replace(self) -> None:
        self.assertTrue(self.store.put("panels", {"id": 12, "status": "tested"}))
        self.assertTrue(self.store.put("panels", {"id": 12, "status": "packed"}))
        self.assertEqual(self.store.get("panels", "12"), {"id": 12, "status": "packed"})
        self.assertEqual(self.store.all("panels"), [{"id": 12, "status": "packed"}])

    def test_entity_types_are_separate(self) -> None:
        self.store.put("panels", {"id": 1})
        self.assertIsNone(self.store.get("stations", 1))
        self.assertEqual(self.store.all("stations"), [])

    def test_entities_without_id_are_skipped(self) -> None:
        self.assertFalse(self.store.put("panels", {"serial": "A"}))
        self.assertIsNone(self.store.get("panels", None))

    def test_delete(self) -> None:
        self.store.put("inspections", {"id": "I-1"})
        self.assertTrue(self.store.delete("inspections", "I-1"))
        self.assertFalse(self.store.delete("inspections", "I-1"))
        self.assertIsNone(self.store.get("inspections", "I-1"))


if __name__ == "__main__":  # pragma: no cover - manual run
    unittest.main()
