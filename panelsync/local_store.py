# -*- coding: utf-8 -*-
"""
Local Entity Store

Locally held copies of synced entities. The engine reads from it to build
conflict records and writes the resolved entity back after a conflict.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LocalEntityStore:
    """SQLite document store keyed by (entity_type, entity_id)."""

    def __init__(self, db_path: str):
        """
        Args:
            db_path: SQLite database path
        """
        self.db_path = db_path
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_table(self):
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS local_entities (
                        entity_type TEXT NOT NULL,
                        entity_id TEXT NOT NULL,
                        data TEXT NOT NULL,
                        stored_at TEXT NOT NULL,
                        PRIMARY KEY (entity_type, entity_id)
                    )
                """)
        finally:
            conn.close()

    def get(self, entity_type: str, entity_id: Any) -> Optional[Dict[str, Any]]:
        """Stored entity, or None."""
        if entity_id is None:
            return None
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT data FROM local_entities WHERE entity_type = ? AND entity_id = ?",
                (entity_type, str(entity_id)),
            ).fetchone()
            return json.loads(row['data']) if row else None
        finally:
            conn.close()

    def put(self, entity_type: str, data: Dict[str, Any]) -> bool:
        """
        Insert or replace an entity. Entities without an 'id' are not stored.

        Returns:
            True if the entity was written
        """
        entity_id = data.get('id')
        if entity_id is None:
            logger.debug(f"Skipping local write for {entity_type}: entity has no id")
            return False

        conn = self._get_connection()
        try:
            with conn:
                conn.execute("""
                    INSERT OR REPLACE INTO local_entities (entity_type, entity_id, data, stored_at)
                    VALUES (?, ?, ?, ?)
                """, (
                    entity_type,
                    str(entity_id),
                    json.dumps(data, ensure_ascii=False, default=str),
                    datetime.now(timezone.utc).isoformat(),
                ))
            return True
        finally:
            conn.close()

    def delete(self, entity_type: str, entity_id: Any) -> bool:
        if entity_id is None:
            return False
        conn = self._get_connection()
        try:
            with conn:
                cur = conn.execute(
                    "DELETE FROM local_entities WHERE entity_type = ? AND entity_id = ?",
                    (entity_type, str(entity_id)),
                )
            return cur.rowcount > 0
        finally:
            conn.close()

    def all(self, entity_type: str) -> List[Dict[str, Any]]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT data FROM local_entities WHERE entity_type = ? ORDER BY entity_id",
                (entity_type,),
            ).fetchall()
            return [json.loads(row['data']) for row in rows]
        finally:
            conn.close()
