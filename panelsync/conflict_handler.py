# -*- coding: utf-8 -*-
"""
Conflict Handler

Decides how a 409 response is reconciled. Resolution is a pure function of
the conflict record and the queued item, so the same inputs always yield
the same strategy.

Rules:
- deletion: the remote side is authoritative
- version: the higher version wins, then the later updatedAt
- concurrent-edit on safety relevant entities: the later updatedAt wins
- concurrent-edit elsewhere: field merge where a merge rule exists,
  otherwise the later updatedAt wins
Ties always go to the remote side.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .models import (
    ConflictRecord, ConflictResolution, ConflictType, ResolutionStrategy,
    SyncOperation, SyncQueueItem,
)

logger = logging.getLogger(__name__)

# Inspection outcomes and order state must never keep a stale local edit
SAFETY_ENTITY_TYPES = frozenset({
    'inspections',
    'manufacturing_orders', 'manufacturingorders', 'manufacturing-orders',
})

TIMESTAMP_KEYS = ('updatedAt', 'updated_at', 'createdAt', 'created_at')
DELETED_KEYS = ('deleted', 'is_deleted', 'isDeleted')


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings, epoch seconds or datetimes into aware UTC datetimes."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def entity_timestamp(data: Optional[Mapping[str, Any]]) -> Optional[datetime]:
    """Last modification time of an entity (falls back to creation time)."""
    if not data:
        return None
    for key in TIMESTAMP_KEYS:
        parsed = parse_timestamp(data.get(key))
        if parsed is not None:
            return parsed
    return None


def entity_version(data: Optional[Mapping[str, Any]]) -> Optional[int]:
    if not data or data.get('version') is None:
        return None
    try:
        return int(data['version'])
    except (TypeError, ValueError):
        return None


def is_deleted(data: Optional[Mapping[str, Any]]) -> bool:
    return bool(data) and any(bool(data.get(key)) for key in DELETED_KEYS)


def merge_overlay(local_data: Dict[str, Any], remote_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remote non-null fields overlay local ones; fields only present locally
    survive. The result carries max(version) + 1 and the later timestamp.
    """
    merged = dict(local_data)
    for key, value in remote_data.items():
        if value is not None:
            merged[key] = value

    merged['version'] = max(entity_version(local_data) or 0, entity_version(remote_data) or 0) + 1

    local_time = entity_timestamp(local_data)
    remote_time = entity_timestamp(remote_data)
    latest = max((t for t in (local_time, remote_time) if t is not None), default=None)
    if latest is not None:
        merged['updatedAt'] = latest.isoformat()
    return merged


MERGE_RULES: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]] = {
    'panels': merge_overlay,
}


class ConflictResolver:
    """
    Conflict resolver.

    Stateless apart from its configuration; safe to share between cycles.
    """

    def __init__(self, safety_entity_types: Iterable[str] = SAFETY_ENTITY_TYPES,
                 merge_rules: Optional[Dict[str, Callable]] = None):
        """
        Args:
            safety_entity_types: Entity types resolved by recency only
            merge_rules: entity type -> merge function for concurrent edits
        """
        self.safety_entity_types = frozenset(t.lower() for t in safety_entity_types)
        self.merge_rules = dict(MERGE_RULES if merge_rules is None else merge_rules)

    def is_safety_relevant(self, entity_type: str) -> bool:
        return entity_type.lower() in self.safety_entity_types

    def detect(self, item: SyncQueueItem, local_data: Optional[Dict[str, Any]],
               remote_data: Optional[Dict[str, Any]]) -> ConflictRecord:
        """
        Build the conflict record for a 409 response.

        Args:
            item: Queued mutation that was rejected
            local_data: Locally held entity (queued payload if none is stored)
            remote_data: Authoritative entity from the response body

        Returns:
            ConflictRecord
        """
        local_data = dict(local_data or item.payload)
        remote_data = dict(remote_data or {})

        if (item.operation is SyncOperation.DELETE or not remote_data
                or is_deleted(local_data) or is_deleted(remote_data)):
            conflict_type = ConflictType.DELETION
        elif self.is_safety_relevant(item.entity_type):
            conflict_type = ConflictType.CONCURRENT_EDIT
        elif entity_version(local_data) is not None and entity_version(remote_data) is not None:
            conflict_type = ConflictType.VERSION
        else:
            conflict_type = ConflictType.CONCURRENT_EDIT

        return ConflictRecord(local_data=local_data, remote_data=remote_data,
                              conflict_type=conflict_type)

    def resolve(self, conflict: ConflictRecord, item: SyncQueueItem) -> ConflictResolution:
        """
        Resolve a conflict.

        Returns:
            Exactly one of local / remote / merged
        """
        if conflict.conflict_type is ConflictType.DELETION:
            resolution = self._remote(conflict, "Remote existence is authoritative for deletions")
        elif conflict.conflict_type is ConflictType.VERSION:
            resolution = self._resolve_version(conflict)
        elif self.is_safety_relevant(item.entity_type):
            resolution = self._resolve_last_write_wins(conflict, "safety relevant entity")
        else:
            merge = self.merge_rules.get(item.entity_type.lower())
            if merge is not None:
                resolution = ConflictResolution(
                    strategy=ResolutionStrategy.MERGED,
                    resolved_data=merge(conflict.local_data, conflict.remote_data),
                    reason=f"Merged local and remote {item.entity_type} changes",
                )
            else:
                resolution = self._resolve_last_write_wins(conflict, "concurrent edit")

        logger.info(
            f"Conflict on {item.entity_type}/{item.entity_id} "
            f"({conflict.conflict_type.value}) resolved: {resolution.strategy.value}"
        )
        return resolution

    def _resolve_version(self, conflict: ConflictRecord) -> ConflictResolution:
        local_version = entity_version(conflict.local_data)
        remote_version = entity_version(conflict.remote_data)

        if local_version is not None and remote_version is not None:
            if remote_version > local_version:
                return self._remote(
                    conflict, f"Remote version {remote_version} is newer than local {local_version}")
            if local_version > remote_version:
                return self._local(
                    conflict, f"Local version {local_version} is newer than remote {remote_version}")

        return self._resolve_last_write_wins(conflict, "equal versions")

    def _resolve_last_write_wins(self, conflict: ConflictRecord, context: str) -> ConflictResolution:
        """The later updatedAt wins; ties and missing timestamps go to remote."""
        local_time = entity_timestamp(conflict.local_data)
        remote_time = entity_timestamp(conflict.remote_data)

        if local_time and remote_time and local_time > remote_time:
            return self._local(conflict, f"Local data is more recent ({context})")
        if local_time and remote_time and remote_time > local_time:
            return self._remote(conflict, f"Remote data is more recent ({context})")
        return self._remote(conflict, f"No newer local timestamp, remote is authoritative ({context})")

    @staticmethod
    def _local(conflict: ConflictRecord, reason: str) -> ConflictResolution:
        return ConflictResolution(ResolutionStrategy.LOCAL, dict(conflict.local_data), reason)

    @staticmethod
    def _remote(conflict: ConflictRecord, reason: str) -> ConflictResolution:
        return ConflictResolution(ResolutionStrategy.REMOTE, dict(conflict.remote_data), reason)
