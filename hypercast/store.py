"""
Reconciliation Store

Authoritative in-memory cast table keyed by hash.

PRINCIPLES:
===========
1. Last-writer-wins per hash, by event sequence number
2. Deletes leave tombstones so stale upserts stay suppressed
3. Replaying the same actions changes nothing
4. Only the visible slice is capped; rows are never evicted
"""

from __future__ import annotations
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .contracts import (
    Action, ApplyCounts, CastRecord, Cursor, DeleteAction, UpsertAction
)


DEFAULT_MAX_VISIBLE = 250
MAX_VISIBLE_CEILING = 500


class ReconciliationStore:
    """
    Applies harvested actions to a deduplicated cast table.

    Not thread-safe and not re-entrant: callers hold a single-flight
    guard around apply().
    """

    def __init__(self, max_visible: int = DEFAULT_MAX_VISIBLE):
        self._max_visible = max(1, min(int(max_visible), MAX_VISIBLE_CEILING))
        self._rows: Dict[str, CastRecord] = {}
        self._cursor = Cursor.start()

    @property
    def max_visible(self) -> int:
        return self._max_visible

    @property
    def cursor(self) -> Cursor:
        return self._cursor

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, cast_hash: str) -> Optional[CastRecord]:
        return self._rows.get(cast_hash)

    def apply(self, actions: Iterable[Action]) -> ApplyCounts:
        """Apply actions in order and report what changed."""
        counts = ApplyCounts()

        for action in actions:
            if isinstance(action, UpsertAction):
                outcome = self._apply_upsert(action)
                if outcome == 'added':
                    counts.added += 1
                elif outcome == 'updated':
                    counts.updated += 1
            elif isinstance(action, DeleteAction):
                if self._apply_delete(action):
                    counts.removed += 1
            else:
                raise TypeError(f"Unsupported action: {action!r}")

        return counts

    def accept_cursor(self, cursor: Cursor) -> bool:
        """Adopt a harvest cursor unless it is behind the current one."""
        if cursor.from_event_id < self._cursor.from_event_id:
            return False
        self._cursor = cursor
        return True

    def visible_rows(self, limit: Optional[int] = None) -> List[CastRecord]:
        """
        Live rows, newest first.

        Order: created_at_millis desc, then event_id desc, then owner_id desc.
        """
        cap = self._max_visible if limit is None else max(0, min(limit, self._max_visible))
        live = [row for row in self._rows.values() if not row.deleted]
        live.sort(
            key=lambda row: (row.created_at_millis, row.event_id, row.owner_id),
            reverse=True
        )
        return live[:cap]

    def reset(self) -> None:
        self._rows.clear()
        self._cursor = Cursor.start()

    def _apply_upsert(self, action: UpsertAction) -> Optional[str]:
        existing = self._rows.get(action.hash)
        incoming = self._record_from(action)

        if existing is None:
            self._rows[action.hash] = incoming
            return 'added'

        if action.event_id < existing.event_id:
            return None

        if existing.deleted:
            # Revival needs a strictly newer event than the tombstone
            if action.event_id == existing.event_id:
                return None
            self._rows[action.hash] = incoming
            return 'updated'

        if action.event_id == existing.event_id and existing == incoming:
            return None

        self._rows[action.hash] = incoming
        return 'updated'

    def _apply_delete(self, action: DeleteAction) -> bool:
        existing = self._rows.get(action.hash)

        if existing is None:
            self._rows[action.hash] = CastRecord(
                hash=action.hash,
                owner_id=0,
                text='',
                created_at_millis=0,
                parent_owner_id=None,
                parent_hash=None,
                mentions=(),
                deleted=True,
                event_id=action.event_id
            )
            return True

        if action.event_id < existing.event_id:
            return False

        self._rows[action.hash] = replace(existing, deleted=True, event_id=action.event_id)
        return not existing.deleted

    @staticmethod
    def _record_from(action: UpsertAction) -> CastRecord:
        return CastRecord(
            hash=action.hash,
            owner_id=action.owner_id,
            text=action.text,
            created_at_millis=max(0, action.created_at_seconds) * 1000,
            parent_owner_id=action.parent_owner_id,
            parent_hash=action.parent_hash,
            mentions=action.mentions,
            deleted=False,
            event_id=action.event_id
        )
