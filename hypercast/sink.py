"""
Record Sinks

Reducer-style downstream targets for harvested actions.

Every sink exposes three writes (upsert-record, delete-record,
update-cursor). Each write is safe to repeat: the receiver compares event
sequence numbers and ignores anything older than what it holds.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union
import asyncio
import json
import sqlite3
import time

from .contracts import (
    Action, Cursor, CursorPayload, DeleteAction, DeletePayload,
    UpsertAction, UpsertPayload
)
from .store import ReconciliationStore


SYNC_STATE_ID = 1


# =============================================================================
# PAYLOAD BUILDERS
# =============================================================================

def build_upsert_payload(action: UpsertAction) -> UpsertPayload:
    created_at_millis = max(0, action.created_at_seconds) * 1000
    return UpsertPayload(
        hash=action.hash,
        owner_id=action.owner_id,
        text=action.text,
        created_at_millis=created_at_millis,
        event_timestamp_millis=created_at_millis,
        event_id=action.event_id,
        source_type=action.source_type,
        source_event_id=str(action.event_id),
        block_number=action.block_number,
        parent_owner_id=action.parent_owner_id,
        parent_hash=action.parent_hash,
        mentions_json=json.dumps(list(action.mentions), separators=(',', ':'))
    )


def build_delete_payload(action: DeleteAction) -> DeletePayload:
    return DeletePayload(
        hash=action.hash,
        event_id=action.event_id,
        source_type=action.source_type,
        source_event_id=str(action.event_id),
        block_number=action.block_number,
        event_timestamp_millis=max(0, action.event_timestamp_seconds) * 1000
    )


def _now_millis() -> int:
    return int(time.time() * 1000)


# =============================================================================
# SINK INTERFACE
# =============================================================================

class RecordSink(ABC):
    """
    Abstract downstream reducer target.

    A write returns only once the receiver has acknowledged it.
    """

    @abstractmethod
    async def upsert_record(self, payload: UpsertPayload) -> bool:
        """Insert or replace a cast. Returns False if ignored as stale."""
        pass

    @abstractmethod
    async def delete_record(self, payload: DeletePayload) -> bool:
        """Tombstone a cast. Returns False if ignored as stale."""
        pass

    @abstractmethod
    async def update_cursor(self, payload: CursorPayload) -> None:
        """Record the poller's cursor."""
        pass

    async def apply_action(self, action: Action) -> bool:
        if isinstance(action, UpsertAction):
            return await self.upsert_record(build_upsert_payload(action))
        if isinstance(action, DeleteAction):
            return await self.delete_record(build_delete_payload(action))
        raise TypeError(f"Unsupported action: {action!r}")

    def close(self) -> None:
        pass


# =============================================================================
# SQLITE SINK
# =============================================================================

class SqliteRecordSink(RecordSink):
    """
    Local reducer target backed by SQLite.

    Event ids are unsigned 64-bit, so they are stored as decimal text and
    compared in Python.
    """

    def __init__(self, db_path: Union[str, Path]):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_conn() as conn:
            conn.executescript('''
                CREATE TABLE IF NOT EXISTS casts (
                    hash TEXT PRIMARY KEY,
                    fid INTEGER NOT NULL,
                    created_at_millis INTEGER NOT NULL,
                    event_timestamp_millis INTEGER NOT NULL,
                    event_id TEXT NOT NULL,
                    source_type TEXT NOT NULL,
                    source_event_id TEXT NOT NULL,
                    text TEXT NOT NULL,
                    parent_fid INTEGER,
                    parent_hash TEXT,
                    mentions TEXT NOT NULL,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    block_number INTEGER,
                    received_at_millis INTEGER NOT NULL,
                    updated_at_millis INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS sync_state (
                    id INTEGER PRIMARY KEY,
                    from_event_id TEXT NOT NULL,
                    page_token TEXT,
                    last_updated_millis INTEGER NOT NULL,
                    poller_name TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_casts_created ON casts(is_deleted, created_at_millis);
            ''')

    @contextmanager
    def _get_conn(self):
        """Get database connection."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    async def upsert_record(self, payload: UpsertPayload) -> bool:
        return await asyncio.to_thread(self._write_upsert, payload)

    async def delete_record(self, payload: DeletePayload) -> bool:
        return await asyncio.to_thread(self._write_delete, payload)

    async def update_cursor(self, payload: CursorPayload) -> None:
        await asyncio.to_thread(self._write_cursor, payload)

    # sqlite3 blocks; the writers below run on a worker thread

    def _write_upsert(self, payload: UpsertPayload) -> bool:
        now = _now_millis()
        with self._get_conn() as conn:
            existing = conn.execute(
                'SELECT event_id, is_deleted, received_at_millis FROM casts WHERE hash = ?',
                (payload.hash,)
            ).fetchone()

            if existing is not None:
                stored_event_id = int(existing['event_id'])
                if payload.event_id < stored_event_id:
                    return False
                if existing['is_deleted'] and payload.event_id == stored_event_id:
                    return False

            conn.execute('''
                INSERT OR REPLACE INTO casts
                (hash, fid, created_at_millis, event_timestamp_millis, event_id,
                 source_type, source_event_id, text, parent_fid, parent_hash,
                 mentions, is_deleted, block_number, received_at_millis, updated_at_millis)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
            ''', (
                payload.hash,
                payload.owner_id,
                payload.created_at_millis,
                payload.event_timestamp_millis,
                str(payload.event_id),
                payload.source_type,
                payload.source_event_id,
                payload.text,
                payload.parent_owner_id,
                payload.parent_hash,
                payload.mentions_json,
                payload.block_number,
                existing['received_at_millis'] if existing is not None else now,
                now
            ))
        return True

    def _write_delete(self, payload: DeletePayload) -> bool:
        now = _now_millis()
        with self._get_conn() as conn:
            existing = conn.execute(
                'SELECT event_id FROM casts WHERE hash = ?',
                (payload.hash,)
            ).fetchone()

            if existing is None:
                conn.execute('''
                    INSERT INTO casts
                    (hash, fid, created_at_millis, event_timestamp_millis, event_id,
                     source_type, source_event_id, text, parent_fid, parent_hash,
                     mentions, is_deleted, block_number, received_at_millis, updated_at_millis)
                    VALUES (?, 0, ?, ?, ?, ?, ?, '', NULL, NULL, '[]', 1, ?, ?, ?)
                ''', (
                    payload.hash,
                    now,
                    payload.event_timestamp_millis,
                    str(payload.event_id),
                    payload.source_type,
                    payload.source_event_id,
                    payload.block_number,
                    now,
                    now
                ))
                return True

            if payload.event_id < int(existing['event_id']):
                return False

            conn.execute('''
                UPDATE casts
                SET is_deleted = 1, event_id = ?, source_type = ?, source_event_id = ?,
                    event_timestamp_millis = ?, block_number = ?, updated_at_millis = ?
                WHERE hash = ?
            ''', (
                str(payload.event_id),
                payload.source_type,
                payload.source_event_id,
                payload.event_timestamp_millis,
                payload.block_number,
                now,
                payload.hash
            ))
        return True

    def _write_cursor(self, payload: CursorPayload) -> None:
        with self._get_conn() as conn:
            conn.execute('''
                INSERT OR REPLACE INTO sync_state
                (id, from_event_id, page_token, last_updated_millis, poller_name)
                VALUES (?, ?, ?, ?, ?)
            ''', (
                SYNC_STATE_ID,
                str(payload.from_event_id),
                payload.page_token,
                _now_millis(),
                payload.poller_name
            ))

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_record(self, cast_hash: str) -> Optional[dict]:
        with self._get_conn() as conn:
            row = conn.execute('SELECT * FROM casts WHERE hash = ?', (cast_hash,)).fetchone()
            return dict(row) if row else None

    def get_sync_state(self) -> Optional[dict]:
        with self._get_conn() as conn:
            row = conn.execute('SELECT * FROM sync_state WHERE id = ?', (SYNC_STATE_ID,)).fetchone()
            return dict(row) if row else None

    def get_stats(self) -> dict:
        with self._get_conn() as conn:
            live = conn.execute('SELECT COUNT(*) FROM casts WHERE is_deleted = 0').fetchone()[0]
            deleted = conn.execute('SELECT COUNT(*) FROM casts WHERE is_deleted = 1').fetchone()[0]
            return {'live_casts': live, 'tombstones': deleted}


# =============================================================================
# IN-MEMORY SINK
# =============================================================================

class StoreRecordSink(RecordSink):
    """Feeds reducer writes into a ReconciliationStore."""

    def __init__(self, store: Optional[ReconciliationStore] = None):
        self._store = store if store is not None else ReconciliationStore()
        self.last_cursor_payload: Optional[CursorPayload] = None

    @property
    def store(self) -> ReconciliationStore:
        return self._store

    async def upsert_record(self, payload: UpsertPayload) -> bool:
        try:
            mentions = tuple(json.loads(payload.mentions_json))
        except ValueError:
            mentions = ()

        counts = self._store.apply([UpsertAction(
            hash=payload.hash,
            owner_id=payload.owner_id,
            created_at_seconds=payload.created_at_millis // 1000,
            text=payload.text,
            mentions=mentions,
            parent_owner_id=payload.parent_owner_id,
            parent_hash=payload.parent_hash,
            source_type=payload.source_type,
            event_id=payload.event_id,
            block_number=payload.block_number
        )])
        return counts.added + counts.updated > 0

    async def delete_record(self, payload: DeletePayload) -> bool:
        counts = self._store.apply([DeleteAction(
            hash=payload.hash,
            event_id=payload.event_id,
            source_type=payload.source_type,
            event_timestamp_seconds=payload.event_timestamp_millis // 1000,
            block_number=payload.block_number
        )])
        return counts.removed > 0

    async def update_cursor(self, payload: CursorPayload) -> None:
        self.last_cursor_payload = payload
        self._store.accept_cursor(Cursor(
            from_event_id=payload.from_event_id,
            page_token=payload.page_token
        ))
