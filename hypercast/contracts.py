"""
Harvest Contracts

Immutable data structures for the event harvesting pipeline.

BOUNDARY: Hypercast Harvest Layer
All remote event data enters through these contracts.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple, Union
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class ActionKind(Enum):
    """Kinds of canonical actions produced by the normalizer."""
    UPSERT = "upsert"
    DELETE = "delete"


class StopReason(Enum):
    """Why a multi-page harvest stopped."""
    MAX_PAGES = "max_pages"      # page budget spent
    EXHAUSTED = "exhausted"      # remote declared no further data
    STALLED = "stalled"          # cursor did not advance
    EMPTY = "empty"              # empty page, no continuation token


# =============================================================================
# CURSOR
# =============================================================================

@dataclass(frozen=True)
class Cursor:
    """
    Resumable position in the remote event stream.

    A present page_token takes priority for the next fetch; otherwise
    from_event_id addresses the next unseen sequence number.
    """
    from_event_id: int = 0
    page_token: Optional[str] = None

    @classmethod
    def start(cls) -> 'Cursor':
        return cls(from_event_id=0, page_token=None)

    def to_dict(self) -> dict:
        return {
            'fromEventId': str(self.from_event_id),
            'pageToken': self.page_token
        }


# =============================================================================
# ACTIONS (tagged union)
# =============================================================================

@dataclass(frozen=True)
class UpsertAction:
    """A cast was added (or re-delivered) at a given event sequence number."""
    hash: str
    owner_id: int
    created_at_seconds: int
    text: str
    mentions: Tuple[int, ...]
    parent_owner_id: Optional[int]
    parent_hash: Optional[str]
    source_type: str
    event_id: int
    block_number: Optional[int] = None

    @property
    def kind(self) -> ActionKind:
        return ActionKind.UPSERT


@dataclass(frozen=True)
class DeleteAction:
    """A cast was removed at a given event sequence number."""
    hash: str
    event_id: int
    source_type: str
    event_timestamp_seconds: int
    block_number: Optional[int] = None

    @property
    def kind(self) -> ActionKind:
        return ActionKind.DELETE


Action = Union[UpsertAction, DeleteAction]


# =============================================================================
# PAGE CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class EventsPage:
    """One normalized page of the remote event stream."""
    actions: Tuple[Action, ...]
    received_count: int
    cursor: Cursor
    has_more_pages: bool

    @property
    def page_token(self) -> Optional[str]:
        return self.cursor.page_token


@dataclass(frozen=True)
class AggregatedPage:
    """
    Result of a multi-page harvest.

    Actions are kept in receipt order and are NOT deduplicated.
    """
    actions: Tuple[Action, ...]
    received_count: int
    cursor: Cursor
    has_more_pages: bool
    page_count: int = 0
    stop_reason: Optional[StopReason] = None

    @property
    def upsert_count(self) -> int:
        return sum(1 for a in self.actions if isinstance(a, UpsertAction))

    @property
    def delete_count(self) -> int:
        return sum(1 for a in self.actions if isinstance(a, DeleteAction))


# =============================================================================
# MATERIALIZED VIEW
# =============================================================================

@dataclass(frozen=True)
class CastRecord:
    """
    One row of the materialized cast view, keyed by hash.

    Immutable; the ReconciliationStore swaps whole rows on change.
    """
    hash: str
    owner_id: int
    text: str
    created_at_millis: int
    parent_owner_id: Optional[int]
    parent_hash: Optional[str]
    mentions: Tuple[int, ...]
    deleted: bool
    event_id: int

    def to_dict(self) -> dict:
        return {
            'hash': self.hash,
            'owner_id': self.owner_id,
            'text': self.text,
            'created_at_millis': self.created_at_millis,
            'parent_owner_id': self.parent_owner_id,
            'parent_hash': self.parent_hash,
            'mentions': list(self.mentions),
            'deleted': self.deleted,
            'event_id': str(self.event_id)
        }


@dataclass
class ApplyCounts:
    """Per-call result of ReconciliationStore.apply."""
    added: int = 0
    updated: int = 0
    removed: int = 0

    def to_dict(self) -> dict:
        return {'added': self.added, 'updated': self.updated, 'removed': self.removed}


# =============================================================================
# DURABLE POLLER STATE
# =============================================================================

@dataclass(frozen=True)
class PollerState:
    """
    Persisted cursor. from_event_id is a string-encoded integer so that
    values beyond 2**53 survive any JSON reader.
    """
    from_event_id: str = "0"
    page_token: Optional[str] = None

    def to_dict(self) -> dict:
        return {'fromEventId': self.from_event_id, 'pageToken': self.page_token}


# =============================================================================
# SUMMARIES
# =============================================================================

@dataclass
class CycleSummary:
    """Structured outcome of one poller cycle."""
    applied: int = 0
    inserted: int = 0
    deleted: int = 0
    received_from_api: int = 0
    page_count: int = 0
    cursor: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: BaseException) -> 'CycleSummary':
        return cls(error=str(error) or type(error).__name__)

    def to_dict(self) -> dict:
        data = {
            'applied': self.applied,
            'inserted': self.inserted,
            'deleted': self.deleted,
            'received_from_api': self.received_from_api,
            'page_count': self.page_count,
            'cursor': str(self.cursor)
        }
        if self.error is not None:
            data['error'] = self.error
        return data


@dataclass(frozen=True)
class FeedRefreshSummary:
    """Outcome of one CastFeed.refresh call."""
    added: int
    updated: int
    removed: int
    total_visible: int
    last_cursor: Cursor
    received_count: int
    from_api: str
    latency_ms: float

    def to_dict(self) -> dict:
        return {
            'added': self.added,
            'updated': self.updated,
            'removed': self.removed,
            'total_visible': self.total_visible,
            'last_cursor': self.last_cursor.to_dict(),
            'received_count': self.received_count,
            'from_api': self.from_api,
            'latency_ms': self.latency_ms
        }


# =============================================================================
# REDUCER PAYLOADS (downstream sink)
# =============================================================================

@dataclass(frozen=True)
class UpsertPayload:
    """Arguments of the upsert-record reducer."""
    hash: str
    owner_id: int
    text: str
    created_at_millis: int
    event_timestamp_millis: int
    event_id: int
    source_type: str
    source_event_id: str
    block_number: Optional[int]
    parent_owner_id: Optional[int]
    parent_hash: Optional[str]
    mentions_json: str


@dataclass(frozen=True)
class DeletePayload:
    """Arguments of the delete-record reducer."""
    hash: str
    event_id: int
    source_type: str
    source_event_id: str
    block_number: Optional[int]
    event_timestamp_millis: int


@dataclass(frozen=True)
class CursorPayload:
    """Arguments of the update-cursor reducer."""
    from_event_id: int
    page_token: Optional[str]
    poller_name: str
