"""
Hypercast - incremental hub event harvester

Harvests cast events from a hub `/v1/events` endpoint and reconciles them
into a deduplicated feed with a resumable cursor.

LAYERS:
=======

1. NORMALIZER (hypercast/normalizer.py)
   - Raw JSON page -> typed actions + cursor
   - MUST NOT: perform I/O

2. HARVESTER (hypercast/fetcher.py)
   - Bounded HTTP round trip per page, multi-page aggregation
   - MUST NOT: deduplicate

3. RECONCILIATION STORE (hypercast/store.py, hypercast/feed.py)
   - Last-writer-wins by event id, tombstones, ordered visible slice

4. CURSOR POLLER (hypercast/poller.py, hypercast/state.py, hypercast/sink.py)
   - Interval or single-pass cycles, durable cursor, reducer sink writes
"""

from .contracts import (
    Action, ActionKind, AggregatedPage, ApplyCounts, CastRecord, Cursor,
    CycleSummary, DeleteAction, EventsPage, PollerState, StopReason, UpsertAction
)
from .errors import ConfigError, HarvestError, MalformedPayload, TransportError
from .normalizer import build_events_url, normalize_hash, parse_page
from .fetcher import EventFetcher, FetchConfig, fetch_all_pages
from .store import ReconciliationStore
from .feed import CastFeed
from .poller import CursorPoller

__all__ = [
    'Action', 'ActionKind', 'AggregatedPage', 'ApplyCounts', 'CastRecord',
    'Cursor', 'CycleSummary', 'DeleteAction', 'EventsPage', 'PollerState',
    'StopReason', 'UpsertAction',
    'ConfigError', 'HarvestError', 'MalformedPayload', 'TransportError',
    'build_events_url', 'normalize_hash', 'parse_page',
    'EventFetcher', 'FetchConfig', 'fetch_all_pages',
    'ReconciliationStore', 'CastFeed', 'CursorPoller',
]
