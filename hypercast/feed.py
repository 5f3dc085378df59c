"""
Cast Feed

Pulls new pages into a ReconciliationStore on demand.
"""

from __future__ import annotations
from typing import List, Optional
import logging
import time

from .contracts import CastRecord, Cursor, FeedRefreshSummary
from .fetcher import EventFetcher
from .store import ReconciliationStore


logger = logging.getLogger(__name__)


class RefreshInProgress(RuntimeError):
    """A refresh was requested while another one is still applying."""


class CastFeed:
    """
    Coordinates one fetcher and one store.

    DESIGN:
    =======
    1. Harvest from the store's current cursor
    2. Apply every action in receipt order
    3. Adopt the harvest cursor only if it is not behind
    4. At most one refresh in flight
    """

    def __init__(
        self,
        fetcher: EventFetcher,
        store: Optional[ReconciliationStore] = None,
        max_pages: int = 2
    ):
        self._fetcher = fetcher
        self._store = store if store is not None else ReconciliationStore()
        self._max_pages = max(1, max_pages)
        self._in_progress = False

    @property
    def store(self) -> ReconciliationStore:
        return self._store

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def source_url(self) -> str:
        return self._fetcher.config.base_url

    @property
    def last_cursor(self) -> Cursor:
        return self._store.cursor

    def rows(self, limit: Optional[int] = None) -> List[CastRecord]:
        return self._store.visible_rows(limit)

    async def refresh(self) -> FeedRefreshSummary:
        """
        Harvest and apply one batch of pages.

        Raises:
            RefreshInProgress: another refresh has not finished
            HarvestError: the harvest failed; the store is untouched
        """
        if self._in_progress:
            raise RefreshInProgress("Feed refresh already running")

        self._in_progress = True
        started = time.monotonic()
        try:
            result = await self._fetcher.fetch_all_pages(self._store.cursor, self._max_pages)
            counts = self._store.apply(result.actions)
            self._store.accept_cursor(result.cursor)
        finally:
            self._in_progress = False

        summary = FeedRefreshSummary(
            added=counts.added,
            updated=counts.updated,
            removed=counts.removed,
            total_visible=len(self._store.visible_rows()),
            last_cursor=self._store.cursor,
            received_count=result.received_count,
            from_api=self.source_url,
            latency_ms=round((time.monotonic() - started) * 1000, 1)
        )
        logger.info("Feed refreshed: %s", summary.to_dict())
        return summary

    def reset(self) -> None:
        self._store.reset()
