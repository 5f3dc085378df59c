"""
Cursor Poller
=============

Repeatedly harvests the hub and persists the resumable cursor.

ORDERING (per cycle):
1. Read persisted state
2. Harvest pages from the derived cursor
3. Await every sink write, in receipt order
4. Record the cursor in the sink
5. Overwrite the state file

A failed cycle is reported and retried on the next tick; the state
file is only written after the sink acknowledged every write.
"""

from __future__ import annotations
from typing import Optional
import asyncio
import json
import logging

from .config import PollerConfig
from .contracts import (
    Cursor, CursorPayload, CycleSummary, DeleteAction, UpsertAction
)
from .fetcher import EventFetcher, FetchConfig
from .sink import RecordSink
from .state import cursor_from_state, read_state, state_from_cursor, write_state


logger = logging.getLogger(__name__)

MIN_TIMEOUT_MS = 5_000
MAX_TIMEOUT_MS = 30_000


def clamp_timeout_ms(timeout_ms: int) -> int:
    return min(MAX_TIMEOUT_MS, max(MIN_TIMEOUT_MS, timeout_ms))


def next_cursor(state_cursor: Cursor, harvest_cursor: Cursor, action_count: int) -> Cursor:
    """
    Cursor to persist after a harvest.

    Empty harvests keep the persisted position and drop any page token.
    """
    if action_count == 0:
        return Cursor(from_event_id=state_cursor.from_event_id, page_token=None)

    if harvest_cursor.from_event_id < state_cursor.from_event_id:
        logger.warning(
            "Harvest cursor %s is behind persisted cursor %s; keeping persisted",
            harvest_cursor.from_event_id, state_cursor.from_event_id
        )
        return Cursor(from_event_id=state_cursor.from_event_id, page_token=harvest_cursor.page_token)

    return harvest_cursor


class CursorPoller:
    """Drives harvest cycles against one sink and one state file."""

    def __init__(
        self,
        config: PollerConfig,
        sink: RecordSink,
        fetcher: Optional[EventFetcher] = None,
        max_pages: Optional[int] = None,
        timeout_ms: Optional[int] = None
    ):
        self._config = config
        self._sink = sink
        self._max_pages = max_pages or config.max_pages_per_poll
        if fetcher is None:
            timeout = clamp_timeout_ms(timeout_ms or config.timeout_ms)
            fetcher = EventFetcher(FetchConfig(
                base_url=config.hub_url,
                page_size=config.page_size,
                timeout=timeout / 1000,
                reverse=config.reverse
            ))
        self._fetcher = fetcher
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def poll_once(self) -> CycleSummary:
        """
        Run one harvest cycle. Errors propagate to the caller.
        """
        state = read_state(self._config.state_path)
        state_cursor = cursor_from_state(state)

        result = await self._fetcher.fetch_all_pages(state_cursor, self._max_pages)
        cursor = next_cursor(state_cursor, result.cursor, len(result.actions))

        summary = CycleSummary(
            received_from_api=result.received_count,
            page_count=result.page_count,
            cursor=cursor.from_event_id
        )

        for action in result.actions:
            await self._sink.apply_action(action)
            summary.applied += 1
            if isinstance(action, UpsertAction):
                summary.inserted += 1
            elif isinstance(action, DeleteAction):
                summary.deleted += 1

        await self._sink.update_cursor(CursorPayload(
            from_event_id=cursor.from_event_id,
            page_token=cursor.page_token,
            poller_name=self._config.poller_name
        ))
        write_state(self._config.state_path, state_from_cursor(cursor))

        return summary

    async def run_cycle(self, label: str = 'poll cycle completed') -> Optional[CycleSummary]:
        """
        Run one guarded cycle; never raises.

        Returns None when a previous cycle is still running.
        """
        if self._in_progress:
            logger.warning("Skipping poll cycle: previous cycle still running")
            return None

        self._in_progress = True
        try:
            summary = await self.poll_once()
        except Exception as e:
            logger.debug("Poll cycle failed", exc_info=True)
            summary = CycleSummary.failure(e)
        finally:
            self._in_progress = False

        if summary.error:
            logger.error("[poller] %s %s", label, json.dumps(summary.to_dict()))
        else:
            logger.info("[poller] %s %s", label, json.dumps(summary.to_dict()))
        return summary

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run a cycle every poll interval until stop_event is set."""
        stop_event = stop_event or asyncio.Event()
        interval = self._config.poll_interval_ms / 1000

        while not stop_event.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
