"""
Hub Event Fetcher

Fetches pages from the hub events endpoint and drives multi-page
harvests.

PRINCIPLES:
===========
1. One bounded HTTP round trip per page
2. Pages are fetched strictly in sequence
3. Any failed page aborts the whole harvest (no partial cursor)
4. The exposed cursor never moves past unconfirmed data
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional
import asyncio
import logging

import httpx

from .contracts import Action, AggregatedPage, Cursor, EventsPage, StopReason
from .errors import TransportError
from .normalizer import build_events_url, parse_page


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchConfig:
    """Connection settings for the events endpoint."""
    base_url: str
    page_size: int = 100
    timeout: float = 12.0
    reverse: bool = False
    user_agent: str = "Hypercast/1.0"


class EventFetcher:
    """
    Fetches and normalizes event pages.

    GUARANTEES:
    ===========
    1. Each page has its own overall deadline, not just per-read timeouts
    2. Timeouts, network errors and non-2xx statuses raise TransportError
    3. Aggregated actions keep receipt order and are not deduplicated
    """

    def __init__(
        self,
        config: FetchConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._config = config
        self._transport = transport

    @property
    def config(self) -> FetchConfig:
        return self._config

    async def fetch_page(self, cursor: Cursor) -> EventsPage:
        """
        Fetch and parse a single page.

        Raises:
            TransportError: timeout, network failure or non-2xx status
            MalformedPayload: body was not JSON
        """
        url = build_events_url(
            self._config.base_url,
            cursor,
            self._config.page_size,
            self._config.reverse
        )

        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout,
                transport=self._transport
            ) as client:
                # httpx bounds each read; the page as a whole needs its own deadline
                response = await asyncio.wait_for(
                    client.get(
                        url,
                        headers={
                            'Accept': 'application/json',
                            'User-Agent': self._config.user_agent
                        }
                    ),
                    timeout=self._config.timeout
                )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise TransportError(f"Events request timed out after {self._config.timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Events request failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Events request failed ({response.status_code} {response.reason_phrase})",
                status_code=response.status_code,
                body=response.text
            )

        return parse_page(response.text)

    async def fetch_all_pages(self, start_cursor: Cursor, max_pages: int) -> AggregatedPage:
        """
        Fetch up to max_pages pages starting at start_cursor.

        Termination, checked in order after each page:
            1. page budget reached
            2. page declared no further data
            3. page cursor did not advance past the request cursor
            4. empty page without a continuation token
        """
        cursor = start_cursor
        actions: List[Action] = []
        received_count = 0
        page_count = 0
        has_more = False
        stop_reason = StopReason.MAX_PAGES

        for page_index in range(max(0, max_pages)):
            page = await self.fetch_page(cursor)
            page_count += 1
            actions.extend(page.actions)
            received_count += page.received_count

            advanced = page.cursor.from_event_id > cursor.from_event_id
            if advanced:
                cursor = page.cursor
            has_more = page.has_more_pages and advanced

            if page_index == max_pages - 1:
                stop_reason = StopReason.MAX_PAGES
                break
            if not page.has_more_pages:
                stop_reason = StopReason.EXHAUSTED
                break
            if not advanced:
                logger.warning(
                    "Events cursor did not advance (requested %s, got %s); stopping",
                    cursor.from_event_id, page.cursor.from_event_id
                )
                stop_reason = StopReason.STALLED
                break
            if not page.actions and not page.page_token:
                stop_reason = StopReason.EMPTY
                break

        logger.debug(
            "Harvested %d pages (%d actions, stop=%s)",
            page_count, len(actions), stop_reason.value
        )

        return AggregatedPage(
            actions=tuple(actions),
            received_count=received_count,
            cursor=cursor,
            has_more_pages=has_more,
            page_count=page_count,
            stop_reason=stop_reason
        )


async def fetch_all_pages(
    config: FetchConfig,
    start_cursor: Cursor,
    max_pages: int,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> AggregatedPage:
    """Convenience wrapper around EventFetcher.fetch_all_pages."""
    return await EventFetcher(config, transport=transport).fetch_all_pages(start_cursor, max_pages)
