"""
Shared builders for harvest tests.

Raw payloads mirror the hub `/v1/events` response shape.
"""

from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional
import json

import httpx

from hypercast.config import PollerConfig
from hypercast.contracts import DeleteAction, UpsertAction
from hypercast.fetcher import EventFetcher, FetchConfig


HUB_URL = "http://127.0.0.1:3381"
MERGE = "HUB_EVENT_TYPE_MERGE_MESSAGE"


def cast_add_message(
    cast_hash: str,
    fid: int = 123,
    timestamp: int = 1700000000,
    text: str = "hello world",
    mentions: Optional[list] = None,
    parent: Optional[dict] = None
) -> dict:
    body = {"text": text, "mentions": mentions if mentions is not None else []}
    if parent is not None:
        body["parentCastId"] = parent
    return {
        "hash": cast_hash,
        "data": {
            "type": "MESSAGE_TYPE_CAST_ADD",
            "fid": fid,
            "timestamp": timestamp,
            "castAddBody": body,
        },
    }


def cast_remove_message(target_hash: str, timestamp: int = 1700000100) -> dict:
    return {
        "hash": "0xignored",
        "data": {
            "type": "MESSAGE_TYPE_CAST_REMOVE",
            "timestamp": timestamp,
            "castRemoveBody": {"targetHash": target_hash},
        },
    }


def merge_event(event_id, message=None, deleted_messages=None, block_number=None) -> dict:
    body: Dict[str, object] = {"message": message}
    if deleted_messages is not None:
        body["deletedMessages"] = deleted_messages
    event = {"type": MERGE, "id": event_id, "mergeMessageBody": body}
    if block_number is not None:
        event["blockNumber"] = block_number
    return event


def events_body(events: list, token: Optional[str] = None, snake_case: bool = False) -> str:
    body: Dict[str, object] = {"events": events}
    if token is not None:
        body["next_page_token" if snake_case else "nextPageToken"] = token
    return json.dumps(body)


def reference_page() -> str:
    """One cast add (event 10, 0xdeadbeef) plus a removal of 0xabc."""
    return events_body(
        [
            merge_event(
                10,
                message=cast_add_message(
                    "0xdeadbeef",
                    mentions=[2, 3],
                    parent={"fid": 11, "hash": "0x11aa"},
                ),
                deleted_messages=[cast_remove_message("0xabc")],
            )
        ],
        token="tok",
    )


class ScriptedHub:
    """
    Serves a fixed sequence of responses and records every request.

    Each entry is either a body string (200) or a (status, body) tuple.
    """

    def __init__(self, responses: List[object]):
        self._responses = list(responses)
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(200, text=events_body([]))
        entry = self._responses.pop(0)
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, tuple):
            status, text = entry
            return httpx.Response(status, text=text)
        return httpx.Response(200, text=entry)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def fetcher(self, page_size: int = 100) -> EventFetcher:
        return EventFetcher(
            FetchConfig(base_url=HUB_URL, page_size=page_size, timeout=5.0),
            transport=self.transport(),
        )

    def query(self, index: int) -> Dict[str, str]:
        return dict(self.requests[index].url.params)


def make_poller_config(tmp_path: Path, **overrides) -> PollerConfig:
    values = dict(
        hub_url=HUB_URL,
        poll_interval_ms=1,
        timeout_ms=12_000,
        max_pages_per_poll=4,
        page_size=100,
        reverse=False,
        poller_name="test-poller",
        state_path=str(tmp_path / "state.json"),
        db_path=str(tmp_path / "casts.db"),
        allow_untrusted=False,
        allowed_hosts=("localhost", "127.0.0.1"),
    )
    values.update(overrides)
    return PollerConfig(**values)


def upsert_action(cast_hash: str, event_id: int, created: int = 1700000000, owner: int = 1, text: str = "hi") -> UpsertAction:
    return UpsertAction(
        hash=cast_hash,
        owner_id=owner,
        created_at_seconds=created,
        text=text,
        mentions=(),
        parent_owner_id=None,
        parent_hash=None,
        source_type=MERGE,
        event_id=event_id
    )


def delete_action(cast_hash: str, event_id: int) -> DeleteAction:
    return DeleteAction(
        hash=cast_hash,
        event_id=event_id,
        source_type=MERGE,
        event_timestamp_seconds=1700000000
    )
