"""
Event Normalizer
================

Converts one raw page from the hub events endpoint into typed actions.

GUARANTEES:
- Pure: no I/O, no shared state
- Only unparsable JSON raises (MalformedPayload)
- Every malformed field falls back to a safe default
- Unrecognized events are skipped, never counted as errors
- Actions are emitted in receipt order
"""

from __future__ import annotations
from typing import Any, List, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit
import base64
import binascii
import json
import math
import re
import time

from .contracts import (
    Action, Cursor, DeleteAction, EventsPage, UpsertAction
)
from .errors import MalformedPayload


MERGE_MESSAGE_EVENT = "HUB_EVENT_TYPE_MERGE_MESSAGE"
CAST_ADD_MESSAGE = "MESSAGE_TYPE_CAST_ADD"
CAST_REMOVE_MESSAGE = "MESSAGE_TYPE_CAST_REMOVE"

EVENTS_PATH = "/v1/events"

MAX_TEXT_LENGTH = 2048
TRUNCATION_MARKER = "…"

_HEX_PREFIXED = re.compile(r'^0x[0-9a-fA-F]+$')
_HEX_BARE = re.compile(r'^[0-9a-fA-F]+$')
_BASE64 = re.compile(r'^[A-Za-z0-9+/=]+$')
_DECIMAL = re.compile(r'^\d+$')
_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


# =============================================================================
# TOTAL COERCION HELPERS
# =============================================================================

def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def as_string(value: Any, default: str = '') -> str:
    return value if isinstance(value, str) else default


def as_number(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """
    Coerce to a non-negative int.

    Floats are truncated; strings parse their leading decimal integer.
    Negative, non-finite, boolean or missing input yields `default`.
    """
    if isinstance(value, bool):
        return default

    if isinstance(value, int):
        return default if value < 0 else value

    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return default
        return int(value)

    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if not match:
            return default
        parsed = int(match.group(1))
        return parsed if parsed >= 0 else default

    return default


def as_big_int(value: Any, default: int = 0) -> int:
    """Coerce an event sequence number (number, decimal or 0x-hex string)."""
    if isinstance(value, bool):
        return default

    if isinstance(value, int):
        return default if value < 0 else value

    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return default
        return int(value)

    if isinstance(value, str):
        trimmed = value.strip()
        if _DECIMAL.match(trimmed):
            return int(trimmed)
        if _HEX_PREFIXED.match(trimmed):
            return int(trimmed, 16)

    return default


def normalize_hash(value: Any) -> Optional[str]:
    """
    Canonicalize a message hash to lowercase 0x-prefixed hex.

    Accepts 0x-hex, bare hex or base64. Returns None when nothing usable
    can be recovered.
    """
    raw = as_string(value)
    if not raw:
        return None

    if _HEX_PREFIXED.match(raw):
        return '0x' + raw[2:].lower()

    if _HEX_BARE.match(raw):
        return '0x' + raw.lower()

    if _BASE64.match(raw):
        stripped = raw.rstrip('=')
        padded = stripped + '=' * (-len(stripped) % 4)
        try:
            decoded = base64.b64decode(padded)
        except (binascii.Error, ValueError):
            return None
        return '0x' + decoded.hex() if decoded else None

    return None


def normalize_text(value: Any) -> str:
    text = as_string(value).replace('\x00', '').strip()
    if len(text) <= MAX_TEXT_LENGTH:
        return text
    return text[:MAX_TEXT_LENGTH - 1] + TRUNCATION_MARKER


def normalize_mentions(value: Any) -> Tuple[int, ...]:
    if not isinstance(value, list):
        return ()
    mentions = (as_number(item, -1) for item in value)
    return tuple(m for m in mentions if m is not None and m >= 0)


# =============================================================================
# MESSAGE EXTRACTION
# =============================================================================

def _parse_cast_add(
    message: Any,
    event_id: int,
    block_number: Optional[int],
    source_type: str,
    timestamp_seconds: int
) -> Optional[UpsertAction]:
    message = _as_dict(message)
    data = message.get('data')
    if not isinstance(data, dict) or data.get('type') != CAST_ADD_MESSAGE:
        return None

    cast_hash = normalize_hash(message.get('hash'))
    if not cast_hash:
        return None

    body = _as_dict(data.get('castAddBody'))
    parent = _as_dict(body.get('parentCastId'))
    parent_hash = normalize_hash(parent.get('hash'))

    return UpsertAction(
        hash=cast_hash,
        owner_id=as_number(data.get('fid'), 0),
        created_at_seconds=as_number(data.get('timestamp'), timestamp_seconds),
        text=normalize_text(body.get('text')),
        mentions=normalize_mentions(body.get('mentions')),
        parent_owner_id=as_number(parent.get('fid'), 0) if parent_hash else None,
        parent_hash=parent_hash,
        source_type=source_type,
        event_id=event_id,
        block_number=block_number
    )


def _parse_cast_remove(
    message: Any,
    event_id: int,
    block_number: Optional[int],
    source_type: str,
    timestamp_seconds: int
) -> Optional[DeleteAction]:
    data = _as_dict(message).get('data')
    if not isinstance(data, dict) or data.get('type') != CAST_REMOVE_MESSAGE:
        return None

    target_hash = normalize_hash(_as_dict(data.get('castRemoveBody')).get('targetHash'))
    if not target_hash:
        return None

    return DeleteAction(
        hash=target_hash,
        event_id=event_id,
        source_type=source_type,
        event_timestamp_seconds=timestamp_seconds,
        block_number=block_number
    )


def parse_message(
    message: Any,
    event_id: int,
    block_number: Optional[int],
    source_type: str,
    timestamp_seconds: int
) -> List[Action]:
    """Derive 0-2 actions from one embedded message."""
    actions: List[Action] = []

    added = _parse_cast_add(message, event_id, block_number, source_type, timestamp_seconds)
    if added:
        actions.append(added)

    removed = _parse_cast_remove(message, event_id, block_number, source_type, timestamp_seconds)
    if removed:
        actions.append(removed)

    return actions


# =============================================================================
# PAGE PARSING
# =============================================================================

def parse_page(raw_json: str, now_seconds: Optional[int] = None) -> EventsPage:
    """
    Parse one page of the events endpoint.

    Args:
        raw_json: Response body text
        now_seconds: Fallback event timestamp (defaults to wall clock)

    Raises:
        MalformedPayload: body is not valid JSON
    """
    try:
        payload = json.loads(raw_json)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(f"Events response was not valid JSON: {e}") from e

    if now_seconds is None:
        now_seconds = int(time.time())

    envelope = _as_dict(payload)
    incoming = envelope.get('events')
    if not isinstance(incoming, list):
        incoming = []

    actions: List[Action] = []
    max_event_id = 0

    for event in incoming:
        if not isinstance(event, dict):
            continue
        if event.get('type') != MERGE_MESSAGE_EVENT:
            continue

        event_id = as_big_int(event.get('id'), 0)
        block_number = as_number(event.get('blockNumber'), None)
        source_type = event['type']

        body = _as_dict(event.get('mergeMessageBody'))
        message = body.get('message')
        timestamp_seconds = as_number(
            _as_dict(_as_dict(message).get('data')).get('timestamp'),
            now_seconds
        )

        actions.extend(parse_message(message, event_id, block_number, source_type, timestamp_seconds))

        deleted_messages = body.get('deletedMessages')
        if isinstance(deleted_messages, list):
            for deleted in deleted_messages:
                actions.extend(parse_message(deleted, event_id, block_number, source_type, timestamp_seconds))

        if event_id >= max_event_id:
            max_event_id = event_id

    token = as_string(envelope.get('nextPageToken')) or as_string(envelope.get('next_page_token'))
    page_token = token or None

    return EventsPage(
        actions=tuple(actions),
        received_count=len(incoming),
        cursor=Cursor(
            from_event_id=max_event_id + 1 if actions else 0,
            page_token=page_token
        ),
        # A token with zero actions is a dead end, not more data
        has_more_pages=page_token is not None and len(actions) > 0
    )


def build_events_url(
    base_url: str,
    cursor: Cursor,
    page_size: int,
    reverse: bool = False
) -> str:
    """Build the events request URL. pageToken suppresses from_event_id."""
    parts = urlsplit(base_url)

    params = [('pageSize', str(max(1, int(page_size))))]
    if reverse:
        params.append(('reverse', 'true'))

    if cursor.page_token:
        params.append(('pageToken', cursor.page_token))
    else:
        params.append(('from_event_id', str(cursor.from_event_id)))

    return urlunsplit((parts.scheme, parts.netloc, EVENTS_PATH, urlencode(params), ''))
