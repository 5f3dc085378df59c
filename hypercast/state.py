"""
Poller State File

A single JSON object holding the resumable cursor:

    {"fromEventId": "123", "pageToken": null}

Unreadable or malformed state means "start from zero", never a crash.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional, Union
import json
import logging
import os

from .contracts import Cursor, PollerState


logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = '.hypercast-state.json'


def parse_poller_state(raw: Optional[str]) -> PollerState:
    """Decode state file text; anything unusable yields the zero state."""
    if not raw:
        return PollerState()

    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("Poller state is not valid JSON; starting from zero")
        return PollerState()

    if not isinstance(parsed, dict):
        return PollerState()

    from_event_id = parsed.get('fromEventId')
    if not isinstance(from_event_id, str) or not from_event_id.strip():
        return PollerState()

    page_token = parsed.get('pageToken')
    return PollerState(
        from_event_id=from_event_id,
        page_token=page_token if isinstance(page_token, str) else None
    )


def cursor_from_state(state: PollerState) -> Cursor:
    try:
        from_event_id = int(state.from_event_id.strip())
    except (AttributeError, ValueError):
        from_event_id = 0

    return Cursor(
        from_event_id=max(0, from_event_id),
        page_token=state.page_token or None
    )


def state_from_cursor(cursor: Cursor) -> PollerState:
    return PollerState(
        from_event_id=str(cursor.from_event_id),
        page_token=cursor.page_token
    )


def read_state(path: Union[str, Path]) -> PollerState:
    """Read the state file; a missing or unreadable file is the zero state."""
    try:
        raw = Path(path).read_text(encoding='utf-8')
    except OSError:
        return PollerState()
    return parse_poller_state(raw)


def write_state(path: Union[str, Path], state: PollerState) -> None:
    """Overwrite the state file atomically."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + '.tmp')
    tmp.write_text(json.dumps(state.to_dict(), indent=2) + '\n', encoding='utf-8')
    os.replace(tmp, target)
