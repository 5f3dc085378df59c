"""
Runtime Configuration

Loads poller and feed settings from environment variables.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
from urllib.parse import urlsplit
import os

from .errors import ConfigError
from .state import DEFAULT_STATE_FILE


DEFAULT_HUB_URL = 'http://127.0.0.1:3381'
DEFAULT_ALLOWED_HOSTS = ('localhost', '127.0.0.1')
DEFAULT_DB_FILE = '.hypercast.db'
_TRUE_VALUES = ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class PollerConfig:
    """Settings for the cursor persistence loop."""
    hub_url: str
    poll_interval_ms: int
    timeout_ms: int
    max_pages_per_poll: int
    page_size: int
    reverse: bool
    poller_name: str
    state_path: str
    db_path: str
    allow_untrusted: bool
    allowed_hosts: Tuple[str, ...]


@dataclass(frozen=True)
class FeedConfig:
    """Settings for the in-memory feed view."""
    max_visible: int = 250


@dataclass(frozen=True)
class AppConfig:
    poller: PollerConfig
    feed: FeedConfig


def parse_int(value: Optional[str], fallback: int) -> int:
    """Positive integer or fallback."""
    if not value:
        return fallback
    try:
        parsed = int(value.strip(), 10)
    except ValueError:
        return fallback
    return parsed if parsed > 0 else fallback


def parse_bool(value: Optional[str], fallback: bool) -> bool:
    if value is None:
        return fallback
    return value.strip().lower() in _TRUE_VALUES


def parse_allowed_hosts(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return DEFAULT_ALLOWED_HOSTS
    return tuple(
        host.strip().lower() for host in value.split(',') if host.strip()
    )


def validate_hub_url(raw_url: str, allow_untrusted: bool, allowed_hosts: Tuple[str, ...]) -> str:
    """
    Check scheme and host allowlist; return the URL origin.

    Raises:
        ConfigError: unsupported scheme, or host not allowed without opt-in
    """
    parts = urlsplit(raw_url.strip())
    if parts.scheme not in ('http', 'https'):
        raise ConfigError(f"Hub endpoint must use http or https. Received: {parts.scheme or raw_url!r}")

    host = (parts.hostname or '').lower()
    if not host:
        raise ConfigError(f"Hub endpoint has no host: {raw_url!r}")

    if not allow_untrusted and host not in allowed_hosts and '*' not in allowed_hosts:
        raise ConfigError(
            f"Hub endpoint host '{host}' is not in allowlist. "
            "Set HYPERSNAP_ALLOW_UNTRUSTED=true or update HYPERSNAP_ALLOWED_HOSTS."
        )

    return f"{parts.scheme}://{parts.netloc.lower()}"


def load_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build AppConfig from the environment (os.environ by default)."""
    env = os.environ if environ is None else environ

    allow_untrusted = parse_bool(env.get('HYPERSNAP_ALLOW_UNTRUSTED'), False)
    allowed_hosts = parse_allowed_hosts(env.get('HYPERSNAP_ALLOWED_HOSTS'))
    hub_url = validate_hub_url(
        env.get('HYPERSNAP_HTTP_URL') or DEFAULT_HUB_URL,
        allow_untrusted,
        allowed_hosts
    )

    poller = PollerConfig(
        hub_url=hub_url,
        poll_interval_ms=parse_int(env.get('HYPERSNAP_POLL_INTERVAL_MS'), 30 * 60 * 1000),
        timeout_ms=parse_int(env.get('HYPERSNAP_REQUEST_TIMEOUT_MS'), 12_000),
        max_pages_per_poll=parse_int(env.get('HYPERSNAP_MAX_PAGES_PER_POLL'), 4),
        page_size=parse_int(env.get('HYPERSNAP_PAGE_SIZE'), 100),
        reverse=parse_bool(env.get('HYPERSNAP_EVENT_LOOKBACK'), False),
        poller_name=env.get('HYPERCAST_POLLER_NAME') or 'local-poller',
        state_path=env.get('HYPERSNAP_STATE_PATH') or DEFAULT_STATE_FILE,
        db_path=env.get('HYPERCAST_DB_PATH') or DEFAULT_DB_FILE,
        allow_untrusted=allow_untrusted,
        allowed_hosts=allowed_hosts
    )

    feed = FeedConfig(
        max_visible=parse_int(env.get('HYPERCAST_MAX_VISIBLE'), 250)
    )

    return AppConfig(poller=poller, feed=feed)
