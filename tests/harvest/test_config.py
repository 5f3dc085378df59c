"""
Configuration Tests
"""

import pytest

from hypercast.config import (
    DEFAULT_ALLOWED_HOSTS, load_config, parse_allowed_hosts, parse_bool,
    parse_int, validate_hub_url
)
from hypercast.errors import ConfigError


class TestParsers:

    @pytest.mark.parametrize("raw,expected", [
        (None, 7),
        ("", 7),
        ("12", 12),
        (" 12 ", 12),
        ("0", 7),
        ("-4", 7),
        ("abc", 7),
        ("1.5", 7),
    ])
    def test_parse_int(self, raw, expected):
        assert parse_int(raw, 7) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("true", True),
        ("TRUE", True),
        ("1", True),
        ("yes", True),
        ("false", False),
        ("0", False),
        ("", False),
    ])
    def test_parse_bool(self, raw, expected):
        assert parse_bool(raw, False) is expected

    def test_parse_bool_fallback(self):
        assert parse_bool(None, True) is True

    def test_allowed_hosts(self):
        assert parse_allowed_hosts(None) == DEFAULT_ALLOWED_HOSTS
        assert parse_allowed_hosts(" Hub.Example , ,other ") == ("hub.example", "other")


class TestValidateHubUrl:

    def test_returns_origin(self):
        assert validate_hub_url("http://LOCALHOST:3381/some/path", False, DEFAULT_ALLOWED_HOSTS) == "http://localhost:3381"

    def test_rejects_scheme(self):
        with pytest.raises(ConfigError):
            validate_hub_url("ftp://localhost", True, DEFAULT_ALLOWED_HOSTS)

    def test_rejects_missing_host(self):
        with pytest.raises(ConfigError):
            validate_hub_url("http://", True, DEFAULT_ALLOWED_HOSTS)

    def test_untrusted_host_needs_opt_in(self):
        with pytest.raises(ConfigError) as excinfo:
            validate_hub_url("https://hub.example", False, DEFAULT_ALLOWED_HOSTS)
        assert "HYPERSNAP_ALLOW_UNTRUSTED" in str(excinfo.value)

        assert validate_hub_url("https://hub.example", True, DEFAULT_ALLOWED_HOSTS) == "https://hub.example"

    def test_wildcard_allows_any_host(self):
        assert validate_hub_url("https://hub.example", False, ("*",)) == "https://hub.example"


class TestLoadConfig:

    def test_defaults(self):
        config = load_config({})
        poller = config.poller

        assert poller.hub_url == "http://127.0.0.1:3381"
        assert poller.poll_interval_ms == 1_800_000
        assert poller.timeout_ms == 12_000
        assert poller.max_pages_per_poll == 4
        assert poller.page_size == 100
        assert poller.reverse is False
        assert poller.poller_name == "local-poller"
        assert poller.state_path == ".hypercast-state.json"
        assert poller.db_path == ".hypercast.db"
        assert config.feed.max_visible == 250

    def test_overrides(self):
        config = load_config({
            "HYPERSNAP_HTTP_URL": "https://hub.example:2281",
            "HYPERSNAP_ALLOWED_HOSTS": "hub.example",
            "HYPERSNAP_POLL_INTERVAL_MS": "60000",
            "HYPERSNAP_MAX_PAGES_PER_POLL": "9",
            "HYPERSNAP_PAGE_SIZE": "bad",
            "HYPERSNAP_EVENT_LOOKBACK": "true",
            "HYPERCAST_POLLER_NAME": "ci",
            "HYPERSNAP_STATE_PATH": "/tmp/state.json",
            "HYPERCAST_MAX_VISIBLE": "40",
        })

        assert config.poller.hub_url == "https://hub.example:2281"
        assert config.poller.poll_interval_ms == 60_000
        assert config.poller.max_pages_per_poll == 9
        assert config.poller.page_size == 100
        assert config.poller.reverse is True
        assert config.poller.poller_name == "ci"
        assert config.poller.state_path == "/tmp/state.json"
        assert config.feed.max_visible == 40

    def test_untrusted_host_rejected(self):
        with pytest.raises(ConfigError):
            load_config({"HYPERSNAP_HTTP_URL": "https://hub.example"})
