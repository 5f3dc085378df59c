"""
Poller CLI Tests
"""

import pytest

from hypercast import cli
from hypercast.contracts import CycleSummary


class StubPoller:
    instances = []

    def __init__(self, config, sink, max_pages=None, timeout_ms=None):
        self.config = config
        self.max_pages = max_pages
        self.timeout_ms = timeout_ms
        StubPoller.instances.append(self)

    async def run_cycle(self, label):
        return CycleSummary(applied=1, cursor=5)


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("HYPERSNAP_HTTP_URL", "http://127.0.0.1:3381")
    monkeypatch.setenv("HYPERCAST_DB_PATH", str(tmp_path / "casts.db"))
    monkeypatch.setenv("HYPERSNAP_STATE_PATH", str(tmp_path / "state.json"))
    StubPoller.instances = []
    return tmp_path


class TestParser:

    def test_flags(self):
        args = cli.build_parser().parse_args(["--once", "--max-pages", "8", "--timeout-ms", "20000"])
        assert args.once is True
        assert args.max_pages == 8
        assert args.timeout_ms == 20000

    @pytest.mark.parametrize("value", ["0", "-1", "many"])
    def test_rejects_non_positive(self, value):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--max-pages", value])


class TestMain:

    def test_once_runs_single_cycle(self, env, monkeypatch):
        monkeypatch.setattr(cli, "CursorPoller", StubPoller)

        assert cli.main(["--once", "--max-pages", "2"]) == 0

        poller = StubPoller.instances[0]
        assert poller.max_pages == 2
        assert poller.config.db_path == str(env / "casts.db")
        assert (env / "casts.db").exists()

    def test_untrusted_host_exits_with_config_error(self, env, monkeypatch):
        monkeypatch.setenv("HYPERSNAP_HTTP_URL", "https://hub.example")

        assert cli.main(["--once"]) == 2
        assert StubPoller.instances == []
