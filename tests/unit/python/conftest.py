"""Shared fixtures for Bandruption Python unit tests."""

import json
import sys
from pathlib import Path

import pytest

# Add services/ to sys.path so `from lib.config import cfg` works
SERVICES_DIR = Path(__file__).resolve().parents[3] / "services"
sys.path.insert(0, str(SERVICES_DIR))

from lib.auth_signal import AuthSignal  # noqa: E402
from lib.session_store import SessionStore  # noqa: E402
from sources.spotify.host import PopupHandle, WindowHost  # noqa: E402

APP_ORIGIN = "http://localhost:3000"
AUTH_URL = "https://provider/auth?client=x"


@pytest.fixture(autouse=True)
def _reset_config_cache(tmp_path, monkeypatch):
    """Reset the config cache and keep tests away from real config files."""
    import lib.config as config_mod
    config_mod._config = None
    monkeypatch.setattr(config_mod, "_SEARCH_PATHS", [str(tmp_path / "no-config.json")])
    monkeypatch.delenv(config_mod.ENV_PATH, raising=False)
    yield
    config_mod._config = None


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Provide a temp config file path and patch _SEARCH_PATHS to use it."""
    import lib.config as config_mod

    path = tmp_path / "config.json"
    monkeypatch.setattr(config_mod, "_SEARCH_PATHS", [str(path)])
    return path


@pytest.fixture
def write_config(config_file):
    """Write a dict as JSON to the temp config file.

    Usage:
        def test_something(write_config):
            write_config({"app": {"port": 9000}})
            assert cfg("app", "port") == 9000
    """
    import lib.config as config_mod

    def _write(data: dict):
        config_file.write_text(json.dumps(data))
        config_mod._config = None  # force re-read
        return config_file

    return _write


@pytest.fixture
def mock_config(monkeypatch):
    """Directly set the config dict without file I/O."""
    import lib.config as config_mod

    def _mock(data: dict):
        monkeypatch.setattr(config_mod, "_config", data)

    return _mock


# --- Fakes for the popup environment ---


class FakePopup(PopupHandle):
    def __init__(self, url):
        self.url = url
        self._closed = False
        self.close_calls = 0

    @property
    def closed(self):
        return self._closed

    def close(self):
        self.close_calls += 1
        self._closed = True

    def user_closes(self):
        self._closed = True


class FakeHost(WindowHost):
    """WindowHost that records popups and listener bookkeeping."""

    def __init__(self, origin=APP_ORIGIN, block=False):
        super().__init__(origin)
        self.block = block
        self.opened = []
        self.open_args = []
        self.listeners_at_open = []
        self.closed_at_open = []
        self.added = 0
        self.removed = 0

    def open(self, url, name, features):
        self.open_args.append((url, name, features))
        self.listeners_at_open.append(self.listener_count)
        self.closed_at_open.append([p.closed for p in self.opened])
        if self.block:
            return None
        popup = FakePopup(url)
        self.opened.append(popup)
        return popup

    def add_message_listener(self, listener):
        self.added += 1
        super().add_message_listener(listener)

    def remove_message_listener(self, listener):
        self.removed += 1
        super().remove_message_listener(listener)

    @property
    def popup(self):
        return self.opened[-1] if self.opened else None


class FakeApi:
    """Stands in for BandruptionApi.  Set attributes to script responses."""

    def __init__(self, auth_url=AUTH_URL):
        self.auth_url = auth_url
        self.auth_url_error = None
        self.auth_url_calls = 0
        self.tokens = None
        self.tokens_error = None
        self.token_calls = []
        self.link_status = False
        self.link_status_calls = 0

    async def get_auth_url(self):
        self.auth_url_calls += 1
        if self.auth_url_error is not None:
            raise self.auth_url_error
        return self.auth_url

    async def get_tokens(self, umbrella_token):
        self.token_calls.append(umbrella_token)
        if self.tokens_error is not None:
            raise self.tokens_error
        return self.tokens

    async def get_link_status(self, umbrella_token):
        self.link_status_calls += 1
        return self.link_status


class FakeResponse:
    def __init__(self, data=None):
        self.data = data or []


class FakeQuery:
    def __init__(self, table):
        self.table = table
        self.op = None
        self.payload = None
        self.filters = {}

    def upsert(self, record):
        self.op, self.payload = "upsert", record
        return self

    def select(self, columns):
        self.op, self.payload = "select", columns
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def limit(self, n):
        return self

    def execute(self):
        return self.table.execute(self)


class FakeTable:
    def __init__(self):
        self.rows = {}
        self.fail = None
        self.calls = []

    def execute(self, query):
        self.calls.append((query.op, query.payload, dict(query.filters)))
        if self.fail is not None:
            raise self.fail
        if query.op == "upsert":
            self.rows[query.payload["user_id"]] = dict(query.payload)
            return FakeResponse([query.payload])
        if query.op == "select":
            row = self.rows.get(query.filters.get("user_id"))
            return FakeResponse([row] if row else [])
        if query.op == "delete":
            self.rows.pop(query.filters.get("user_id"), None)
            return FakeResponse([])
        raise AssertionError(f"unexpected op {query.op}")


class FakeSupabase:
    def __init__(self):
        self.tables = {}

    def table(self, name):
        return FakeQuery(self.tables.setdefault(name, FakeTable()))


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def store(tmp_path):
    return SessionStore(str(tmp_path / "spotify_session.json"))


@pytest.fixture
def signal():
    return AuthSignal()


@pytest.fixture
def supabase():
    return FakeSupabase()


def success_message(**overrides):
    message = {
        "type": "success",
        "userId": "u1",
        "accessToken": "tok",
        "userData": {"id": "u1", "product": "premium"},
    }
    message.update(overrides)
    return message
