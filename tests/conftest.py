import pytest
import requests

from autoredeem.client import ShiftClient
from autoredeem.config import Config
from autoredeem.models import Session
from autoredeem.storage import MemoryStore, RedemptionLedger

from .helpers import FakeClock


@pytest.fixture
def config(tmp_path, monkeypatch):
    for key in ("ALLOWED_TITLES", "ALLOWED_SERVICES", "SHIFT_EMAIL", "SHIFT_PASSWORD", "DEBUG", "VERBOSE"):
        monkeypatch.delenv(key, raising=False)
    cfg = Config(env_file=None)
    cfg.base_url = "https://shift.example.test"
    cfg.feed_url = "https://feed.example.test/shift-codes.json"
    cfg.db_path = tmp_path / "autoredeem.db"
    cfg.debug_dir = tmp_path / "debug"
    cfg.email = "vault@hunter.test"
    cfg.password = "claptrap"
    return cfg


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ledger(store):
    return RedemptionLedger(store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def http():
    return requests.Session()


@pytest.fixture
def client(config, http, clock):
    return ShiftClient(config, http=http, sleep=clock.sleep, clock=clock)


@pytest.fixture
def authed_client(client):
    client.set_session(Session.create({"_session_id": "abc"}))
    return client
