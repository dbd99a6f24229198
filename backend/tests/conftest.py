from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from fakes import FakeRecognition, FakeRemoteStore, FakeSynthesis  # noqa: E402
from persistence import LocalCache, PersistenceGateway, SQLiteCacheDB  # noqa: E402


@pytest.fixture
def cache(tmp_path) -> LocalCache:
    return LocalCache(SQLiteCacheDB(str(tmp_path / "lifeguard-test.sqlite")))


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def gateway(remote, cache) -> PersistenceGateway:
    return PersistenceGateway(remote=remote, cache=cache)


@pytest.fixture
def recognition() -> FakeRecognition:
    return FakeRecognition()


@pytest.fixture
def synthesis() -> FakeSynthesis:
    return FakeSynthesis()


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    monkeypatch.setenv("LIFEGUARD_DB_PATH", str(tmp_path / "lifeguard-api.sqlite"))
    monkeypatch.setenv("ALLOW_ANON", "false")
    monkeypatch.setenv("GEMINI_API_KEY", "")
    monkeypatch.setenv("API_KEY", "")
    monkeypatch.setenv("LIFEGUARD_REMOTE_STORE_URL", "")

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _make(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {user_id}"}

    return _make
