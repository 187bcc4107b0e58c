"""Shared fixtures: temporary database, history repository, and mock HTTP transports."""

from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest
import pytest_asyncio

from lyra.config import ClientConfig, RelayConfig
from lyra.storage.database import Database
from lyra.storage.history_repo import HistoryRepository

WEBHOOK_URL = "https://automation.test/webhook/lyra"
RELAY_URL = "http://relay.test/"


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(webhook_url=WEBHOOK_URL, auth_token="s3cret")


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(relay_url=RELAY_URL, api_key="anon-key")


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "lyra.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def history(db) -> HistoryRepository:
    return HistoryRepository(db)
