from __future__ import annotations

import random
from collections.abc import AsyncIterator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from api_service.config import Settings, get_settings
from api_service.db.simulated import SimulatedDatabase
from api_service.main import create_app
from api_service.observability.metrics import ServiceMetrics


class ScriptedRandom(random.Random):
    """Returns the given values in order, then repeats the last one."""

    def __init__(self, *values: float) -> None:
        super().__init__()
        self._values = list(values)

    def random(self) -> float:
        if len(self._values) > 1:
            return self._values.pop(0)
        return self._values[0]


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


FAST = 0.0  # latency draw below 0.5 -> 100 ms
SLOW = 0.9  # latency draw at/above 0.5 -> 3000 ms
SUCCEED = 0.5  # failure draw at/above 0.2
FAIL = 0.1  # failure draw below 0.2


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOKI_URL", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def metrics() -> ServiceMetrics:
    return ServiceMetrics()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_app(metrics: ServiceMetrics):
    def _make(
        latency_draw: float = FAST,
        failure_draw: float | random.Random = SUCCEED,
        sleep=None,
    ) -> FastAPI:
        failure_rng = failure_draw if isinstance(failure_draw, random.Random) else ScriptedRandom(failure_draw)
        return create_app(
            settings=Settings(),
            metrics=metrics,
            database=SimulatedDatabase(rng=ScriptedRandom(latency_draw), sleep=sleep),
            failure_rng=failure_rng,
        )

    return _make


@pytest.fixture
def client_for():
    def _client(app: FastAPI) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return _client


@pytest.fixture
async def api_client(make_app, fake_sleep) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=make_app(sleep=fake_sleep))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
