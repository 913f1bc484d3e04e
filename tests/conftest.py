from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from easyroute.config import get_settings
from easyroute.observability.logging import Logger
from easyroute.observability.metrics import reset_metrics


_ENV_VARS = (
    "EASYROUTE_SERVICE_NAME",
    "EASYROUTE_TRACING_ENABLED",
    "EASYROUTE_PROFILING_ENABLED",
    "EASYROUTE_LOG_BODY_LIMIT",
    "AIRBRAKE_ENABLED",
    "AIRBRAKE_PROJECT_ID",
    "AIRBRAKE_PROJECT_KEY",
)


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    reset_metrics()

    yield

    get_settings.cache_clear()
    reset_metrics()


@pytest.fixture
def client_for() -> Callable[..., Any]:
    @asynccontextmanager
    async def _client(app: Any) -> AsyncIterator[AsyncClient]:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    return _client


class RecordingLog:
    """Collects ``(level, event, fields)`` from an injected Logger."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def _at(self, level: str) -> Callable[..., None]:
        def log(event: str, **fields: Any) -> None:
            self.records.append((level, event, fields))

        return log

    def logger(self, *, info: bool = True, error: bool = True, debug: bool = True) -> Logger:
        return Logger(
            info=self._at("info") if info else None,
            error=self._at("error") if error else None,
            debug=self._at("debug") if debug else None,
        )

    def events(self, level: str) -> list[tuple[str, dict[str, Any]]]:
        return [(event, fields) for lvl, event, fields in self.records if lvl == level]


@pytest.fixture
def recording_log() -> RecordingLog:
    return RecordingLog()


class FakeReporter:
    def __init__(self) -> None:
        self.faults: list[BaseException] = []
        self.closed = False

    def notify_fault(self, exc: BaseException) -> None:
        self.faults.append(exc)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def reporters() -> list[FakeReporter]:
    return []


@pytest.fixture
def reporter_factory(reporters: list[FakeReporter]) -> Callable[[], FakeReporter]:
    def factory() -> FakeReporter:
        reporter = FakeReporter()
        reporters.append(reporter)
        return reporter

    return factory


def _make_request(
    method: str = "GET",
    path: str = "/",
    *,
    query: bytes = b"",
    headers: dict[str, str] | None = None,
    path_params: dict[str, Any] | None = None,
) -> Request:
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "server": ("test", 80),
        "client": ("10.0.0.1", 5555),
        "root_path": "",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query,
        "headers": [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in (headers or {}).items()],
        "path_params": path_params or {},
    }
    return Request(scope)


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return _make_request
