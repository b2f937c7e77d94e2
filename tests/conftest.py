# tests/conftest.py
from __future__ import annotations

import asyncio
import inspect
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest
from prometheus_client import CollectorRegistry
from starlette.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iptracker.config import Settings  # noqa: E402
from iptracker.detection import DetectionEngine  # noqa: E402
from iptracker.main import create_app  # noqa: E402
from iptracker.telemetry.metrics import make_detection_metrics  # noqa: E402


@dataclass
class StubProvider:
    """
    In-process lookup provider.

    ``result`` is returned after ``delay_s``; if ``error`` is set it is raised
    instead. ``hang=True`` never returns.
    """

    name: str = "stub"
    result: Any = None
    delay_s: float = 0.0
    error: Optional[BaseException] = None
    hang: bool = False
    calls: List[str] = field(default_factory=list)
    cancelled: bool = False

    async def lookup(self, ip: str) -> Any:
        self.calls.append(ip)
        try:
            if self.hang:
                await asyncio.Event().wait()
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def stub() -> Callable[..., StubProvider]:
    return StubProvider


@pytest.fixture()
def metrics():
    return make_detection_metrics(CollectorRegistry())


@pytest.fixture()
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    for name in ("GEO_PROVIDERS", "TOR_LOOKUP_URL", "TOR_ISP_PATTERNS", "TOR_AS_PATTERNS"):
        monkeypatch.delenv(name, raising=False)
    return Settings(_env_file=None, LOG_JSON=False)


@pytest.fixture()
def engine(metrics) -> DetectionEngine:
    # No providers: every lookup is absent.
    return DetectionEngine(metrics=metrics)


@pytest.fixture()
def app(settings, engine):
    # Function scope: new app for each test.
    return create_app(settings=settings, engine=engine)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None
