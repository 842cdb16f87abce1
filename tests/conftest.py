"""Shared fakes: HTTP session, clock/sleep, alarm, deferred worker, road source."""

import json
from concurrent.futures import Future
from typing import Any, Callable, List, Optional

import pytest

from gravel.core.models import FetchState, GeoPoint, RoadGeometry, ViewportBounds
from gravel.infra.workers import _complete


# ────────────────────────────────────────────────────────────────────────────────
# HTTP
# ────────────────────────────────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, headers: Optional[dict] = None):
        self.status_code = status_code
        if body is None:
            body = {"elements": []}
        self.text = body if isinstance(body, str) else json.dumps(body)
        self.content = self.text.encode("utf-8")
        self.headers = headers or {}


class FakeSession:
    """Replays queued responses; an Exception instance in the queue is raised."""

    def __init__(self, *outcomes: Any):
        self.outcomes: List[Any] = list(outcomes)
        self.calls: List[dict] = []
        self.closed = False

    def queue(self, *outcomes: Any) -> None:
        self.outcomes.extend(outcomes)

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if not self.outcomes:
            raise AssertionError("unexpected HTTP call")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def overpass_body(*ways) -> dict:
    """ways: sequences of (lat, lon) pairs."""
    return {
        "elements": [
            {"type": "way", "id": i, "geometry": [{"lat": la, "lon": lo} for la, lo in way]}
            for i, way in enumerate(ways, start=1)
        ]
    }


# ────────────────────────────────────────────────────────────────────────────────
# Time
# ────────────────────────────────────────────────────────────────────────────────

class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Records requested delays and moves the clock forward by them."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


class ManualAlarm:
    """Alarm that only fires when the test says so."""

    def __init__(self):
        self.callback: Optional[Callable[[], None]] = None
        self.delay: Optional[float] = None
        self.schedules = 0
        self.cancels = 0

    @property
    def pending(self) -> bool:
        return self.callback is not None

    def schedule(self, delay_s, callback):
        self.schedules += 1
        self.delay = delay_s
        self.callback = callback

    def cancel(self):
        self.cancels += 1
        self.callback = None

    def fire(self) -> None:
        cb, self.callback = self.callback, None
        assert cb is not None, "alarm not scheduled"
        cb()


# ────────────────────────────────────────────────────────────────────────────────
# Workers
# ────────────────────────────────────────────────────────────────────────────────

class DeferredSpawn:
    """Spawner whose tasks run only when run_next() is called."""

    def __init__(self):
        self.tasks: List[tuple] = []

    def __call__(self, fn, *args, **kwargs) -> Future:
        fut: Future = Future()
        self.tasks.append((fut, fn, args, kwargs))
        return fut

    def run_next(self) -> Future:
        fut, fn, args, kwargs = self.tasks.pop(0)
        _complete(fut, fn, args, kwargs)
        return fut


# ────────────────────────────────────────────────────────────────────────────────
# Road source
# ────────────────────────────────────────────────────────────────────────────────

def geometry_for(bounds: ViewportBounds) -> RoadGeometry:
    line = (GeoPoint(bounds.south, bounds.west), GeoPoint(bounds.north, bounds.east))
    return RoadGeometry((line,), bounds)


class FakeRoadSource:
    """fetch() answers from a queue (RoadGeometry or Exception), else geometry_for(bounds)."""

    def __init__(self, *outcomes: Any):
        self.outcomes: List[Any] = list(outcomes)
        self.fetched: List[ViewportBounds] = []
        self.state = FetchState.idle()

    def fetch(self, bounds: ViewportBounds) -> RoadGeometry:
        self.fetched.append(bounds)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return geometry_for(bounds)


# ────────────────────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper(clock):
    return SleepRecorder(clock)


@pytest.fixture
def alarm():
    return ManualAlarm()


@pytest.fixture
def deferred():
    return DeferredSpawn()


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch):
    for name in ("GRAVEL_OVERPASS_URL", "GRAVEL_APP_VERSION", "GRAVEL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
