"""Fixtures used by pytest."""

import datetime
import pathlib
from typing import Any, Callable, List, Optional

import polars as pl
import pytest

from sleepwatch.core import exceptions, models
from sleepwatch.io.stores import stores
from sleepwatch.service import motion_source

NIGHT_START = datetime.datetime(2024, 5, 2, 23, 0)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime.datetime) -> None:
        """Start the clock at the given time."""
        self.now = start

    def __call__(self) -> datetime.datetime:
        """Return the current fake time."""
        return self.now

    def advance(self, **kwargs: float) -> datetime.datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self.now += datetime.timedelta(**kwargs)
        return self.now


class FakeSubscription(motion_source.Subscription):
    """Subscription that unregisters its callback from a FakeMotionSource."""

    def __init__(
        self, source: "FakeMotionSource", callback: motion_source.MotionCallback
    ) -> None:
        """Remember the source and the callback."""
        self.source = source
        self.callback = callback

    def remove(self) -> None:
        """Stop delivering events to the callback."""
        if self.callback in self.source.callbacks:
            self.source.callbacks.remove(self.callback)


class FakeMotionSource(motion_source.MotionSource):
    """Motion source whose events are pushed by the test."""

    def __init__(self, granted: bool = True) -> None:
        """Initialize the source."""
        self.granted = granted
        self.callbacks: List[motion_source.MotionCallback] = []
        self.permission_requests = 0
        self.subscribe_calls = 0

    async def request_permission(self) -> bool:
        """Answer with the configured permission."""
        self.permission_requests += 1
        return self.granted

    def subscribe(
        self,
        callback: motion_source.MotionCallback,
        interval: datetime.timedelta,
    ) -> motion_source.Subscription:
        """Register the callback."""
        self.subscribe_calls += 1
        self.callbacks.append(callback)
        return FakeSubscription(self, callback)

    def emit(self, payload: motion_source.MotionPayload) -> None:
        """Deliver an event to every subscriber."""
        for callback in list(self.callbacks):
            callback(payload)


class FlakyStore(stores.InMemorySessionStore):
    """In-memory store whose writes fail while `failing` is set."""

    def __init__(self) -> None:
        """Initialize a store that accepts writes."""
        super().__init__()
        self.failing = False

    async def _dump(self, document: stores.StoreDocument) -> None:
        if self.failing:
            raise exceptions.PersistenceError("Store unavailable.")


@pytest.fixture
def clock() -> FakeClock:
    """A clock starting at 23:00, the start of the night."""
    return FakeClock(NIGHT_START)


@pytest.fixture
def fake_source() -> FakeMotionSource:
    """A motion source granting permission."""
    return FakeMotionSource()


@pytest.fixture
def flaky_store() -> FlakyStore:
    """An in-memory store that can be made to fail."""
    return FlakyStore()


@pytest.fixture
def make_sample() -> Callable[..., models.MotionSample]:
    """Factory for motion samples."""

    def _make_sample(
        timestamp: datetime.datetime,
        x: float = 0.0,
        y: float = 0.0,
        z: float = 0.0,
    ) -> models.MotionSample:
        return models.MotionSample(
            timestamp=timestamp, acceleration=models.Vector3(x=x, y=y, z=z)
        )

    return _make_sample


@pytest.fixture
def make_finished_session() -> Callable[..., models.SleepSession]:
    """Factory for finalized sessions."""

    def _make_finished_session(
        bedtime: datetime.datetime,
        hours: float = 8,
        quality: int = 90,
        is_manual: bool = False,
        wake_time: Optional[datetime.datetime] = None,
    ) -> models.SleepSession:
        session = models.SleepSession(
            bedtime=bedtime, is_manual=is_manual, confidence=0.9
        )
        return session.finalize(
            wake_time or bedtime + datetime.timedelta(hours=hours), quality
        )

    return _make_finished_session


@pytest.fixture
def night_recording(tmp_path: pathlib.Path) -> pathlib.Path:
    """A csv recording of one still night followed by movement at 07:30.

    One sample per minute from 23:00 to 07:40; every sample from 07:30 on has an
    acceleration magnitude of 1.
    """
    wake_up = datetime.datetime(2024, 5, 3, 7, 30)
    times: List[Any] = [
        NIGHT_START + datetime.timedelta(minutes=minute) for minute in range(521)
    ]
    recording = pl.DataFrame(
        {
            "time": times,
            "x": [1.0 if time >= wake_up else 0.0 for time in times],
            "y": [0.0] * len(times),
            "z": [0.0] * len(times),
        }
    )
    path = tmp_path / "night.csv"
    recording.write_csv(path)
    return path
