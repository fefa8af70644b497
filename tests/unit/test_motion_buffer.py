"""Test the motion buffer."""

import datetime
from typing import Callable

import pytest

from sleepwatch.core import models
from sleepwatch.processing import motion_buffer

START = datetime.datetime(2024, 5, 2, 23, 0)

SampleFactory = Callable[..., models.MotionSample]


def _at(second: int) -> datetime.datetime:
    return START + datetime.timedelta(seconds=second)


def test_capacity_never_exceeded(make_sample: SampleFactory) -> None:
    """Test the buffer never holds more than its capacity."""
    buffer = motion_buffer.MotionBuffer(capacity=300)

    for second in range(1000):
        buffer.record(make_sample(_at(second)))
        assert len(buffer) <= 300

    assert len(buffer) == 300


def test_eviction_is_fifo(make_sample: SampleFactory) -> None:
    """Test the oldest samples are evicted first."""
    buffer = motion_buffer.MotionBuffer(capacity=5)

    for second in range(10):
        buffer.record(make_sample(_at(second)))

    assert [sample.timestamp for sample in buffer] == [_at(s) for s in range(5, 10)]


def test_from_config() -> None:
    """Test the buffer covers the retention window of the config."""
    detection_config = models.DetectionConfig(
        retention_window=datetime.timedelta(minutes=10),
        sample_interval=datetime.timedelta(seconds=2),
        motion_threshold=0.2,
        recent_window_samples=30,
    )

    buffer = motion_buffer.MotionBuffer.from_config(detection_config)

    assert buffer.capacity == 300
    assert buffer.motion_threshold == 0.2
    assert buffer.recent_window_samples == 30


@pytest.mark.parametrize(
    "kwargs",
    [{"capacity": 0}, {"motion_threshold": 0}, {"recent_window_samples": -1}],
)
def test_invalid_arguments(kwargs: dict) -> None:
    """Test non positive sizes and thresholds are rejected."""
    with pytest.raises(ValueError):
        motion_buffer.MotionBuffer(**kwargs)


def test_recent_activity_level_empty() -> None:
    """Test an empty buffer has no activity."""
    assert motion_buffer.MotionBuffer().recent_activity_level() == 0.0


def test_recent_activity_level_uses_newest_window(make_sample: SampleFactory) -> None:
    """Test only the newest 60 samples are averaged."""
    buffer = motion_buffer.MotionBuffer()
    for second in range(240):
        buffer.record(make_sample(_at(second), x=1.0))
    for second in range(240, 300):
        buffer.record(make_sample(_at(second)))

    assert buffer.recent_activity_level() == 0.0

    buffer.record(make_sample(_at(300), x=0.06))

    assert buffer.recent_activity_level() == pytest.approx(0.01)


def test_recent_activity_level_short_buffer(make_sample: SampleFactory) -> None:
    """Test fewer samples than the window are all averaged."""
    buffer = motion_buffer.MotionBuffer()
    buffer.record(make_sample(_at(0), x=0.05))
    buffer.record(make_sample(_at(1)))

    assert buffer.recent_activity_level() == pytest.approx(0.25)


def test_recent_activity_level_clamped(make_sample: SampleFactory) -> None:
    """Test strong motion saturates at one."""
    buffer = motion_buffer.MotionBuffer()
    buffer.record(make_sample(_at(0), x=3.0, y=4.0))

    assert buffer.recent_activity_level() == 1.0


@pytest.mark.parametrize(
    "acceleration, expected",
    [((0.2, 0.0, 0.0), True), ((0.1, 0.0, 0.0), False), ((0.03, 0.04, 0.0), False)],
)
def test_has_significant_motion(
    make_sample: SampleFactory, acceleration: tuple, expected: bool
) -> None:
    """Test significance is strictly above the motion threshold."""
    buffer = motion_buffer.MotionBuffer()
    x, y, z = acceleration

    assert buffer.has_significant_motion(make_sample(_at(0), x=x, y=y, z=z)) is expected


def test_clear(make_sample: SampleFactory) -> None:
    """Test clearing drops every sample."""
    buffer = motion_buffer.MotionBuffer()
    buffer.record(make_sample(_at(0)))

    buffer.clear()

    assert len(buffer) == 0
