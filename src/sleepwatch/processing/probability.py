"""Heuristic sleep probability model.

The probability is the sum of four independent factors, each capped at its own
weight so the total cannot exceed one:

    inactivity  0.4  grows linearly with inactivity up to the threshold
    time of day 0.3  at night, 0.15 in the early afternoon nap window
    motion      0.2  quieter recent motion scores higher
    charging    0.1  late night hours, when the device is usually charging

The weights are plain constants so every score can be explained and tuned
without training data.
"""

import datetime
from typing import Optional

from sleepwatch.core import models

INACTIVITY_WEIGHT = 0.4
NIGHT_WEIGHT = 0.3
NAP_WEIGHT = 0.15
MOTION_WEIGHT = 0.2
CHARGING_HOURS_WEIGHT = 0.1

NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 6
NAP_START_HOUR = 13
NAP_END_HOUR = 15
CHARGING_START_HOUR = 23


def inactivity_factor(inactivity_ms: float, inactivity_threshold_ms: float) -> float:
    """Inactivity contribution, saturating at the threshold.

    Args:
        inactivity_ms: Time since the last significant motion.
        inactivity_threshold_ms: Inactivity at which the factor saturates.

    Returns:
        A value in [0, INACTIVITY_WEIGHT].
    """
    ratio = max(inactivity_ms, 0) / inactivity_threshold_ms
    return min(ratio, 1.0) * INACTIVITY_WEIGHT


def time_of_day_factor(now: datetime.datetime) -> float:
    """Night and nap window contribution based on the local hour."""
    hour = now.hour
    if hour >= NIGHT_START_HOUR or hour <= NIGHT_END_HOUR:
        return NIGHT_WEIGHT
    if NAP_START_HOUR <= hour <= NAP_END_HOUR:
        return NAP_WEIGHT
    return 0.0


def motion_factor(activity_level: float) -> float:
    """Contribution of recent motion, highest for a still device."""
    level = min(max(activity_level, 0.0), 1.0)
    return (1 - level) * MOTION_WEIGHT


def charging_hours_factor(now: datetime.datetime) -> float:
    """Late night contribution standing in for "the device is charging".

    Only the clock is consulted; the battery state is never read.
    """
    hour = now.hour
    if hour >= CHARGING_START_HOUR or hour <= NIGHT_END_HOUR:
        return CHARGING_HOURS_WEIGHT
    return 0.0


def sleep_probability(
    inactivity_ms: float,
    now: datetime.datetime,
    activity_level: float,
    detection_config: Optional[models.DetectionConfig] = None,
) -> float:
    """Estimate how likely the subject is asleep.

    Args:
        inactivity_ms: Milliseconds since the last significant motion.
        now: The current local time.
        activity_level: Recent activity level in [0, 1], see
            `MotionBuffer.recent_activity_level`.
        detection_config: Supplies the inactivity threshold. Defaults to the
            medium sensitivity preset.

    Returns:
        The sleep probability, clamped to [0, 1].
    """
    detection_config = detection_config or models.DetectionConfig()
    probability = (
        inactivity_factor(inactivity_ms, detection_config.inactivity_threshold_ms)
        + time_of_day_factor(now)
        + motion_factor(activity_level)
        + charging_hours_factor(now)
    )
    return min(max(probability, 0.0), 1.0)
