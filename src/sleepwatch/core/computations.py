"""This module contains functions to compute statistics on the motion data."""

from typing import Sequence

import numpy as np

from sleepwatch.core import models


def acceleration_array(samples: Sequence[models.MotionSample]) -> np.ndarray:
    """Stack the acceleration vectors of the samples into an (n, 3) array.

    Args:
        samples: The motion samples, in any order.

    Returns:
        A float array with one row per sample and columns x, y, z. The array has
        shape (0, 3) when no samples are given.
    """
    if not samples:
        return np.empty((0, 3), dtype=float)
    return np.array(
        [
            (sample.acceleration.x, sample.acceleration.y, sample.acceleration.z)
            for sample in samples
        ],
        dtype=float,
    )


def vector_magnitude(acceleration: np.ndarray) -> np.ndarray:
    """Calculate the Euclidean norm of each acceleration vector.

    Args:
        acceleration: Array of shape (n, 3) or a single vector of shape (3,).

    Returns:
        The magnitudes, shape (n,) or a 0-d array for a single vector.
    """
    return np.linalg.norm(acceleration, axis=-1)


def sample_magnitude(sample: models.MotionSample) -> float:
    """Acceleration magnitude of a single sample."""
    return float(
        vector_magnitude(
            np.array(
                [sample.acceleration.x, sample.acceleration.y, sample.acceleration.z]
            )
        )
    )


def normalized_activity(
    samples: Sequence[models.MotionSample], motion_threshold: float
) -> float:
    """Mean acceleration magnitude relative to the motion threshold.

    Args:
        samples: The samples to average.
        motion_threshold: The magnitude treated as full activity.

    Returns:
        The mean magnitude divided by motion_threshold, clamped to [0, 1]. Zero
        when no samples are given.

    Raises:
        ValueError: If motion_threshold is not positive.
    """
    if motion_threshold <= 0:
        raise ValueError("motion_threshold must be greater than 0.")
    if not samples:
        return 0.0
    mean_magnitude = float(np.mean(vector_magnitude(acceleration_array(samples))))
    return min(mean_magnitude / motion_threshold, 1.0)
