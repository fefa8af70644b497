"""Rolling buffer of recent motion samples."""

import collections
from typing import Deque, Iterator, List

from sleepwatch.core import computations, config, models

logger = config.get_logger()


class MotionBuffer:
    """Fixed capacity FIFO of the most recent motion samples.

    Samples are appended at the tail; once the buffer is full the oldest sample
    is dropped from the head.

    Attributes:
        capacity: Maximum number of samples held.
        motion_threshold: Acceleration magnitude that counts as significant
            motion, also used to normalise the recent activity level.
        recent_window_samples: Number of newest samples averaged by
            `recent_activity_level`.
    """

    def __init__(
        self,
        capacity: int = 300,
        motion_threshold: float = 0.1,
        recent_window_samples: int = 60,
    ) -> None:
        """Initialize an empty buffer.

        Raises:
            ValueError: If any argument is not positive.
        """
        if capacity <= 0:
            raise ValueError("Capacity must be greater than 0.")
        if motion_threshold <= 0:
            raise ValueError("Motion threshold must be greater than 0.")
        if recent_window_samples <= 0:
            raise ValueError("Recent window must be greater than 0.")
        self.capacity = capacity
        self.motion_threshold = motion_threshold
        self.recent_window_samples = recent_window_samples
        self._samples: Deque[models.MotionSample] = collections.deque(
            maxlen=capacity
        )

    @classmethod
    def from_config(cls, detection_config: models.DetectionConfig) -> "MotionBuffer":
        """Create a buffer sized for the retention window of the config."""
        return cls(
            capacity=detection_config.buffer_capacity,
            motion_threshold=detection_config.motion_threshold,
            recent_window_samples=detection_config.recent_window_samples,
        )

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[models.MotionSample]:
        return iter(self._samples)

    def record(self, sample: models.MotionSample) -> None:
        """Append a sample, evicting the oldest one when full."""
        self._samples.append(sample)

    def clear(self) -> None:
        """Drop every buffered sample."""
        self._samples.clear()

    def recent(self) -> List[models.MotionSample]:
        """The newest samples that make up the recent activity window."""
        count = min(self.recent_window_samples, len(self._samples))
        return list(self._samples)[len(self._samples) - count :]

    def recent_activity_level(self) -> float:
        """Normalised motion over the recent window.

        Returns:
            The mean acceleration magnitude of the newest samples divided by the
            motion threshold, clamped to [0, 1]. Zero for an empty buffer.
        """
        return computations.normalized_activity(self.recent(), self.motion_threshold)

    def has_significant_motion(self, sample: models.MotionSample) -> bool:
        """Whether the sample's acceleration magnitude exceeds the threshold."""
        return computations.sample_magnitude(sample) > self.motion_threshold
