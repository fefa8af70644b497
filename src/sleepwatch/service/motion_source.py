"""Motion sources feeding the detection scheduler."""

import abc
import asyncio
import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping

from sleepwatch.core import config, models

logger = config.get_logger()

MotionPayload = Mapping[str, Any]
MotionCallback = Callable[[MotionPayload], None]


class Subscription(abc.ABC):
    """Handle returned by `MotionSource.subscribe`."""

    @abc.abstractmethod
    def remove(self) -> None:
        """Stop delivering events. Calling it more than once is allowed."""
        pass


class MotionSource(abc.ABC):
    """Interface of a platform motion feed.

    Events are delivered as plain mappings with 'timestamp', 'acceleration'
    ({x, y, z}) and 'rotation' ({alpha, beta, gamma}); the scheduler converts
    them into MotionSample instances.
    """

    @abc.abstractmethod
    async def request_permission(self) -> bool:
        """Ask the platform for sensor access.

        Returns:
            True if access was granted.
        """
        pass

    @abc.abstractmethod
    def subscribe(
        self, callback: MotionCallback, interval: datetime.timedelta
    ) -> Subscription:
        """Start delivering events to `callback` roughly every `interval`."""
        pass


class _TaskSubscription(Subscription):
    def __init__(self, task: "asyncio.Task[None]") -> None:
        self._task = task

    def remove(self) -> None:
        self._task.cancel()


class ReplayMotionSource(MotionSource):
    """Plays back recorded motion payloads on the running event loop.

    Attributes:
        payloads: The events to deliver, in order.
        granted: Answer given to permission requests.
        loop_forever: Restart from the first event after the last one.
    """

    def __init__(
        self,
        payloads: Iterable[MotionPayload],
        granted: bool = True,
        loop_forever: bool = False,
    ) -> None:
        """Initialize the source with the events to replay."""
        self.payloads: List[MotionPayload] = list(payloads)
        self.granted = granted
        self.loop_forever = loop_forever

    @classmethod
    def from_samples(
        cls, samples: Iterable[models.MotionSample], **kwargs: Any
    ) -> "ReplayMotionSource":
        """Build a source replaying already validated samples."""
        return cls([sample_to_payload(sample) for sample in samples], **kwargs)

    async def request_permission(self) -> bool:
        return self.granted

    def subscribe(
        self, callback: MotionCallback, interval: datetime.timedelta
    ) -> Subscription:
        """Deliver events on a task of the running loop.

        Raises:
            RuntimeError: If no event loop is running.
        """
        task = asyncio.get_running_loop().create_task(
            self._play(callback, interval.total_seconds())
        )
        return _TaskSubscription(task)

    async def _play(self, callback: MotionCallback, delay: float) -> None:
        while True:
            for payload in self.payloads:
                callback(payload)
                await asyncio.sleep(delay)
            if not self.loop_forever or not self.payloads:
                logger.debug("Replay finished after %s events", len(self.payloads))
                return


def sample_to_payload(sample: models.MotionSample) -> Dict[str, Any]:
    """Convert a sample back into the payload shape a platform would deliver."""
    payload: Dict[str, Any] = sample.model_dump()
    payload["timestamp"] = sample.timestamp
    return payload
