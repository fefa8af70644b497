"""Detection state shared by motion ingestion and evaluation ticks."""

import datetime
import threading
from dataclasses import dataclass
from typing import Optional

from sleepwatch.core import config, exceptions, models
from sleepwatch.processing import motion_buffer, probability, session_machine

logger = config.get_logger()


@dataclass
class Evaluation:
    """Dataclass to store the inputs and result of one evaluation tick.

    Attributes:
        evaluated_at: The time of the tick.
        inactivity_ms: Milliseconds since the last significant motion.
        activity_level: Recent activity level in [0, 1].
        sleep_probability: The probability the transition was decided on.
        transition: The state machine outcome.
    """

    evaluated_at: datetime.datetime
    inactivity_ms: int
    activity_level: float
    sleep_probability: float
    transition: session_machine.Transition


class SleepDetector:
    """Owns the motion buffer, the last activity time and the open session.

    Ingestion and evaluation may run on different threads; every read or
    mutation of the buffer, the last activity time and the open session happens
    under one lock so an evaluation never sees a half-applied sample.

    Attributes:
        detection_config: Thresholds and window sizes.
        buffer: The rolling motion buffer.
    """

    def __init__(
        self,
        detection_config: Optional[models.DetectionConfig] = None,
        last_activity: Optional[datetime.datetime] = None,
    ) -> None:
        """Initialize the detector with an empty buffer and no open session.

        Args:
            detection_config: Detector constants. Defaults to medium sensitivity.
            last_activity: Initial last activity time. Defaults to now.
        """
        self.detection_config = detection_config or models.DetectionConfig()
        self.buffer = motion_buffer.MotionBuffer.from_config(self.detection_config)
        self._last_activity = last_activity or datetime.datetime.now()
        self._current_session: Optional[models.SleepSession] = None
        self._lock = threading.Lock()

    @property
    def last_activity(self) -> datetime.datetime:
        """Time of the last significant motion."""
        with self._lock:
            return self._last_activity

    @property
    def current_session(self) -> Optional[models.SleepSession]:
        """The open session, if any."""
        with self._lock:
            return self._current_session

    def reset_activity(self, now: datetime.datetime) -> None:
        """Treat `now` as the last significant motion."""
        with self._lock:
            self._last_activity = now

    def adopt_session(self, session: models.SleepSession) -> None:
        """Resume tracking an open session, e.g. one restored from the store.

        Raises:
            SessionStateError: If the session is finalized or another session is
                already open.
        """
        with self._lock:
            if not session.is_open:
                raise exceptions.SessionStateError(
                    f"Cannot resume finalized session {session.id}."
                )
            if (
                self._current_session is not None
                and self._current_session.id != session.id
            ):
                raise exceptions.SessionStateError(
                    f"Session {self._current_session.id} is already open."
                )
            self._current_session = session
        logger.info("Resumed sleep session %s", session.id)

    def finish_manual_session(self, now: datetime.datetime) -> models.SleepSession:
        """Close the open manual session and release it from the detector.

        Args:
            now: Wake time of the session.

        Returns:
            The finalized session, left unscored.

        Raises:
            SessionStateError: If no manual session is open.
        """
        with self._lock:
            session = self._current_session
            if session is None or not session.is_manual:
                raise exceptions.SessionStateError("No manual session is open.")
            finished = session_machine.finish_manual_session(session, now)
            self._current_session = None
        logger.info(
            "Manual sleep session %s ended, duration %s ms",
            finished.id,
            finished.duration_ms,
        )
        return finished

    def ingest(self, sample: models.MotionSample) -> bool:
        """Record a sample and update the last activity time.

        Args:
            sample: The validated motion sample.

        Returns:
            True if the sample counted as significant motion.
        """
        with self._lock:
            self.buffer.record(sample)
            significant = self.buffer.has_significant_motion(sample)
            if significant and sample.timestamp > self._last_activity:
                self._last_activity = sample.timestamp
        return significant

    def _inactivity_ms(self, now: datetime.datetime) -> int:
        return max(0, models.elapsed_ms(self._last_activity, now))

    def sleep_probability(self, now: datetime.datetime) -> float:
        """Compute the sleep probability at `now` without changing state."""
        with self._lock:
            return probability.sleep_probability(
                self._inactivity_ms(now),
                now,
                self.buffer.recent_activity_level(),
                self.detection_config,
            )

    def evaluate(self, now: datetime.datetime) -> Evaluation:
        """Run one tick of the state machine.

        A started session becomes the open session. An ended session is released
        from the detector and returned; storing it is up to the caller.

        Args:
            now: The time of the tick.

        Returns:
            The Evaluation of this tick.
        """
        with self._lock:
            inactivity_ms = self._inactivity_ms(now)
            activity_level = self.buffer.recent_activity_level()
            sleep_probability = probability.sleep_probability(
                inactivity_ms, now, activity_level, self.detection_config
            )
            transition = session_machine.evaluate_transition(
                current_session=self._current_session,
                probability=sleep_probability,
                now=now,
                last_activity=self._last_activity,
                activity_level=activity_level,
                detection_config=self.detection_config,
            )
            if transition.kind == session_machine.TransitionKind.started:
                self._current_session = transition.session
            elif transition.kind == session_machine.TransitionKind.ended:
                self._current_session = None

        logger.debug(
            "Tick at %s: inactivity %s ms, activity %.3f, probability %.3f, %s",
            now,
            inactivity_ms,
            activity_level,
            sleep_probability,
            transition.kind.value,
        )
        return Evaluation(
            evaluated_at=now,
            inactivity_ms=inactivity_ms,
            activity_level=activity_level,
            sleep_probability=sleep_probability,
            transition=transition,
        )

    def snapshot(
        self, now: datetime.datetime, is_tracking: bool
    ) -> models.DetectionState:
        """Project the current state for display. Has no side effects.

        Args:
            now: The time the snapshot is taken at.
            is_tracking: Whether the owning scheduler is tracking.

        Returns:
            The DetectionState with a freshly computed sleep probability.
        """
        with self._lock:
            inactivity_ms = self._inactivity_ms(now)
            return models.DetectionState(
                is_tracking=is_tracking,
                current_session=self._current_session,
                last_activity=self._last_activity,
                inactivity_duration_ms=inactivity_ms,
                sleep_probability=probability.sleep_probability(
                    inactivity_ms,
                    now,
                    self.buffer.recent_activity_level(),
                    self.detection_config,
                ),
            )
