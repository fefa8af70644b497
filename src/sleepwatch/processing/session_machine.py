"""Start and end sleep sessions from the sleep probability."""

import datetime
import enum
import math
from dataclasses import dataclass
from typing import Optional

from sleepwatch.core import config, exceptions, models

logger = config.get_logger()

MS_PER_HOUR = 3_600_000

# (min hours, max hours, score), narrowest band first, bounds inclusive.
DURATION_BANDS = (
    (7.0, 9.0, 90),
    (6.0, 10.0, 75),
    (5.0, 11.0, 60),
)
OUT_OF_BAND_SCORE = 40


class TransitionKind(str, enum.Enum):
    """Outcome of a single evaluation of the state machine."""

    none = "none"
    started = "started"
    ended = "ended"


@dataclass
class Transition:
    """Dataclass to store the result of a state machine evaluation.

    Attributes:
        kind: Whether a session was started, ended, or nothing happened.
        session: The new open session for 'started', the finalized session for
            'ended', the unchanged current session (if any) for 'none'.
    """

    kind: TransitionKind
    session: Optional[models.SleepSession] = None

    def finished_session(self) -> Optional[models.SleepSession]:
        """The finalized session of an 'ended' transition, None for any other kind.

        Raises:
            SessionStateError: If an 'ended' transition carries no finalized
                session.
        """
        if self.kind != TransitionKind.ended:
            return None
        if self.session is None or self.session.is_open:
            raise exceptions.SessionStateError(
                "Ended transition carries no finalized session."
            )
        return self.session


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def duration_base_score(duration_ms: int) -> int:
    """Score a sleep duration by the narrowest band that contains it.

    Args:
        duration_ms: The session duration in milliseconds.

    Returns:
        90 for 7-9 h, 75 for 6-10 h, 60 for 5-11 h, otherwise 40.
    """
    hours = duration_ms / MS_PER_HOUR
    for low, high, score in DURATION_BANDS:
        if low <= hours <= high:
            return score
    return OUT_OF_BAND_SCORE


def motion_quality_score(activity_level: float) -> int:
    """Score the stillness of the recent motion, 100 for no motion at all."""
    level = min(max(activity_level, 0.0), 1.0)
    return _round_half_up((1 - level) * 100)


def sleep_quality(duration_ms: int, activity_level: float) -> int:
    """Blend the duration and motion scores with equal weight.

    Args:
        duration_ms: The finalized session duration in milliseconds.
        activity_level: Recent activity level at the end of the session.

    Returns:
        The quality percentage, an integer in [0, 100].
    """
    blended = (
        duration_base_score(duration_ms) + motion_quality_score(activity_level)
    ) / 2
    return _round_half_up(min(max(blended, 0.0), 100.0))


def evaluate_transition(
    current_session: Optional[models.SleepSession],
    probability: float,
    now: datetime.datetime,
    last_activity: datetime.datetime,
    activity_level: float,
    detection_config: models.DetectionConfig,
) -> Transition:
    """Decide whether to open or close a session.

    The machine has two states, idle (no open session) and asleep (one open
    session). A session opens when the probability reaches the start threshold
    and closes once it drops below the lower end threshold, so small
    fluctuations around either threshold do not toggle the state.
    A manual session is only closed by the user; while one is open the machine
    neither closes it nor opens another.

    Args:
        current_session: The open session, or None when idle.
        probability: The sleep probability computed for this tick.
        now: The time of the tick.
        last_activity: The time of the last significant motion.
        activity_level: The recent activity level, used to score a closing session.
        detection_config: Thresholds to apply.

    Returns:
        The Transition describing what happened.
    """
    if current_session is None:
        if probability >= detection_config.start_threshold:
            session = models.SleepSession(
                bedtime=last_activity + detection_config.inactivity_threshold,
                is_manual=False,
                confidence=min(max(probability, 0.0), 1.0),
                created_at=now,
                updated_at=now,
            )
            logger.info(
                "Sleep session %s started, bedtime %s, confidence %.2f",
                session.id,
                session.bedtime,
                session.confidence,
            )
            return Transition(kind=TransitionKind.started, session=session)
        return Transition(kind=TransitionKind.none)

    if current_session.is_manual:
        return Transition(kind=TransitionKind.none, session=current_session)

    if probability < detection_config.end_threshold:
        duration_ms = max(0, models.elapsed_ms(current_session.bedtime, now))
        finished = current_session.finalize(
            wake_time=now,
            quality_percent=sleep_quality(duration_ms, activity_level),
        )
        logger.info(
            "Sleep session %s ended, duration %s ms, quality %s%%",
            finished.id,
            finished.duration_ms,
            finished.quality_percent,
        )
        return Transition(kind=TransitionKind.ended, session=finished)

    return Transition(kind=TransitionKind.none, session=current_session)


def start_manual_session(
    now: datetime.datetime, notes: Optional[str] = None
) -> models.SleepSession:
    """Open a session declared by the user.

    Args:
        now: Bedtime of the session.
        notes: Optional free text.

    Returns:
        The open session, with full confidence.
    """
    logger.debug("Manual sleep session started at %s", now)
    return models.SleepSession(
        bedtime=now,
        is_manual=True,
        confidence=1.0,
        notes=notes,
        created_at=now,
        updated_at=now,
    )


def finish_manual_session(
    session: models.SleepSession,
    now: datetime.datetime,
    activity_level: Optional[float] = None,
) -> models.SleepSession:
    """Close a session declared by the user.

    Manual sessions are left unscored unless an activity level is given.

    Args:
        session: The open session.
        now: Wake time of the session.
        activity_level: If given, the session is scored like a detected one.

    Returns:
        The finalized session.

    Raises:
        SessionStateError: If the session is already finalized.
    """
    quality = 0
    if activity_level is not None:
        duration_ms = max(0, models.elapsed_ms(session.bedtime, now))
        quality = sleep_quality(duration_ms, activity_level)
    return session.finalize(wake_time=now, quality_percent=quality)
