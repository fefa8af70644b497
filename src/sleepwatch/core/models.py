"""Internal data model."""

import datetime
import uuid
from typing import Any, Dict, Literal, Mapping, Optional

import pydantic
from pydantic import BaseModel, field_validator, model_validator

from sleepwatch.core import config, exceptions

logger = config.get_logger()

Sensitivity = Literal["low", "medium", "high"]

_MILLISECOND = datetime.timedelta(milliseconds=1)


def to_local_naive(value: datetime.datetime) -> datetime.datetime:
    """Convert a timezone aware datetime to naive local time.

    Naive datetimes are assumed to already be in local time and are returned as is.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def elapsed_ms(start: datetime.datetime, end: datetime.datetime) -> int:
    """Whole milliseconds between two instants, negative if end precedes start."""
    return (end - start) // _MILLISECOND


class Vector3(BaseModel):
    """Acceleration along the three device axes."""

    model_config = pydantic.ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class Rotation(BaseModel):
    """Device rotation expressed as Euler angles."""

    model_config = pydantic.ConfigDict(frozen=True)

    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0


class MotionSample(BaseModel):
    """A single motion reading and the instant it was captured.

    Samples are immutable once built. Untyped sensor payloads are converted with
    `from_payload`, which is the only place raw motion data is validated.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    timestamp: datetime.datetime
    acceleration: Vector3 = Vector3()
    rotation: Rotation = Rotation()

    @field_validator("timestamp", mode="before")
    def validate_timestamp(cls, v: Any) -> Any:
        """Interpret numeric timestamps as epoch milliseconds in local time.

        Args:
            cls: The class.
            v: The raw timestamp.

        Returns:
            v: A naive local datetime, or the raw value for pydantic to parse.

        Raises:
            ValueError: If the timestamp is a boolean or an epoch value outside
                the platform's datetime range.
        """
        if isinstance(v, bool):
            raise ValueError("timestamp must not be a boolean")
        if isinstance(v, (int, float)):
            try:
                return datetime.datetime.fromtimestamp(v / 1000)
            except (OverflowError, OSError, ValueError) as e:
                raise ValueError(f"timestamp {v} is out of range") from e
        if isinstance(v, datetime.datetime):
            return to_local_naive(v)
        return v

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        received_at: Optional[datetime.datetime] = None,
    ) -> "MotionSample":
        """Creates a sample from a motion source event.

        Args:
            payload: The event delivered by the motion source. May contain
                'timestamp', 'acceleration' ({x, y, z}) and 'rotation'
                ({alpha, beta, gamma}). Missing or null vectors are read as zeros.
            received_at: Used as the timestamp when the payload carries none.

        Returns:
            The validated MotionSample.

        Raises:
            pydantic.ValidationError: If the payload contains malformed values.
            ValueError: If the payload has no timestamp and received_at is None.
        """
        timestamp = payload.get("timestamp")
        if timestamp is None:
            timestamp = received_at
        if timestamp is None:
            raise ValueError("Motion payload has no timestamp.")
        return cls.model_validate(
            {
                "timestamp": timestamp,
                "acceleration": payload.get("acceleration") or {},
                "rotation": payload.get("rotation") or {},
            }
        )


class SleepSession(BaseModel):
    """One contiguous sleep interval, detected automatically or declared manually.

    A session is open while `wake_time` is None. Finalizing produces a new
    instance; the wake time of a finalized session never changes.
    """

    id: str = pydantic.Field(default_factory=lambda: uuid.uuid4().hex)
    bedtime: datetime.datetime
    wake_time: Optional[datetime.datetime] = None
    duration_ms: int = pydantic.Field(default=0, ge=0)
    quality_percent: int = pydantic.Field(default=0, ge=0, le=100)
    is_manual: bool = False
    confidence: float = pydantic.Field(default=0.0, ge=0.0, le=1.0)
    notes: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @property
    def is_open(self) -> bool:
        """True until the session has a wake time."""
        return self.wake_time is None

    def finalize(
        self, wake_time: datetime.datetime, quality_percent: int = 0
    ) -> "SleepSession":
        """Close the session.

        Args:
            wake_time: The instant the subject woke up.
            quality_percent: Quality score between 0 and 100.

        Returns:
            A new, finalized SleepSession. Duration is clamped at zero for a
            bedtime that lies after the wake time.

        Raises:
            SessionStateError: If the session is already finalized.
        """
        if not self.is_open:
            raise exceptions.SessionStateError(
                f"Session {self.id} was already finalized at {self.wake_time}."
            )
        return self.model_copy(
            update={
                "wake_time": wake_time,
                "duration_ms": max(0, elapsed_ms(self.bedtime, wake_time)),
                "quality_percent": max(0, min(100, quality_percent)),
                "updated_at": wake_time,
            }
        )


class DetectionState(BaseModel):
    """Read-only projection of the detector for display."""

    model_config = pydantic.ConfigDict(frozen=True)

    is_tracking: bool
    current_session: Optional[SleepSession]
    last_activity: datetime.datetime
    inactivity_duration_ms: int = pydantic.Field(ge=0)
    sleep_probability: float = pydantic.Field(ge=0.0, le=1.0)


class Settings(BaseModel):
    """User preferences kept in the session store."""

    auto_detection_enabled: bool = True
    notifications_enabled: bool = False
    battery_optimized: bool = True
    sleep_goal_hours: float = pydantic.Field(default=8, gt=0, le=24)
    detection_sensitivity: Sensitivity = "medium"


SENSITIVITY_PRESETS: Dict[str, Dict[str, Any]] = {
    "low": {
        "start_threshold": 0.85,
        "end_threshold": 0.25,
        "inactivity_threshold": datetime.timedelta(minutes=20),
    },
    "medium": {
        "start_threshold": 0.8,
        "end_threshold": 0.3,
        "inactivity_threshold": datetime.timedelta(minutes=15),
    },
    "high": {
        "start_threshold": 0.75,
        "end_threshold": 0.35,
        "inactivity_threshold": datetime.timedelta(minutes=10),
    },
}


class DetectionConfig(BaseModel):
    """Tunable constants of the sleep detector.

    The defaults are the medium sensitivity preset.

    Attributes:
        inactivity_threshold: Inactivity after which the inactivity factor
            saturates. Also the back-dating offset applied to bedtime.
        motion_threshold: Acceleration magnitude above which a sample counts as
            significant motion.
        start_threshold: Probability at or above which a session is opened.
        end_threshold: Probability below which an open session is closed.
        sample_interval: Nominal spacing of motion samples.
        evaluation_interval: Spacing of detection ticks.
        retention_window: How much motion history the buffer keeps.
        recent_window_samples: Number of newest samples used for the recent
            activity level.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    inactivity_threshold: datetime.timedelta = datetime.timedelta(minutes=15)
    motion_threshold: float = pydantic.Field(default=0.1, gt=0)
    start_threshold: float = pydantic.Field(default=0.8, ge=0, le=1)
    end_threshold: float = pydantic.Field(default=0.3, ge=0, le=1)
    sample_interval: datetime.timedelta = datetime.timedelta(seconds=1)
    evaluation_interval: datetime.timedelta = datetime.timedelta(seconds=30)
    retention_window: datetime.timedelta = datetime.timedelta(minutes=5)
    recent_window_samples: int = pydantic.Field(default=60, gt=0)

    @field_validator(
        "inactivity_threshold",
        "sample_interval",
        "evaluation_interval",
        "retention_window",
    )
    def validate_positive_duration(
        cls, v: datetime.timedelta
    ) -> datetime.timedelta:
        """Validate that a duration is strictly positive.

        Raises:
            ValueError: If the duration is zero or negative.
        """
        if v <= datetime.timedelta(0):
            raise ValueError("durations must be greater than zero")
        return v

    @model_validator(mode="after")
    def validate_hysteresis(self) -> "DetectionConfig":
        """Validate that the start threshold lies above the end threshold.

        Raises:
            ValueError: If start_threshold is not greater than end_threshold.
        """
        if self.start_threshold <= self.end_threshold:
            raise ValueError("start_threshold must be greater than end_threshold")
        return self

    @property
    def inactivity_threshold_ms(self) -> int:
        """The inactivity threshold in milliseconds."""
        return self.inactivity_threshold // _MILLISECOND

    @property
    def buffer_capacity(self) -> int:
        """Number of samples covering the retention window."""
        return max(1, int(self.retention_window / self.sample_interval))

    @classmethod
    def from_sensitivity(
        cls, sensitivity: Sensitivity, **overrides: Any
    ) -> "DetectionConfig":
        """Build a config from a sensitivity level.

        Args:
            sensitivity: One of 'low', 'medium' or 'high'. Higher sensitivity
                opens sessions sooner and closes them more readily.
            **overrides: Any other DetectionConfig field.

        Returns:
            The DetectionConfig for that level.

        Raises:
            ValueError: If the sensitivity level is unknown.
        """
        if sensitivity not in SENSITIVITY_PRESETS:
            raise ValueError(
                f"Invalid sensitivity: {sensitivity}. "
                f"Choose one of {', '.join(SENSITIVITY_PRESETS)}."
            )
        logger.debug("Building detection config for sensitivity %s", sensitivity)
        return cls(**{**SENSITIVITY_PRESETS[sensitivity], **overrides})
