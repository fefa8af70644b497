"""Summaries computed over finished sleep sessions."""

import datetime
from dataclasses import dataclass
from typing import List, Literal, Optional, Sequence

import polars as pl

from sleepwatch.core import config, models
from sleepwatch.io.writers import writers

logger = config.get_logger()

MS_PER_HOUR = 3_600_000
MAX_BEDTIME_STD_MINUTES = 120
TREND_BLOCK = 7
TREND_THRESHOLD_MS = 30 * 60 * 1000

Trend = Literal["improving", "declining", "stable"]


@dataclass
class DailySleep:
    """Dataclass to store one day of the weekly trend.

    Attributes:
        day: The calendar day.
        label: Abbreviated weekday name.
        hours: Duration of the session that started that day, 0 if none.
        quality: Quality of that session, 0 if none.
    """

    day: datetime.date
    label: str
    hours: float
    quality: int


class SleepAnalytics:
    """Statistics over finished sessions.

    Open sessions are ignored. Sessions are ordered by bedtime, oldest first.

    Attributes:
        sessions: The finished sessions.
        frame: The sessions as a polars DataFrame.
    """

    def __init__(self, sessions: Sequence[models.SleepSession]) -> None:
        """Initialize the analytics from any collection of sessions."""
        self.sessions = sorted(
            (session for session in sessions if not session.is_open),
            key=lambda session: session.bedtime,
        )
        self.frame = writers.sessions_to_frame(self.sessions).with_columns(
            pl.col("bedtime").dt.strftime("%A").alias("weekday"),
            (
                pl.col("bedtime").dt.hour().cast(pl.Int64) * 60
                + pl.col("bedtime").dt.minute().cast(pl.Int64)
            ).alias("bedtime_minutes"),
        )
        logger.debug("Analytics over %s finished sessions", len(self.sessions))

    def average_duration_ms(self) -> float:
        """Mean session duration, 0 without sessions."""
        if self.frame.is_empty():
            return 0.0
        return float(self.frame["duration_ms"].mean())

    def average_quality(self) -> float:
        """Mean session quality, 0 without sessions."""
        if self.frame.is_empty():
            return 0.0
        return float(self.frame["quality_percent"].mean())

    def consistency_score(self) -> int:
        """Regularity of bedtimes between 0 and 100.

        A standard deviation of the bedtime (minutes after midnight) of two hours
        or more scores 0; identical bedtimes score 100. Fewer than two sessions
        score 0.
        """
        if len(self.frame) < 2:
            return 0
        std_minutes = float(self.frame["bedtime_minutes"].std(ddof=0))
        consistency = (
            max(0.0, (MAX_BEDTIME_STD_MINUTES - std_minutes) / MAX_BEDTIME_STD_MINUTES)
            * 100
        )
        return round(consistency)

    def duration_trend(self) -> Trend:
        """Compare the last week of sessions with the one before.

        Returns:
            'improving' or 'declining' when the mean duration moved by more than
            30 minutes, 'stable' otherwise or when there is too little data.
        """
        if len(self.frame) < 3:
            return "stable"
        durations = self.frame["duration_ms"]
        recent = durations.tail(TREND_BLOCK)
        older = durations.head(max(0, len(durations) - TREND_BLOCK)).tail(TREND_BLOCK)
        if older.is_empty():
            return "stable"
        difference = float(recent.mean()) - float(older.mean())
        if difference > TREND_THRESHOLD_MS:
            return "improving"
        if difference < -TREND_THRESHOLD_MS:
            return "declining"
        return "stable"

    def sleep_debt_hours(self, goal_hours: float = 8) -> float:
        """Hours missing from the goal over the last seven sessions."""
        if self.frame.is_empty():
            return 0.0
        goal_ms = goal_hours * MS_PER_HOUR
        recent = self.frame["duration_ms"].tail(TREND_BLOCK).to_list()
        return sum(max(0.0, goal_ms - duration) for duration in recent) / MS_PER_HOUR

    def _weekday_quality(self) -> pl.DataFrame:
        return self.frame.group_by("weekday", maintain_order=True).agg(
            pl.col("quality_percent").mean().alias("mean_quality")
        )

    def best_sleep_day(self) -> Optional[str]:
        """Weekday with the highest mean quality, None without sessions."""
        if self.frame.is_empty():
            return None
        by_day = self._weekday_quality()
        return by_day.row(by_day["mean_quality"].arg_max(), named=True)["weekday"]

    def worst_sleep_day(self) -> Optional[str]:
        """Weekday with the lowest mean quality, None without sessions."""
        if self.frame.is_empty():
            return None
        by_day = self._weekday_quality()
        return by_day.row(by_day["mean_quality"].arg_min(), named=True)["weekday"]

    def weekly_trend(self, today: Optional[datetime.date] = None) -> List[DailySleep]:
        """Duration and quality for each of the last seven days, oldest first.

        Args:
            today: The last day of the week. Defaults to the current date.

        Returns:
            Seven DailySleep entries. A day uses the first session whose bedtime
            falls on it.
        """
        today = today or datetime.date.today()
        week = []
        for offset in range(6, -1, -1):
            day = today - datetime.timedelta(days=offset)
            session = next(
                (s for s in self.sessions if s.bedtime.date() == day), None
            )
            week.append(
                DailySleep(
                    day=day,
                    label=day.strftime("%a"),
                    hours=session.duration_ms / MS_PER_HOUR if session else 0.0,
                    quality=session.quality_percent if session else 0,
                )
            )
        return week

    def recommendations(self, goal_hours: float = 8) -> List[str]:
        """Plain language advice derived from the other statistics."""
        advice = []
        if self.average_duration_ms() / MS_PER_HOUR < 7:
            advice.append("Aim for at least 7-8 hours of sleep per night.")
        if self.consistency_score() < 70:
            advice.append("Keep a regular sleep schedule, weekends included.")
        if self.average_quality() < 70:
            advice.append(
                "Improve your sleep environment: keep it cool, dark and quiet."
            )
        if self.sleep_debt_hours(goal_hours) > 2:
            advice.append("You have significant sleep debt; recover it gradually.")
        if not advice:
            advice.append("Great work! Your sleep patterns look healthy.")
        return advice
