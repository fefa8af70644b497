"""Test the sleep analytics."""

import datetime
from typing import Callable, List

import pytest

from sleepwatch.core import models
from sleepwatch.processing import analytics

WEDNESDAY = datetime.datetime(2024, 5, 1, 22, 0)
THURSDAY = datetime.datetime(2024, 5, 2, 23, 0)

SessionFactory = Callable[..., models.SleepSession]


def _nights(
    make_finished_session: SessionFactory, hours: List[float]
) -> List[models.SleepSession]:
    """One session per night at 23:00, starting 2024-04-01."""
    first = datetime.datetime(2024, 4, 1, 23, 0)
    return [
        make_finished_session(first + datetime.timedelta(days=day), hours=duration)
        for day, duration in enumerate(hours)
    ]


@pytest.fixture
def two_nights(make_finished_session: SessionFactory) -> analytics.SleepAnalytics:
    """A good Wednesday and a short Thursday."""
    return analytics.SleepAnalytics(
        [
            make_finished_session(THURSDAY, hours=6, quality=60),
            make_finished_session(WEDNESDAY, hours=8, quality=90),
        ]
    )


def test_sessions_sorted_and_open_ignored(
    make_finished_session: SessionFactory,
) -> None:
    """Test open sessions are dropped and the rest sorted by bedtime."""
    older = make_finished_session(WEDNESDAY)
    newer = make_finished_session(THURSDAY)

    report = analytics.SleepAnalytics(
        [newer, models.SleepSession(bedtime=THURSDAY), older]
    )

    assert report.sessions == [older, newer]
    assert len(report.frame) == 2


def test_averages(two_nights: analytics.SleepAnalytics) -> None:
    """Test mean duration and quality."""
    assert two_nights.average_duration_ms() == 7 * 3_600_000
    assert two_nights.average_quality() == 75


def test_consistency_score(two_nights: analytics.SleepAnalytics) -> None:
    """Test bedtimes an hour apart score 75."""
    assert two_nights.consistency_score() == 75


def test_consistency_score_identical_bedtimes(
    make_finished_session: SessionFactory,
) -> None:
    """Test identical bedtimes score 100."""
    report = analytics.SleepAnalytics(_nights(make_finished_session, [8, 8, 8]))

    assert report.consistency_score() == 100


def test_best_and_worst_day(two_nights: analytics.SleepAnalytics) -> None:
    """Test the weekday with the highest and lowest mean quality."""
    assert two_nights.best_sleep_day() == "Wednesday"
    assert two_nights.worst_sleep_day() == "Thursday"


@pytest.mark.parametrize(
    "hours, expected",
    [
        ([6] * 7 + [8] * 7, "improving"),
        ([8] * 7 + [6] * 7, "declining"),
        ([8] * 14, "stable"),
        ([6, 6, 8, 8, 8], "stable"),
        ([6, 10], "stable"),
    ],
)
def test_duration_trend(
    make_finished_session: SessionFactory, hours: List[float], expected: str
) -> None:
    """Test the last week of sessions is compared with the one before."""
    report = analytics.SleepAnalytics(_nights(make_finished_session, hours))

    assert report.duration_trend() == expected


def test_sleep_debt(make_finished_session: SessionFactory) -> None:
    """Test the debt only counts the last seven sessions."""
    report = analytics.SleepAnalytics(
        _nights(make_finished_session, [2] * 3 + [6] * 7)
    )

    assert report.sleep_debt_hours() == pytest.approx(14.0)
    assert report.sleep_debt_hours(goal_hours=5) == 0.0


def test_weekly_trend(two_nights: analytics.SleepAnalytics) -> None:
    """Test one entry per day of the last week, oldest first."""
    week = two_nights.weekly_trend(today=datetime.date(2024, 5, 3))

    assert [entry.day for entry in week] == [
        datetime.date(2024, 4, 27) + datetime.timedelta(days=offset)
        for offset in range(7)
    ]
    assert week[4] == analytics.DailySleep(
        day=datetime.date(2024, 5, 1), label="Wed", hours=8.0, quality=90
    )
    assert week[5].hours == 6.0
    assert week[6].hours == 0.0
    assert week[6].quality == 0


def test_empty() -> None:
    """Test every statistic has a neutral value without sessions."""
    report = analytics.SleepAnalytics([])

    assert report.average_duration_ms() == 0.0
    assert report.average_quality() == 0.0
    assert report.consistency_score() == 0
    assert report.duration_trend() == "stable"
    assert report.sleep_debt_hours() == 0.0
    assert report.best_sleep_day() is None
    assert report.worst_sleep_day() is None
    assert len(report.weekly_trend()) == 7


def test_recommendations_healthy(make_finished_session: SessionFactory) -> None:
    """Test healthy patterns get a single encouraging message."""
    report = analytics.SleepAnalytics(_nights(make_finished_session, [8] * 7))

    assert report.recommendations() == [
        "Great work! Your sleep patterns look healthy."
    ]


def test_recommendations_short_sleep(make_finished_session: SessionFactory) -> None:
    """Test short nights produce duration and debt advice."""
    report = analytics.SleepAnalytics(_nights(make_finished_session, [5] * 7))

    advice = report.recommendations()

    assert "Aim for at least 7-8 hours of sleep per night." in advice
    assert "You have significant sleep debt; recover it gradually." in advice
    assert "Great work! Your sleep patterns look healthy." not in advice
