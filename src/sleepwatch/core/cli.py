"""CLI for sleepwatch."""

import asyncio
import datetime
import logging
import pathlib
from enum import Enum
from typing import Optional

import typer

from sleepwatch.core import config, exceptions, models

logger = config.get_logger()
app = typer.Typer(
    help="Detect sleep sessions from motion data and inspect stored sessions.",
)

DEFAULT_STORE = pathlib.Path("sleepwatch.json")


class Sensitivity(str, Enum):
    """Setting a sensitivity class for typer.

    This class is used to define the literal types that are allowed for
    detection sensitivity, and parsing the strings for the orchestrator.
    """

    low = "low"
    medium = "medium"
    high = "high"


def version_check(version: bool) -> None:
    """Print the current version of sleepwatch and exit."""
    if version:
        typer.echo(f"Sleepwatch version: {config.get_version()}")
        raise typer.Exit()


def _format_session(session: models.SleepSession) -> str:
    wake = "open"
    if session.wake_time is not None:
        wake = session.wake_time.isoformat(timespec="minutes")
    hours = session.duration_ms / 3_600_000
    origin = "manual" if session.is_manual else "auto"
    return (
        f"{session.bedtime.isoformat(timespec='minutes')} -> {wake}  "
        f"{hours:5.2f} h  quality {session.quality_percent:3d}%  "
        f"{origin} ({session.confidence:.2f})"
    )


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "-V",
        "--version",
        help="Print the current version of sleepwatch and exit.",
        is_eager=True,
        callback=version_check,
    ),
) -> None:
    """Sleepwatch command line interface."""


@app.command()
def replay(
    input: pathlib.Path = typer.Argument(
        ..., help="Path to the motion recording (.csv or .parquet).", exists=True
    ),
    store: Optional[pathlib.Path] = typer.Option(
        None,
        "-s",
        "--store",
        help="Json session store to save detected sessions in.",
    ),
    output: Optional[pathlib.Path] = typer.Option(
        None,
        "-o",
        "--output",
        help="Path where sessions will be exported. Supports .csv and .parquet.",
    ),
    sensitivity: Sensitivity = typer.Option(
        Sensitivity.medium,
        "--sensitivity",
        help="Detection sensitivity: 'low', 'medium' or 'high'.",
        case_sensitive=False,
    ),
    evaluation_interval: float = typer.Option(
        30,
        "-e",
        "--evaluation-interval",
        help="Seconds of recording time between detection ticks.",
        min=0.001,
    ),
    verbosity: bool = typer.Option(
        False,
        "-v",
        "--verbosity",
        help="Determines the level of verbosity. Use -v for DEBUG. "
        "Defaults to INFO if not included.",
    ),
) -> None:
    """Run a motion recording through the sleep detector."""
    from sleepwatch.core import orchestrator

    log_level = logging.INFO
    if verbosity:
        log_level = logging.DEBUG
    logger.setLevel(log_level)

    logger.debug("Running replay. arguments given: %s", locals())
    try:
        sessions = orchestrator.run(
            input=input,
            store_path=store,
            output=output,
            sensitivity=sensitivity.value,
            evaluation_interval=evaluation_interval,
            verbosity=log_level,
        )
    except (exceptions.InvalidFileTypeError, exceptions.EmptyRecordingError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    for session in sessions:
        typer.echo(_format_session(session))


@app.command()
def sessions(
    store: pathlib.Path = typer.Option(
        DEFAULT_STORE, "-s", "--store", help="Json session store to read."
    ),
    since: Optional[datetime.datetime] = typer.Option(
        None, "--since", help="Only list sessions with a bedtime at or after this."
    ),
) -> None:
    """List stored sessions, newest first."""
    from sleepwatch.io.stores import stores

    session_store = stores.JsonSessionStore(store)
    if since is None:
        found = asyncio.run(session_store.list_all())
    else:
        found = asyncio.run(session_store.list_since(since))

    if not found:
        typer.echo("No sessions stored.")
        return
    for session in found:
        typer.echo(_format_session(session))


@app.command()
def summary(
    store: pathlib.Path = typer.Option(
        DEFAULT_STORE, "-s", "--store", help="Json session store to read."
    ),
) -> None:
    """Summarise the stored sessions."""
    from sleepwatch.io.stores import stores
    from sleepwatch.processing import analytics

    session_store = stores.JsonSessionStore(store)
    found = asyncio.run(session_store.list_all())
    settings = asyncio.run(session_store.load_settings())
    report = analytics.SleepAnalytics(found)

    typer.echo(f"Sessions: {len(report.sessions)}")
    typer.echo(f"Average duration: {report.average_duration_ms() / 3_600_000:.2f} h")
    typer.echo(f"Average quality: {report.average_quality():.0f}%")
    typer.echo(f"Consistency: {report.consistency_score()}%")
    typer.echo(f"Trend: {report.duration_trend()}")
    typer.echo(
        f"Sleep debt: {report.sleep_debt_hours(settings.sleep_goal_hours):.1f} h"
    )
    for advice in report.recommendations(settings.sleep_goal_hours):
        typer.echo(f"- {advice}")


if __name__ == "__main__":
    app()
