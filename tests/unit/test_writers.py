"""Test the writers module."""

import datetime
import json
import logging
import pathlib
from typing import Callable, List

import polars as pl
import pytest

from sleepwatch.core import exceptions, models
from sleepwatch.io.writers import writers

NIGHT_START = datetime.datetime(2024, 5, 2, 23, 0)


@pytest.fixture
def dummy_sessions(
    make_finished_session: Callable[..., models.SleepSession],
) -> List[models.SleepSession]:
    """Two finished nights, newest first."""
    return [
        make_finished_session(NIGHT_START + datetime.timedelta(days=1), hours=6),
        make_finished_session(NIGHT_START, hours=8),
    ]


def test_sessions_to_frame(dummy_sessions: List[models.SleepSession]) -> None:
    """Test sessions are tabulated oldest first."""
    frame = writers.sessions_to_frame(dummy_sessions)

    assert frame.columns == list(writers.SESSION_SCHEMA)
    assert frame["bedtime"].to_list() == [
        NIGHT_START,
        NIGHT_START + datetime.timedelta(days=1),
    ]
    assert frame["duration_ms"].to_list() == [8 * 3_600_000, 6 * 3_600_000]


def test_sessions_to_frame_empty() -> None:
    """Test an empty list gives an empty frame with the session schema."""
    frame = writers.sessions_to_frame([])

    assert frame.is_empty()
    assert frame.schema == pl.Schema(writers.SESSION_SCHEMA)


@pytest.mark.parametrize("suffix", [".csv", ".parquet"])
def test_save_results(
    dummy_sessions: List[models.SleepSession], tmp_path: pathlib.Path, suffix: str
) -> None:
    """Test sessions are written in the requested format."""
    output = tmp_path / "out" / f"sessions{suffix}"

    writers.SessionExport(sessions=dummy_sessions).save_results(output)

    assert output.exists()
    assert not output.with_suffix(".json").exists()


def test_save_results_with_params(
    dummy_sessions: List[models.SleepSession], tmp_path: pathlib.Path
) -> None:
    """Test processing parameters are written next to the sessions."""
    output = tmp_path / "sessions.csv"

    writers.SessionExport(
        sessions=dummy_sessions, processing_params={"sensitivity": "high"}
    ).save_results(output)

    saved = pl.read_csv(output)
    config_data = json.loads(output.with_suffix(".json").read_text())
    assert len(saved) == 2
    assert config_data["session_count"] == 2
    assert config_data["processing_parameters"] == {"sensitivity": "high"}
    assert "sleepwatch_version" in config_data


def test_empty_params(
    dummy_sessions: List[models.SleepSession], caplog: pytest.LogCaptureFixture
) -> None:
    """Test empty params raises logger warning."""
    caplog.set_level(logging.WARNING)
    export = writers.SessionExport(sessions=dummy_sessions, processing_params={})

    export.save_config_as_json(pathlib.Path("test_output.csv"))

    assert "No processing parameters to save as JSON" in caplog.text


def test_validate_output_invalid_file_type(tmp_path: pathlib.Path) -> None:
    """Test when output is an invalid file type."""
    output = tmp_path / "sessions.zip"

    with pytest.raises(exceptions.InvalidFileTypeError):
        writers.SessionExport.validate_output(output=output)
