"""Smoke tests for sleepwatch cli."""

import pathlib

from typer import testing

from sleepwatch.core import cli


def test_replay_end_to_end(
    night_recording: pathlib.Path, tmp_path: pathlib.Path
) -> None:
    """Test a recording is replayed, stored, exported and summarised."""
    runner = testing.CliRunner()
    store_path = tmp_path / "store.json"
    output = tmp_path / "sessions.parquet"

    replay_result = runner.invoke(
        cli.app,
        [
            "replay",
            str(night_recording),
            "--store",
            str(store_path),
            "--output",
            str(output),
        ],
    )
    sessions_result = runner.invoke(cli.app, ["sessions", "--store", str(store_path)])
    summary_result = runner.invoke(cli.app, ["summary", "--store", str(store_path)])

    assert replay_result.exit_code == 0
    assert "2024-05-02T23:15 -> 2024-05-03T07:30" in replay_result.output
    assert output.exists()
    assert output.with_suffix(".json").exists()
    assert sessions_result.exit_code == 0
    assert len(sessions_result.output.splitlines()) == 1
    assert summary_result.exit_code == 0
    assert "Sessions: 1" in summary_result.output
