"""Module containing the output classes for writing sessions to files."""

import datetime
import json
import pathlib
from typing import Any, Dict, List, Optional

import polars as pl
import pydantic

from sleepwatch.core import config, exceptions, models

VALID_FILE_TYPES = (".csv", ".parquet")

logger = config.get_logger()

SESSION_SCHEMA = {
    "id": pl.Utf8,
    "bedtime": pl.Datetime("us"),
    "wake_time": pl.Datetime("us"),
    "duration_ms": pl.Int64,
    "quality_percent": pl.Int64,
    "is_manual": pl.Boolean,
    "confidence": pl.Float64,
    "notes": pl.Utf8,
}


def sessions_to_frame(sessions: List[models.SleepSession]) -> pl.DataFrame:
    """Tabulate sessions, oldest bedtime first.

    Args:
        sessions: The sessions to tabulate.

    Returns:
        DataFrame with one row per session and the columns of SESSION_SCHEMA.
    """
    rows = [
        {column: getattr(session, column) for column in SESSION_SCHEMA}
        for session in sessions
    ]
    return pl.DataFrame(rows, schema=SESSION_SCHEMA).sort("bedtime")


class SessionExport(pydantic.BaseModel):
    """Dataclass containing sessions to be written to disk."""

    sessions: List[models.SleepSession]
    processing_params: Optional[Dict[str, Any]] = None

    def save_results(self, output: pathlib.Path) -> None:
        """Convert to polars and save the dataframe as a csv or parquet file.

        Args:
            output: The path and file name of the data to be saved. as either a csv or
                parquet files.
        """
        logger.debug("Saving %s sessions.", len(self.sessions))
        self.validate_output(output=output)
        output.parent.mkdir(parents=True, exist_ok=True)

        results_dataframe = sessions_to_frame(self.sessions)

        if output.suffix == ".csv":
            results_dataframe.write_csv(output, separator=",")
        elif output.suffix == ".parquet":
            results_dataframe.write_parquet(output)

        logger.info("Sessions saved in: %s", output)

        if self.processing_params:
            self.save_config_as_json(output)

    def save_config_as_json(self, output_path: pathlib.Path) -> None:
        """Save processing parameters as a JSON configuration file.

        Args:
            output_path: Path where the data file was saved. The JSON file will use
                the same name but with .json extension.
        """
        if not self.processing_params:
            logger.warning("No processing parameters to save as JSON")
            return

        config_data = {
            "export_time": datetime.datetime.now().isoformat(timespec="seconds"),
            "sleepwatch_version": config.get_version(),
            "session_count": len(self.sessions),
            "processing_parameters": self.processing_params,
        }

        config_path = output_path.with_suffix(".json")

        with open(config_path, "w") as f:
            json.dump(config_data, f, indent=4, default=str)

        logger.debug("Configuration saved in: %s", config_path)

    @classmethod
    def validate_output(cls, output: pathlib.Path) -> None:
        """Validates that the output path is a valid format.

        Args:
            output: the name of the file to be saved, and the directory it will
                be saved in. Must be a .csv or .parquet file.

        Raises:
            InvalidFileTypeError:If the output file path ends with any extension other
                    than csv or parquet.
        """
        if output.suffix not in VALID_FILE_TYPES:
            raise exceptions.InvalidFileTypeError(
                f"The extension: {output.suffix} is not supported. "
                "Please save the file as .csv or .parquet",
            )
