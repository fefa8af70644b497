"""Function to read recorded motion data from a file."""

import pathlib
from typing import List, Union

import polars as pl

from sleepwatch.core import config, exceptions, models

logger = config.get_logger()

VALID_FILE_TYPES = (".csv", ".parquet")
ACCELERATION_COLUMNS = ("x", "y", "z")
ROTATION_COLUMNS = ("alpha", "beta", "gamma")


def read_recording_frame(file_name: Union[pathlib.Path, str]) -> pl.DataFrame:
    """Read a motion recording into a DataFrame sorted by time.

    The file must contain a 'time' column (datetimes, ISO strings, or epoch
    milliseconds) and acceleration columns 'x', 'y', 'z'. Rotation columns
    'alpha', 'beta', 'gamma' are optional and filled with zeros when absent.

    Args:
        file_name: The .csv or .parquet file to read.

    Returns:
        DataFrame with columns time, x, y, z, alpha, beta, gamma.

    Raises:
        InvalidFileTypeError: If the file extension is not supported.
        ValueError: If required columns are missing.
        EmptyRecordingError: If the file contains no rows.
    """
    file_name = pathlib.Path(file_name)
    if file_name.suffix not in VALID_FILE_TYPES:
        raise exceptions.InvalidFileTypeError(
            f"File type {file_name.suffix} is not supported. "
            f"Use one of {VALID_FILE_TYPES}."
        )

    if file_name.suffix == ".csv":
        data = pl.read_csv(file_name, try_parse_dates=True)
    else:
        data = pl.read_parquet(file_name)

    missing = [
        column
        for column in ("time", *ACCELERATION_COLUMNS)
        if column not in data.columns
    ]
    if missing:
        raise ValueError(f"Recording {file_name} is missing columns: {missing}")
    if data.is_empty():
        raise exceptions.EmptyRecordingError(f"Recording {file_name} has no samples.")

    if data.schema["time"] == pl.Utf8:
        data = data.with_columns(pl.col("time").str.to_datetime())

    data = data.with_columns(
        [
            pl.col(column).cast(pl.Float64).fill_null(0.0)
            if column in data.columns
            else pl.lit(0.0).alias(column)
            for column in (*ACCELERATION_COLUMNS, *ROTATION_COLUMNS)
        ]
    )

    logger.debug("Read %s samples from %s", len(data), file_name)
    return data.select(["time", *ACCELERATION_COLUMNS, *ROTATION_COLUMNS]).sort("time")


def read_recording(file_name: Union[pathlib.Path, str]) -> List[models.MotionSample]:
    """Read a motion recording as a list of samples, oldest first.

    Args:
        file_name: The .csv or .parquet file to read.

    Returns:
        The validated motion samples.
    """
    return [
        models.MotionSample.from_payload(
            {
                "timestamp": row["time"],
                "acceleration": {axis: row[axis] for axis in ACCELERATION_COLUMNS},
                "rotation": {angle: row[angle] for angle in ROTATION_COLUMNS},
            }
        )
        for row in read_recording_frame(file_name).iter_rows(named=True)
    ]
