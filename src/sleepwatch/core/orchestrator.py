"""Replay recorded motion through the sleep detector."""

import asyncio
import datetime
import logging
import pathlib
from typing import List, Optional, Sequence, Union

from rich import progress

from sleepwatch.core import config, models
from sleepwatch.io.readers import readers
from sleepwatch.io.stores import stores
from sleepwatch.io.writers import writers
from sleepwatch.processing import detector

logger = config.get_logger()


def run(
    input: Union[pathlib.Path, str],
    store_path: Optional[Union[pathlib.Path, str]] = None,
    output: Optional[Union[pathlib.Path, str]] = None,
    sensitivity: models.Sensitivity = "medium",
    evaluation_interval: float = 30,
    verbosity: int = logging.WARNING,
) -> List[models.SleepSession]:
    """Detect sleep sessions in a motion recording.

    The recording is played back in timestamp order. The detector is evaluated
    every `evaluation_interval` seconds of recording time, exactly as the live
    scheduler would, and every session it produces is written to the store.

    Args:
        input: Path to the .csv or .parquet recording, see
            `readers.read_recording_frame` for the expected columns.
        store_path: Json session store to write sessions into. Sessions are only
            kept in memory when None.
        output: Optional .csv or .parquet file to export the sessions to.
        sensitivity: Detection sensitivity, 'low', 'medium' or 'high'.
        evaluation_interval: Seconds of recording time between ticks.
        verbosity: The logging level for the logger.

    Returns:
        The sessions detected, oldest first. The last one may still be open if the
        recording ends while the subject is asleep.

    Raises:
        ValueError: If the evaluation interval is not positive.
        InvalidFileTypeError: If the input or output type is not supported.
    """
    logger.setLevel(verbosity)

    if evaluation_interval <= 0:
        raise ValueError("Evaluation interval must be greater than 0.")

    input = pathlib.Path(input)
    output = pathlib.Path(output) if output is not None else None
    if output is not None:
        writers.SessionExport.validate_output(output)

    detection_config = models.DetectionConfig.from_sensitivity(
        sensitivity,
        evaluation_interval=datetime.timedelta(seconds=evaluation_interval),
    )
    store: stores.SessionStore = (
        stores.JsonSessionStore(store_path)
        if store_path is not None
        else stores.InMemorySessionStore()
    )

    samples = readers.read_recording(input)
    sessions = asyncio.run(replay(samples, store, detection_config))
    logger.info("Detected %s sessions in %s", len(sessions), input)

    if output is not None:
        writers.SessionExport(
            sessions=sessions,
            processing_params={
                "input": str(input),
                "sensitivity": sensitivity,
                "evaluation_interval_seconds": evaluation_interval,
                "detection_config": detection_config.model_dump(mode="json"),
            },
        ).save_results(output)

    return sessions


async def replay(
    samples: Sequence[models.MotionSample],
    store: stores.SessionStore,
    detection_config: Optional[models.DetectionConfig] = None,
) -> List[models.SleepSession]:
    """Feed samples through a fresh detector on a simulated clock.

    Args:
        samples: Motion samples sorted by timestamp.
        store: Receives every finished session, and the open one at the end.
        detection_config: Detector constants. Defaults to medium sensitivity.

    Returns:
        The sessions detected, oldest first.
    """
    if not samples:
        return []
    detection_config = detection_config or models.DetectionConfig()
    sleep_detector = detector.SleepDetector(
        detection_config, last_activity=samples[0].timestamp
    )
    interval = detection_config.evaluation_interval
    next_tick = samples[0].timestamp + interval
    sessions: List[models.SleepSession] = []

    with progress.Progress(
        progress.SpinnerColumn(),
        progress.TextColumn("[progress.description]{task.description}"),
        progress.BarColumn(),
        progress.TaskProgressColumn(),
        console=None,
        transient=True,
    ) as progress_bar:
        task = progress_bar.add_task("[cyan]Replaying motion...", total=len(samples))
        for sample in samples:
            while sample.timestamp >= next_tick:
                evaluation = sleep_detector.evaluate(next_tick)
                finished = evaluation.transition.finished_session()
                if finished is not None:
                    await store.save(finished)
                    sessions.append(finished)
                next_tick += interval
            sleep_detector.ingest(sample)
            progress_bar.advance(task)

    open_session = sleep_detector.current_session
    if open_session is not None:
        await store.save(open_session)
        sessions.append(open_session)
    return sessions
