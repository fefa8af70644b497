"""Drive motion ingestion and periodic sleep detection."""

import asyncio
import contextlib
import datetime
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import pydantic

from sleepwatch.core import config, exceptions, models
from sleepwatch.io.stores import stores
from sleepwatch.processing import detector, session_machine
from sleepwatch.service import motion_source

logger = config.get_logger()

Clock = Callable[[], datetime.datetime]


@dataclass
class TickResult:
    """Dataclass to store the outcome of one evaluation tick.

    Attributes:
        evaluation: The detector evaluation, None if the tick was skipped because
            tracking is off.
        saved: Sessions written to the store during this tick, including retried
            ones.
        error: The persistence failure of this tick, if any. Sessions that could
            not be written stay pending and are retried on the next tick.
    """

    evaluation: Optional[detector.Evaluation] = None
    saved: List[models.SleepSession] = field(default_factory=list)
    error: Optional[exceptions.PersistenceError] = None


class DetectionScheduler:
    """Owns the tracking lifecycle of one sleep detector.

    Create one scheduler per device and pass it to whatever needs it. Motion
    events are ingested as they arrive; every evaluation interval the detector is
    evaluated and finished sessions are written to the store. A finished session
    is only released once the store has accepted it.

    Attributes:
        source: The motion feed.
        store: Where sessions, settings and the tracking flag are kept.
        detector: The detection state.
        clock: Returns the current local time.
    """

    def __init__(
        self,
        source: motion_source.MotionSource,
        store: stores.SessionStore,
        detection_config: Optional[models.DetectionConfig] = None,
        clock: Clock = datetime.datetime.now,
    ) -> None:
        """Initialize an idle scheduler.

        Args:
            source: The motion feed.
            store: The session store.
            detection_config: Detector constants. Defaults to medium sensitivity.
            clock: Source of the current local time.
        """
        self.source = source
        self.store = store
        self.clock = clock
        self.detector = detector.SleepDetector(detection_config, last_activity=clock())
        self._tracking = False
        self._subscription: Optional[motion_source.Subscription] = None
        self._tick_task: Optional["asyncio.Task[None]"] = None
        self._lifecycle_lock = asyncio.Lock()
        self._tick_lock = asyncio.Lock()
        self._pending: List[models.SleepSession] = []

    @classmethod
    def from_settings(
        cls,
        settings: models.Settings,
        source: motion_source.MotionSource,
        store: stores.SessionStore,
        clock: Clock = datetime.datetime.now,
    ) -> "DetectionScheduler":
        """Create a scheduler whose thresholds follow the user's sensitivity."""
        return cls(
            source=source,
            store=store,
            detection_config=models.DetectionConfig.from_sensitivity(
                settings.detection_sensitivity
            ),
            clock=clock,
        )

    @property
    def detection_config(self) -> models.DetectionConfig:
        """Constants used by the detector."""
        return self.detector.detection_config

    @property
    def pending_sessions(self) -> Tuple[models.SleepSession, ...]:
        """Finished sessions the store has not accepted yet."""
        return tuple(self._pending)

    def is_tracking(self) -> bool:
        """Whether motion is being ingested and ticks are scheduled."""
        return self._tracking

    def current_state(self) -> models.DetectionState:
        """Snapshot of the detection state. Safe to call at any frequency."""
        return self.detector.snapshot(self.clock(), self._tracking)

    async def start_tracking(self) -> bool:
        """Start ingesting motion and evaluating periodically.

        Calling it while already tracking does nothing. If the motion source
        denies access, tracking stays off; the caller may try again later.
        The newest open session in the store, manual or automatic, is resumed
        unless the detector already holds one.

        Returns:
            True if tracking is active when the call returns.
        """
        async with self._lifecycle_lock:
            if self._tracking:
                return True
            try:
                await self._request_access()
            except exceptions.SensorPermissionError:
                return False

            await self._resume_open_session()
            self.detector.reset_activity(self.clock())
            self._tracking = True
            self._subscription = self.source.subscribe(
                self.ingest, self.detection_config.sample_interval
            )
            self._tick_task = asyncio.get_running_loop().create_task(self._run_ticks())
            await self._persist_tracking_flag(True)
            logger.info("Sleep tracking started.")
            return True

    async def stop_tracking(self) -> None:
        """Stop ingesting motion and cancel pending ticks.

        No tick runs after this returns. An open session is not finalized; it is
        checkpointed to the store and resumed by the next `start_tracking`.
        """
        async with self._lifecycle_lock:
            self._tracking = False
            if self._subscription is not None:
                self._subscription.remove()
                self._subscription = None
            if self._tick_task is not None:
                self._tick_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._tick_task
                self._tick_task = None

            open_session = self.detector.current_session
            if open_session is not None:
                try:
                    await self.store.save(open_session)
                except exceptions.PersistenceError:
                    logger.warning(
                        "Open session %s could not be checkpointed.", open_session.id
                    )
            await self._persist_tracking_flag(False)
            logger.info("Sleep tracking stopped.")

    async def apply_settings(self, settings: models.Settings) -> bool:
        """Start or stop tracking according to the auto detection setting.

        Thresholds are fixed when the scheduler is built; a new sensitivity needs
        a new scheduler, see `from_settings`.

        Returns:
            Whether tracking is active afterwards.
        """
        if settings.auto_detection_enabled:
            return await self.start_tracking()
        await self.stop_tracking()
        return False

    async def shutdown(self) -> List[models.SleepSession]:
        """Stop tracking and make a final attempt to store pending sessions.

        Returns:
            Sessions that still could not be stored.
        """
        await self.stop_tracking()
        async with self._tick_lock:
            await self._flush_pending()
        return list(self._pending)

    async def start_manual_session(
        self, notes: Optional[str] = None
    ) -> models.SleepSession:
        """Open a session declared by the user and store it.

        While it is open, automatic detection neither ends it nor opens another
        session. Works whether or not tracking is active.

        Args:
            notes: Optional free text.

        Returns:
            The open manual session.

        Raises:
            SessionStateError: If a session is already open.
            PersistenceError: If the session could not be stored. Nothing changes
                in that case.
        """
        async with self._tick_lock:
            open_session = self.detector.current_session
            if open_session is None:
                open_session = await self._stored_open_session()
            if open_session is not None:
                raise exceptions.SessionStateError(
                    f"Session {open_session.id} is already open."
                )
            session = session_machine.start_manual_session(self.clock(), notes=notes)
            await self.store.save(session)
            self.detector.adopt_session(session)
            return session

    async def finish_manual_session(self) -> TickResult:
        """Close the open manual session and store it.

        A session the store rejects stays pending and is retried on later ticks.

        Returns:
            TickResult with the sessions saved and the persistence error, if any.

        Raises:
            SessionStateError: If no manual session is open.
        """
        async with self._tick_lock:
            await self._resume_open_session()
            finished = self.detector.finish_manual_session(self.clock())
            self._pending.append(finished)
            result = TickResult()
            result.saved, result.error = await self._flush_pending()
            return result

    def ingest(self, payload: motion_source.MotionPayload) -> None:
        """Motion source callback.

        The payload is validated once here. Malformed payloads are logged and
        dropped; events arriving while not tracking are ignored.
        """
        if not self._tracking:
            return
        try:
            sample = models.MotionSample.from_payload(payload, received_at=self.clock())
        except (pydantic.ValidationError, ValueError) as e:
            logger.warning("Dropping malformed motion payload: %s", e)
            return
        self.detector.ingest(sample)

    async def evaluate(self) -> TickResult:
        """Run one detection tick.

        Ticks never overlap. Pending sessions are retried first, then the detector
        is evaluated; a session it finishes is awaited into the store.

        Returns:
            The TickResult of this tick.
        """
        async with self._tick_lock:
            result = TickResult()
            if not self._tracking:
                return result

            flushed, error = await self._flush_pending()
            result.saved.extend(flushed)
            result.error = error

            result.evaluation = self.detector.evaluate(self.clock())
            finished = result.evaluation.transition.finished_session()
            if finished is not None:
                self._pending.append(finished)
                flushed, error = await self._flush_pending()
                result.saved.extend(flushed)
                result.error = error or result.error
            return result

    async def _request_access(self) -> None:
        if not await self.source.request_permission():
            raise exceptions.SensorPermissionError(
                "Motion permission not granted; sleep tracking stays off."
            )

    async def _stored_open_session(self) -> Optional[models.SleepSession]:
        """Newest open session in the store that has not finished meanwhile.

        A stored session that also sits in the pending queue was finalized here;
        only its open checkpoint reached the store.
        """
        pending_ids = {session.id for session in self._pending}
        for session in await self.store.list_open():
            if session.id not in pending_ids:
                return session
        return None

    async def _resume_open_session(self) -> None:
        if self.detector.current_session is not None:
            return
        session = await self._stored_open_session()
        if session is not None:
            self.detector.adopt_session(session)

    async def _persist_tracking_flag(self, value: bool) -> None:
        try:
            await self.store.set_tracking_flag(value)
        except exceptions.PersistenceError:
            logger.warning("Tracking flag could not be stored.")

    async def _flush_pending(
        self,
    ) -> Tuple[List[models.SleepSession], Optional[exceptions.PersistenceError]]:
        saved: List[models.SleepSession] = []
        while self._pending:
            session = self._pending[0]
            try:
                await self.store.save(session)
            except exceptions.PersistenceError as e:
                logger.error(
                    "Session %s could not be stored, %s pending.",
                    session.id,
                    len(self._pending),
                )
                return saved, e
            saved.append(self._pending.pop(0))
        return saved, None

    async def _run_ticks(self) -> None:
        delay = self.detection_config.evaluation_interval.total_seconds()
        while True:
            await asyncio.sleep(delay)
            await self.evaluate()
