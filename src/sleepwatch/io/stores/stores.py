"""Persistence of sleep sessions, settings and the tracking flag."""

import abc
import asyncio
import datetime
import json
import os
import pathlib
from typing import Any, Dict, List, Optional, Union

import pydantic

from sleepwatch.core import config, exceptions, models

logger = config.get_logger()


class StoreDocument(pydantic.BaseModel):
    """Everything a session store keeps, as one document."""

    sessions: Dict[str, models.SleepSession] = pydantic.Field(default_factory=dict)
    settings: models.Settings = pydantic.Field(default_factory=models.Settings)
    tracking: bool = False


def parse_document(raw: Any) -> StoreDocument:
    """Build a StoreDocument from decoded json, dropping whatever is malformed.

    Invalid sessions are skipped, invalid settings fall back to their defaults.
    Nothing in here raises.

    Args:
        raw: The decoded json content.

    Returns:
        The parsed document.
    """
    document = StoreDocument()
    if not isinstance(raw, dict):
        logger.warning("Stored data is not an object, starting empty.")
        return document

    raw_sessions = raw.get("sessions") or []
    if isinstance(raw_sessions, dict):
        raw_sessions = list(raw_sessions.values())
    if not isinstance(raw_sessions, list):
        logger.warning("Stored sessions are malformed, ignoring them.")
        raw_sessions = []
    for raw_session in raw_sessions:
        try:
            session = models.SleepSession.model_validate(raw_session)
        except pydantic.ValidationError as e:
            logger.warning("Skipping malformed stored session: %s", e)
            continue
        document.sessions[session.id] = session

    raw_settings = raw.get("settings")
    if isinstance(raw_settings, dict):
        defaults = models.Settings().model_dump()
        for key, value in raw_settings.items():
            if key not in defaults:
                continue
            try:
                models.Settings.model_validate({**defaults, key: value})
            except pydantic.ValidationError:
                logger.warning("Ignoring malformed setting %s=%r", key, value)
                continue
            defaults[key] = value
        document.settings = models.Settings.model_validate(defaults)

    document.tracking = raw.get("tracking") is True
    return document


class SessionStore(abc.ABC):
    """Key-value store of sleep sessions and user settings.

    Subclasses only provide loading and dumping of the whole document;
    read-modify-write cycles are serialised here.
    """

    def __init__(self) -> None:
        """Initialize the store."""
        self._lock = asyncio.Lock()
        self._document: Optional[StoreDocument] = None

    @abc.abstractmethod
    async def _load(self) -> StoreDocument:
        """Read the document from the backing storage."""
        pass

    @abc.abstractmethod
    async def _dump(self, document: StoreDocument) -> None:
        """Write the document to the backing storage.

        Raises:
            PersistenceError: If the document could not be written.
        """
        pass

    async def _current(self) -> StoreDocument:
        if self._document is None:
            self._document = await self._load()
        return self._document

    async def _commit(self, document: StoreDocument) -> None:
        await self._dump(document)
        self._document = document

    async def save(self, session: models.SleepSession) -> None:
        """Insert or replace a session by id.

        Raises:
            PersistenceError: If the session could not be written.
        """
        async with self._lock:
            current = await self._current()
            document = current.model_copy(
                update={"sessions": {**current.sessions, session.id: session}}
            )
            await self._commit(document)
        logger.debug("Saved session %s", session.id)

    async def get(self, session_id: str) -> Optional[models.SleepSession]:
        """Return the session with that id, or None."""
        async with self._lock:
            return (await self._current()).sessions.get(session_id)

    async def delete(self, session_id: str) -> bool:
        """Remove a session.

        Returns:
            True if a session was removed.

        Raises:
            PersistenceError: If the change could not be written.
        """
        async with self._lock:
            current = await self._current()
            if session_id not in current.sessions:
                return False
            sessions = {
                key: value
                for key, value in current.sessions.items()
                if key != session_id
            }
            await self._commit(current.model_copy(update={"sessions": sessions}))
        return True

    async def list_all(self) -> List[models.SleepSession]:
        """All sessions, newest bedtime first."""
        async with self._lock:
            sessions = list((await self._current()).sessions.values())
        return sorted(sessions, key=lambda session: session.bedtime, reverse=True)

    async def list_since(
        self, instant: datetime.datetime
    ) -> List[models.SleepSession]:
        """Sessions whose bedtime is at or after `instant`, newest first."""
        return [
            session for session in await self.list_all() if session.bedtime >= instant
        ]

    async def list_open(self) -> List[models.SleepSession]:
        """Sessions without a wake time, newest first."""
        return [session for session in await self.list_all() if session.is_open]

    async def clear_all(self) -> None:
        """Remove every session and reset settings and the tracking flag.

        Raises:
            PersistenceError: If the change could not be written.
        """
        async with self._lock:
            await self._commit(StoreDocument())
        logger.info("Cleared all stored data.")

    async def load_settings(self) -> models.Settings:
        """The stored settings, defaults for anything missing."""
        async with self._lock:
            return (await self._current()).settings

    async def update_settings(self, **changes: Any) -> models.Settings:
        """Merge changes into the stored settings.

        Returns:
            The updated settings.

        Raises:
            pydantic.ValidationError: If a change is invalid.
            PersistenceError: If the settings could not be written.
        """
        async with self._lock:
            current = await self._current()
            settings = models.Settings.model_validate(
                {**current.settings.model_dump(), **changes}
            )
            await self._commit(current.model_copy(update={"settings": settings}))
        return settings

    async def get_tracking_flag(self) -> bool:
        """Whether tracking was active when last recorded."""
        async with self._lock:
            return (await self._current()).tracking

    async def set_tracking_flag(self, value: bool) -> None:
        """Record whether tracking is active.

        Raises:
            PersistenceError: If the flag could not be written.
        """
        async with self._lock:
            current = await self._current()
            await self._commit(current.model_copy(update={"tracking": value}))


class InMemorySessionStore(SessionStore):
    """Session store that lives only as long as the process."""

    async def _load(self) -> StoreDocument:
        return StoreDocument()

    async def _dump(self, document: StoreDocument) -> None:
        pass


class JsonSessionStore(SessionStore):
    """Session store backed by a single json file.

    Attributes:
        path: Location of the json file. It is created on the first write.
    """

    def __init__(self, path: Union[pathlib.Path, str]) -> None:
        """Initialize the store.

        Args:
            path: Location of the json file.
        """
        super().__init__()
        self.path = pathlib.Path(path)

    def _read(self) -> StoreDocument:
        if not self.path.exists():
            return StoreDocument()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Could not read %s, starting empty: %s", self.path, e)
            return StoreDocument()
        return parse_document(raw)

    def _write(self, document: StoreDocument) -> None:
        payload = {
            "sessions": [
                session.model_dump(mode="json")
                for session in document.sessions.values()
            ],
            "settings": document.settings.model_dump(mode="json"),
            "tracking": document.tracking,
        }
        temporary = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temporary.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(temporary, self.path)
        except OSError as e:
            raise exceptions.PersistenceError(
                f"Could not write session store {self.path}: {e}"
            ) from e

    async def _load(self) -> StoreDocument:
        return await asyncio.to_thread(self._read)

    async def _dump(self, document: StoreDocument) -> None:
        await asyncio.to_thread(self._write, document)
