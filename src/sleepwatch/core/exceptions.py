"""Custom exceptions for sleepwatch."""

from sleepwatch.core import config

logger = config.get_logger()


class LoggedException(Exception):
    """Base class that automatically logs messages."""

    def __init__(self, message: str) -> None:
        """Initialize a new instance of the LoggedException class.

        Args:
            message: The message to display.
        """
        logger.exception(message)
        super().__init__(message)


class SensorPermissionError(LoggedException):
    """The motion source refused access to its sensor."""

    pass


class PersistenceError(LoggedException):
    """A session or setting could not be written to the session store."""

    pass


class SessionStateError(LoggedException):
    """A session was asked to make a transition it cannot make."""

    pass


class InvalidFileTypeError(LoggedException):
    """Sleepwatch did not expect this file extension."""

    pass


class EmptyRecordingError(LoggedException):
    """The motion recording contained no samples."""

    pass
