"""Error taxonomy for workout and circuit sessions."""

from __future__ import annotations


class SessionError(Exception):
    """Base class for session engine errors."""


class ValidationError(SessionError):
    """A user action was refused; the session state is unchanged.

    ``title`` is short enough for an inline message, ``description`` explains
    what the user needs to do.
    """

    def __init__(self, title: str, description: str = "") -> None:
        super().__init__(title if not description else f"{title}: {description}")
        self.title = title
        self.description = description


class TransientIOError(SessionError):
    """A call to the logging API failed. Local state is kept; the caller may retry."""

    def __init__(self, message: str, *, endpoint: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class InvariantViolation(SessionError):
    """An operation targeted a stale or disposed session."""


class TimerSchedulingError(SessionError):
    """The scheduling primitive failed; the timer instance is faulted until reset."""


NO_PROGRESS_LOGGED = "No progress logged"
ROUND_ALREADY_COMPLETED = "Round already completed"
CIRCUIT_ALREADY_COMPLETED = "Circuit already completed"
