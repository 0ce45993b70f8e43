"""Error taxonomy shared by repositories, read models and routers.

Cancellation is not part of this hierarchy: torn-down lookups and
subscriptions raise plain ``asyncio.CancelledError``, which is never
reported to users.
"""


class JourneyLogError(Exception):
    """Base class for errors raised by journeylog."""


class NotFoundError(JourneyLogError):
    """A referenced user or record does not exist."""


class TransientIOError(JourneyLogError):
    """Store or network failure. Callers decide whether to retry."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class InvalidCursorError(JourneyLogError):
    """A cursor was used against a filter it was not produced under."""


class StreamDisconnectedError(JourneyLogError):
    """A live subscription ended because of an upstream error or a closed session."""
