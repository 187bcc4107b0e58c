"""Error hierarchy shared by the relay client, controller and history store.

Everything raised across module boundaries derives from ``LyraError`` so a
front end can catch one type and show ``message`` to the user.
"""

from __future__ import annotations


class LyraError(Exception):
    """Base error.

    Attributes:
        code: machine-readable error code (e.g. "EMPTY_PROMPT").
        message: human-readable message.
        extra: additional diagnostic fields (status codes, causes).
    """

    def __init__(self, code: str, message: str, **extra):
        self.code = code
        self.message = message
        self.extra = extra
        super().__init__(message)


class ValidationError(LyraError):
    """Input rejected before any state change or network activity."""


class EmptyPromptError(ValidationError):
    def __init__(self) -> None:
        super().__init__(code="EMPTY_PROMPT", message="Message must not be empty")


class SubmissionPendingError(LyraError):
    """A submission is already in flight for this session."""

    def __init__(self, pending_id: str) -> None:
        super().__init__(
            code="SUBMISSION_PENDING",
            message="Please wait for the current reply",
            pending_id=pending_id,
        )


class RelayError(LyraError):
    """The relay boundary did not produce a usable reply."""


class RelayUnavailableError(RelayError):
    """Transport failure: connection refused, DNS, timeout."""


class RelayRejectedError(RelayError):
    """The relay answered with a non-success HTTP status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(
            code="RELAY_REJECTED",
            message=f"Relay returned HTTP {status_code}",
            status_code=status_code,
        )
        self.status_code = status_code


class RelayApplicationError(RelayError):
    """The relay answered 2xx but the body reports failure or is unreadable."""


class PersistenceError(LyraError):
    """The history store could not complete a read or write."""


class AccessDeniedError(PersistenceError):
    """Caller attempted to touch another owner's records."""

    def __init__(self, caller: str, owner: str) -> None:
        super().__init__(
            code="ACCESS_DENIED",
            message="Not allowed to access another user's history",
            caller=caller,
            owner=owner,
        )
