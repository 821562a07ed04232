"""Error taxonomy shared by the payments and identity services.

Every error carries the HTTP status it maps to so each app can register a
single exception handler for `PaylinkError`.
"""

from collections.abc import Iterable


class PaylinkError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(PaylinkError):
    status_code = 404


class Unauthorized(PaylinkError):
    status_code = 401


class ServiceUnavailable(PaylinkError):
    """Remote dependency failed. The token gateway turns this into `Unauthorized`."""

    status_code = 503


class Conflict(PaylinkError):
    status_code = 409


class ConcurrencyConflict(Conflict):
    """A conditional save lost the race against another writer of the same record."""


class ReferenceCollision(PaylinkError):
    """Store reported a duplicate payment reference on insert."""

    status_code = 500


class InvalidTransition(PaylinkError, ValueError):
    """Requested status move is not an edge of the transition table."""

    status_code = 400

    def __init__(self, current, requested, allowed: Iterable = ()) -> None:
        self.current = current
        self.requested = requested
        self.allowed = frozenset(allowed)
        legal = ", ".join(sorted(_name(s) for s in self.allowed)) or "none (terminal state)"
        super().__init__(
            f"Invalid state transition: {_name(current)} -> {_name(requested)}. "
            f"Allowed transitions from {_name(current)}: {legal}"
        )


def _name(status) -> str:
    return getattr(status, "value", str(status))
