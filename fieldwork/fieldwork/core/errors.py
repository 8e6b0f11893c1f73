"""Error taxonomy and the result values handed to the UI.

Errors are raised inside the engine's collaborators (store, state machine,
buffer) and converted to ``Result`` values at the engine boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class FieldworkError(Exception):
    """Base class for every failure the engine knows how to report."""

    kind = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FieldworkError):
    """Required input is missing or malformed. The user corrects and retries."""

    kind = "validation_error"


class IllegalTransition(FieldworkError):
    """The requested transition is not allowed from the current state."""

    kind = "illegal_transition"


class NotFound(FieldworkError):
    kind = "not_found"


class NetworkError(FieldworkError):
    """The store could not be reached or answered with an error."""

    kind = "network_error"

    def __init__(self, message: str = "", status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedRecord(NetworkError):
    """The store answered with a record that fails validation."""

    kind = "malformed_record"


class Timeout(FieldworkError):
    kind = "timeout"


class SessionExpired(FieldworkError):
    """Bearer token missing or rejected. Fatal to the current session."""

    kind = "session_expired"


@dataclass(frozen=True)
class Result:
    ok: bool
    value: Any = None
    error: FieldworkError | None = None

    @classmethod
    def success(cls, value: Any = None) -> Result:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: FieldworkError) -> Result:
        return cls(ok=False, error=error)

    @property
    def error_kind(self) -> str | None:
        return self.error.kind if self.error is not None else None
