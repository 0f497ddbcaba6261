# src/taskflow/errors.py

"""
Error taxonomy.

Client-visible (no retry): NotFound, Forbidden, PolicyViolation, ValidationError.
Absorbed by the scheduler: TransientDeliveryFailure.
Aborts the current sweep pass: StoreUnavailable.
Internal assertion: InvalidState.
"""

from __future__ import annotations


class TaskflowError(Exception):
    """Base class for all taskflow errors."""


class NotFound(TaskflowError):
    def __init__(self, what: str, ident: object) -> None:
        super().__init__(f"{what} not found: {ident}")
        self.what = what
        self.ident = ident


class Forbidden(TaskflowError):
    def __init__(self, message: str = "Not authorized to modify this task") -> None:
        super().__init__(message)


class PolicyViolation(TaskflowError):
    """A lifecycle rule (the dependency gate) rejected a transition."""

    def __init__(self, message: str, *, blocking: list[int] | None = None) -> None:
        super().__init__(message)
        self.blocking = list(blocking or [])


class ValidationError(TaskflowError, ValueError):
    pass


class InvalidState(TaskflowError):
    """Precondition violation; should be unreachable from normal call paths."""


class TransientDeliveryFailure(TaskflowError):
    def __init__(self, channel: str, target: str | None, reason: str) -> None:
        super().__init__(f"{channel} delivery to {target!r} failed: {reason}")
        self.channel = channel
        self.target = target
        self.reason = reason


class StoreUnavailable(TaskflowError):
    """The record store could not be reached or returned a storage error."""


CLIENT_ERRORS: tuple[type[TaskflowError], ...] = (
    NotFound,
    Forbidden,
    PolicyViolation,
    ValidationError,
)
