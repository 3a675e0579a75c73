"""
Vesting-specific exception hierarchy.

Provides typed exceptions for ledger operations so that callers can tell
an authorization failure from a bad parameter, a state violation or an
integrity fault without parsing messages.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vesting ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the caller may retry the operation
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Caller Errors ====================


class UnauthorizedError(VestingError):
    """Raised when the caller lacks the authority for an operation."""
    pass


class InvalidArgumentError(VestingError):
    """Raised when a constructor or schedule parameter is invalid.

    The offending parameter is available as ``field``.
    """

    def __init__(self, message: str, field: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        self.details.setdefault("field", field)


class InvalidStateError(VestingError):
    """Raised for operations on revoked, non-revocable or missing schedules."""
    pass


class ScheduleNotFoundError(InvalidStateError):
    """Raised when a schedule ID does not resolve to an initialized schedule."""

    def __init__(self, schedule_id: str, **kwargs: Any) -> None:
        super().__init__(f"Vesting schedule {schedule_id} not found", **kwargs)
        self.schedule_id = schedule_id


class InsufficientVestedError(VestingError):
    """Raised when a release exceeds the currently vested amount."""

    def __init__(self, message: str, requested: int, available: int, **kwargs: Any) -> None:
        super().__init__(message, recoverable=True, **kwargs)
        self.requested = requested
        self.available = available


class InsufficientFundsError(VestingError):
    """Raised when a withdrawal exceeds the unreserved surplus."""

    def __init__(self, message: str, requested: int, available: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.requested = requested
        self.available = available


# ==================== Integrity Faults ====================


class IntegrityError(VestingError):
    """Raised when an internal invariant is broken.

    These must never be triggerable by valid inputs; seeing one means a
    bookkeeping defect and the operation is aborted without state change.
    """
    pass


class ArithmeticOverflowError(IntegrityError):
    """Raised when an unsigned intermediate exceeds the uint256 range."""
    pass


class ArithmeticUnderflowError(IntegrityError):
    """Raised when an unsigned intermediate would become negative."""
    pass


class DuplicateScheduleIdError(IntegrityError):
    """Raised when a derived schedule ID is already taken."""
    pass


# ==================== Collaborator Errors ====================


class TransferFailedError(VestingError):
    """Raised when the token ledger refuses or fails a transfer."""

    def __init__(self, message: str, recipient: str, amount: int, **kwargs: Any) -> None:
        super().__init__(message, recoverable=True, **kwargs)
        self.recipient = recipient
        self.amount = amount


class TokenError(VestingError):
    """Raised by the reference token for rejected token operations."""
    pass


class StorageError(VestingError):
    """Raised when the durable ledger store cannot be read or written."""
    pass
