"""
Token Vesting - cliff and linear-slice vesting over a pre-funded token balance.

Main Components:
- VestingLedger: schedule creation, release, revocation and surplus withdrawal
- calculator: pure releasable-amount computation with checked uint256 math
- LedgerStore: SQLite-backed durable state
- Token: in-memory mintable token implementing the TokenLedger capability
"""

__version__ = "0.1.0"

from .calculator import releasable_amount, vested_amount
from .exceptions import (
    ArithmeticOverflowError,
    ArithmeticUnderflowError,
    DuplicateScheduleIdError,
    InsufficientFundsError,
    InsufficientVestedError,
    IntegrityError,
    InvalidArgumentError,
    InvalidStateError,
    ScheduleNotFoundError,
    StorageError,
    TokenError,
    TransferFailedError,
    UnauthorizedError,
    VestingError,
)
from .ledger import VestingLedger
from .schedule import VestingSchedule, compute_schedule_id
from .storage import LedgerStore
from .token_ledger import Token, TokenLedger

__all__ = [
    # Ledger
    "VestingLedger",
    "VestingSchedule",
    "compute_schedule_id",
    # Calculator
    "releasable_amount",
    "vested_amount",
    # Collaborators
    "LedgerStore",
    "Token",
    "TokenLedger",
    # Errors
    "VestingError",
    "UnauthorizedError",
    "InvalidArgumentError",
    "InvalidStateError",
    "ScheduleNotFoundError",
    "InsufficientVestedError",
    "InsufficientFundsError",
    "IntegrityError",
    "ArithmeticOverflowError",
    "ArithmeticUnderflowError",
    "DuplicateScheduleIdError",
    "TransferFailedError",
    "TokenError",
    "StorageError",
]
