"""
Vesting schedule records and deterministic schedule ID derivation.
"""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass
from typing import Any, Dict

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: str) -> str:
    """Normalize address to lowercase."""
    return address.lower()


def compute_schedule_id(beneficiary: str, index: int) -> str:
    """
    Derive the schedule ID for a beneficiary's ``index``-th schedule.

    The ID is SHA3-256 over the normalized beneficiary address followed by
    the index as a 32-byte big-endian integer, so anyone holding the
    beneficiary address can reproduce the IDs of all their schedules.

    Args:
        beneficiary: Beneficiary address
        index: Per-beneficiary sequence number (0-based)

    Returns:
        Hex-encoded schedule ID with ``0x`` prefix
    """
    if index < 0:
        raise ValueError("Schedule index cannot be negative")
    payload = normalize_address(beneficiary).encode() + index.to_bytes(32, "big")
    return "0x" + hashlib.sha3_256(payload).hexdigest()


@dataclass
class VestingSchedule:
    """
    One vesting entitlement for a beneficiary.

    ``cliff`` is absolute (start + cliff delay). ``amount_total`` never
    changes after creation; ``released`` only grows and ``revoked`` only
    goes from False to True.
    """

    schedule_id: str
    beneficiary: str
    start: int
    cliff: int
    duration: int
    slice_period: int
    revocable: bool
    amount_total: int
    released: int = 0
    revoked: bool = False
    initialized: bool = True

    @property
    def end(self) -> int:
        return self.start + self.duration

    @property
    def unreleased(self) -> int:
        """Tokens still owed to the beneficiary (vested or not)."""
        return self.amount_total - self.released

    def to_dict(self) -> Dict[str, Any]:
        """Serialize schedule to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VestingSchedule":
        """Deserialize schedule from dictionary."""
        return cls(
            schedule_id=data["schedule_id"],
            beneficiary=data["beneficiary"],
            start=int(data["start"]),
            cliff=int(data["cliff"]),
            duration=int(data["duration"]),
            slice_period=int(data["slice_period"]),
            revocable=bool(data["revocable"]),
            amount_total=int(data["amount_total"]),
            released=int(data.get("released", 0)),
            revoked=bool(data.get("revoked", False)),
            initialized=bool(data.get("initialized", True)),
        )
