"""
Releasable-amount computation for vesting schedules.

Everything here is pure: no ledger state, no I/O. Amounts and timestamps
are unsigned 256-bit integers; every step goes through the checked helpers
so that an out-of-range intermediate raises instead of wrapping or being
clamped.
"""

from __future__ import annotations

from .exceptions import ArithmeticOverflowError, ArithmeticUnderflowError
from .schedule import VestingSchedule

UINT256_MAX = 2**256 - 1


def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > UINT256_MAX:
        raise ArithmeticOverflowError(
            "Addition overflows uint256", details={"a": a, "b": b}
        )
    return result


def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise ArithmeticUnderflowError(
            "Subtraction underflows uint256", details={"a": a, "b": b}
        )
    return a - b


def checked_mul(a: int, b: int) -> int:
    result = a * b
    if result > UINT256_MAX:
        raise ArithmeticOverflowError(
            "Multiplication overflows uint256", details={"a": a, "b": b}
        )
    return result


def vested_amount(schedule: VestingSchedule, now: int) -> int:
    """
    Cumulative amount vested by ``now``, ignoring what was already released.

    Vesting advances in whole ``slice_period`` steps from ``start``; the
    division by ``duration`` happens last to keep rounding loss to a single
    truncation.

    Args:
        schedule: Schedule to evaluate
        now: Current timestamp (seconds)

    Returns:
        Vested amount, 0 before the cliff and ``amount_total`` from the end
    """
    if now < schedule.cliff:
        return 0
    if now >= checked_add(schedule.start, schedule.duration):
        return schedule.amount_total

    elapsed = checked_sub(now, schedule.start)
    whole_slices = elapsed // schedule.slice_period
    vested_seconds = checked_mul(whole_slices, schedule.slice_period)
    return checked_mul(schedule.amount_total, vested_seconds) // schedule.duration


def releasable_amount(schedule: VestingSchedule, now: int) -> int:
    """
    Amount the beneficiary can release at ``now``.

    Args:
        schedule: Schedule to evaluate
        now: Current timestamp (seconds)

    Returns:
        0 for revoked schedules or before the cliff, otherwise vested
        minus released

    Raises:
        ArithmeticOverflowError: If an intermediate exceeds uint256
        ArithmeticUnderflowError: If released exceeds the vested amount
    """
    if schedule.revoked or now < schedule.cliff:
        return 0
    return checked_sub(vested_amount(schedule, now), schedule.released)
