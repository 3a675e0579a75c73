"""
Vesting ledger instrumentation.

Provides Prometheus metrics that track schedule creation, releases,
revocations and surplus withdrawals, with helper functions that are safe
to call from the settlement path.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

schedules_created_counter = Counter(
    "vesting_schedules_created_total", "Total vesting schedules created", ["token"]
)

tokens_released_counter = Counter(
    "vesting_tokens_released_total", "Total tokens released to beneficiaries", ["token"]
)

schedules_revoked_counter = Counter(
    "vesting_schedules_revoked_total", "Total vesting schedules revoked", ["token"]
)

surplus_withdrawn_counter = Counter(
    "vesting_surplus_withdrawn_total", "Total unreserved tokens withdrawn by the owner", ["token"]
)

operation_failures_counter = Counter(
    "vesting_operation_failures_total",
    "Failed ledger operations by operation and error type",
    ["operation", "error"],
)

reserved_total_gauge = Gauge(
    "vesting_reserved_total", "Tokens currently reserved for beneficiaries", ["token"]
)


def record_schedule_created(token: str) -> None:
    schedules_created_counter.labels(token=token).inc()


def record_release(token: str, amount: int) -> None:
    """Count released tokens; zero-amount releases are ignored."""
    if amount <= 0:
        return
    tokens_released_counter.labels(token=token).inc(amount)


def record_revocation(token: str) -> None:
    schedules_revoked_counter.labels(token=token).inc()


def record_withdrawal(token: str, amount: int) -> None:
    if amount <= 0:
        return
    surplus_withdrawn_counter.labels(token=token).inc(amount)


def record_failure(operation: str, error: str) -> None:
    operation_failures_counter.labels(operation=operation, error=error).inc()


def update_reserved_total(token: str, reserved_total: int) -> None:
    """Refresh the reserved-total gauge."""
    reserved_total_gauge.labels(token=token).set(reserved_total)
