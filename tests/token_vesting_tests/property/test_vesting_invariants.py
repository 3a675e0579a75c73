"""
Property-based tests for ledger invariants.

Random operation sequences must never break:
- reserved_total == sum of unreleased amounts over non-revoked schedules
- reserved_total <= the ledger's token balance
- released <= amount_total for every schedule
- token conservation across ledger, owner and beneficiaries
"""

import pytest
from hypothesis import given, settings, strategies as st

from token_vesting.calculator import releasable_amount, vested_amount
from token_vesting.exceptions import (
    InsufficientFundsError,
    InsufficientVestedError,
    InvalidArgumentError,
    InvalidStateError,
)
from token_vesting.ledger import VestingLedger
from token_vesting.schedule import VestingSchedule
from token_vesting.token_ledger import Token

OWNER = "0x" + "a1" * 20
BENEFICIARIES = ["0x" + "b2" * 20, "0x" + "c3" * 20, "0x" + "e5" * 20]
FUNDING = 1_000_000

EXPECTED_ERRORS = (
    InsufficientFundsError,
    InsufficientVestedError,
    InvalidArgumentError,
    InvalidStateError,
)

schedules = st.builds(
    lambda start, cliff_delay, duration, slice_period, amount: VestingSchedule(
        schedule_id="0x01",
        beneficiary=BENEFICIARIES[0],
        start=start,
        cliff=start + cliff_delay,
        duration=duration,
        slice_period=slice_period,
        revocable=True,
        amount_total=amount,
    ),
    start=st.integers(min_value=0, max_value=10**9),
    cliff_delay=st.integers(min_value=0, max_value=10**6),
    duration=st.integers(min_value=1, max_value=10**7),
    slice_period=st.integers(min_value=1, max_value=10**5),
    amount=st.integers(min_value=1, max_value=10**30),
)


class TestCalculatorProperties:
    @given(schedule=schedules, t1=st.integers(0, 2 * 10**9), t2=st.integers(0, 2 * 10**9))
    @settings(max_examples=200, deadline=None)
    def test_vested_is_monotonic_and_bounded(self, schedule, t1, t2):
        early, late = sorted((t1, t2))
        assert 0 <= vested_amount(schedule, early) <= vested_amount(schedule, late) <= schedule.amount_total

    @given(schedule=schedules, offset=st.integers(0, 10**6))
    @settings(max_examples=100, deadline=None)
    def test_fully_vested_after_end(self, schedule, offset):
        now = max(schedule.end, schedule.cliff) + offset
        assert releasable_amount(schedule, now) == schedule.amount_total

    @given(schedule=schedules, now=st.integers(0, 2 * 10**9))
    @settings(max_examples=100, deadline=None)
    def test_nothing_before_cliff(self, schedule, now):
        if now < schedule.cliff:
            assert releasable_amount(schedule, now) == 0


create_op = st.tuples(
    st.just("create"),
    st.integers(0, len(BENEFICIARIES) - 1),
    st.integers(0, 500),          # start offset from now
    st.integers(0, 2_000),        # cliff delay
    st.integers(1, 10_000),       # duration
    st.integers(1, 1_000),        # slice period
    st.booleans(),                # revocable
    st.integers(1, 400_000),      # amount
)
advance_op = st.tuples(st.just("advance"), st.integers(0, 5_000))
release_op = st.tuples(st.just("release"), st.integers(0, 50), st.integers(0, 100))
revoke_op = st.tuples(st.just("revoke"), st.integers(0, 50))
withdraw_op = st.tuples(st.just("withdraw"), st.integers(0, 120))

operations = st.lists(
    st.one_of(create_op, advance_op, release_op, revoke_op, withdraw_op),
    min_size=1,
    max_size=40,
)


def check_invariants(ledger, token):
    all_schedules = ledger.schedules()
    expected_reserved = sum(s.amount_total - s.released for s in all_schedules if not s.revoked)
    assert ledger.reserved_total == expected_reserved
    assert ledger.reserved_total <= token.balance_of(ledger.address)
    for schedule in all_schedules:
        assert 0 <= schedule.released <= schedule.amount_total
    held = token.balance_of(ledger.address) + token.balance_of(OWNER)
    held += sum(token.balance_of(b) for b in BENEFICIARIES)
    assert held == FUNDING


def apply(ledger, clock, op):
    kind = op[0]
    if kind == "create":
        _, who, start_offset, cliff_delay, duration, slice_period, revocable, amount = op
        ledger.create_schedule(
            OWNER, BENEFICIARIES[who], clock.now + start_offset, cliff_delay,
            duration, slice_period, revocable, amount,
        )
    elif kind == "advance":
        clock.now += op[1]
    elif ledger.schedules_count() == 0 and kind in ("release", "revoke"):
        return
    elif kind == "release":
        _, pick, percent = op
        schedule = ledger.get_schedule_at_index(pick % ledger.schedules_count())
        releasable = ledger.compute_releasable_amount(schedule.schedule_id)
        ledger.release(schedule.beneficiary, schedule.schedule_id, releasable * percent // 100)
    elif kind == "revoke":
        schedule = ledger.get_schedule_at_index(op[1] % ledger.schedules_count())
        ledger.revoke(OWNER, schedule.schedule_id)
    elif kind == "withdraw":
        ledger.withdraw(OWNER, ledger.available_withdrawable_amount() * op[1] // 100)


class _Clock:
    def __init__(self):
        self.now = 1_000

    def __call__(self):
        return self.now


@given(ops=operations)
@settings(max_examples=75, deadline=None)
def test_random_operation_sequences_keep_invariants(ops):
    clock = _Clock()
    token = Token(name="Property", symbol="PROP", owner=OWNER)
    ledger = VestingLedger(token, OWNER, time_provider=clock)
    token.mint(OWNER, ledger.address, FUNDING)

    for op in ops:
        try:
            apply(ledger, clock, op)
        except EXPECTED_ERRORS:
            pass
        check_invariants(ledger, token)


@given(ops=operations)
@settings(max_examples=50, deadline=None)
def test_everything_releasable_eventually(ops):
    clock = _Clock()
    token = Token(name="Property", symbol="PROP", owner=OWNER)
    ledger = VestingLedger(token, OWNER, time_provider=clock)
    token.mint(OWNER, ledger.address, FUNDING)
    for op in ops:
        try:
            apply(ledger, clock, op)
        except EXPECTED_ERRORS:
            pass

    clock.now += 10**6
    for schedule in ledger.schedules():
        if schedule.revoked:
            continue
        assert ledger.compute_releasable_amount(schedule.schedule_id) == schedule.amount_total - schedule.released
        ledger.release(schedule.beneficiary, schedule.schedule_id, schedule.amount_total - schedule.released)

    assert ledger.reserved_total == 0
    assert ledger.available_withdrawable_amount() == token.balance_of(ledger.address)


@pytest.mark.parametrize("amount", [1, 7, 10**18])
def test_single_slice_vests_all_at_end(amount):
    schedule = VestingSchedule("0x01", BENEFICIARIES[0], 0, 0, 100, 100, True, amount)
    assert releasable_amount(schedule, 99) == 0
    assert releasable_amount(schedule, 100) == amount
