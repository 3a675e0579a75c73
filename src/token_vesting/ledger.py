"""
Token Vesting Ledger.

Holds a pre-funded token balance and releases it to beneficiaries
according to per-schedule cliff / linear-slice rules.

Guarantees:
- The ledger never reserves more than it holds: reserved_total is always
  covered by the ledger's token balance
- released <= amount_total for every schedule
- Revocation is one-way
- Schedule IDs are derived from (beneficiary, sequence) and never reused

Every public operation is all-or-nothing. State changes are applied and
committed to the store before the token transfer is issued; if the
transfer fails, the operation's own deltas are reversed. Operations do
not nest: a state-changing call made from inside a token transfer is
rejected with InvalidStateError, while read-only views stay available.
"""

from __future__ import annotations

import hashlib
import logging
import time
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from . import metrics
from .calculator import UINT256_MAX, checked_add, checked_sub, releasable_amount
from .exceptions import (
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
)
from .schedule import ZERO_ADDRESS, VestingSchedule, compute_schedule_id, normalize_address
from .storage import (
    META_KEY,
    RESERVED_TOTAL_KEY,
    SCHEDULE_COUNT_KEY,
    LedgerStore,
    beneficiary_count_key,
    schedule_index_key,
    schedule_key,
)
from .token_ledger import TokenLedger

logger = logging.getLogger(__name__)


class _Journal:
    """Undo log and touched-key tracker for one ledger operation."""

    def __init__(self) -> None:
        self.undo: List[Callable[[], None]] = []
        self.schedule_ids: Set[str] = set()
        self.index_positions: Set[int] = set()
        self.beneficiaries: Set[str] = set()
        self.committed = False


class VestingLedger:
    """
    Vesting ledger over a single token.

    Usage:
        token = Token(name="Example", symbol="EXM", owner=owner)
        ledger = VestingLedger(token, owner)
        token.mint(owner, ledger.address, 10_000)
        schedule_id = ledger.create_schedule(
            owner, alice, start=0, cliff_delay=1000, duration=10_000,
            slice_period=100, revocable=True, amount=10_000,
        )
        ledger.release(alice, schedule_id, ledger.compute_releasable_amount(schedule_id))
    """

    def __init__(
        self,
        token: TokenLedger,
        owner: str,
        *,
        address: Optional[str] = None,
        store: Optional[LedgerStore] = None,
        time_provider: Optional[Callable[[], int]] = None,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            token: Token the ledger holds and releases
            owner: Address allowed to create, revoke and withdraw
            address: The ledger's own holder address on the token
                (derived from token and owner when omitted)
            store: Durable store to load from and commit to
            time_provider: Returns the current integer timestamp

        Raises:
            InvalidArgumentError: If token or owner is missing
            InvalidStateError: If the store belongs to a different ledger
        """
        if token is None or not getattr(token, "address", None):
            raise InvalidArgumentError("Token cannot be null", field="token")
        if not owner or normalize_address(owner) == ZERO_ADDRESS:
            raise InvalidArgumentError("Owner cannot be the zero address", field="owner")

        self.token = token
        self.owner = normalize_address(owner)
        self.address = (
            normalize_address(address)
            if address
            else self._derive_address(token.address, self.owner)
        )
        self.store = store
        self._time_provider = time_provider or (lambda: int(time.time()))

        self._schedule_ids: List[str] = []
        self._schedules: Dict[str, VestingSchedule] = {}
        self._reserved_total = 0
        self._beneficiary_counts: Dict[str, int] = {}
        self._active_operation: Optional[str] = None

        if store is not None:
            self._load_from_store(store)

        metrics.update_reserved_total(self.token_address, self._reserved_total)
        logger.info(
            "Vesting ledger initialized",
            extra={
                "event": "vesting.ledger_initialized",
                "token": self.token_address[:10],
                "ledger": self.address[:10],
                "schedules": len(self._schedule_ids),
                "persistent": store is not None,
            },
        )

    # ==================== View Functions ====================

    @property
    def token_address(self) -> str:
        return self.token.address

    @property
    def reserved_total(self) -> int:
        """Sum of unreleased amounts across non-revoked schedules."""
        return self._reserved_total

    def current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError(
                "time_provider must return an integer timestamp", field="time_provider"
            ) from exc

    def is_owner(self, caller: str) -> bool:
        return bool(caller) and normalize_address(caller) == self.owner

    def schedules_count(self) -> int:
        return len(self._schedule_ids)

    def schedules_count_by_beneficiary(self, beneficiary: str) -> int:
        return self._beneficiary_counts.get(normalize_address(beneficiary), 0)

    def get_schedule(self, schedule_id: str) -> VestingSchedule:
        """
        Look up a schedule by ID.

        Returns:
            A copy of the schedule; mutating it does not affect the ledger

        Raises:
            ScheduleNotFoundError: If the ID was never created
        """
        return replace(self._require_schedule(schedule_id))

    def get_schedule_id_at_index(self, index: int) -> str:
        """Schedule ID at ``index`` in creation order."""
        if not isinstance(index, int) or not 0 <= index < len(self._schedule_ids):
            raise InvalidArgumentError(
                f"Index {index} out of bounds ({len(self._schedule_ids)} schedules)",
                field="index",
            )
        return self._schedule_ids[index]

    def get_schedule_at_index(self, index: int) -> VestingSchedule:
        return self.get_schedule(self.get_schedule_id_at_index(index))

    def get_schedule_by_beneficiary_and_index(self, beneficiary: str, index: int) -> VestingSchedule:
        if not isinstance(index, int) or index < 0:
            raise InvalidArgumentError(f"Index {index} out of bounds", field="index")
        return self.get_schedule(compute_schedule_id(beneficiary, index))

    def get_last_schedule_for_beneficiary(self, beneficiary: str) -> VestingSchedule:
        count = self.schedules_count_by_beneficiary(beneficiary)
        if count == 0:
            raise InvalidStateError(
                f"Beneficiary {beneficiary} has no vesting schedules",
                details={"beneficiary": beneficiary},
            )
        return self.get_schedule_by_beneficiary_and_index(beneficiary, count - 1)

    def compute_next_schedule_id_for_beneficiary(self, beneficiary: str) -> str:
        return compute_schedule_id(beneficiary, self.schedules_count_by_beneficiary(beneficiary))

    def schedules(self) -> List[VestingSchedule]:
        """All schedules in creation order (copies)."""
        return [replace(self._schedules[schedule_id]) for schedule_id in self._schedule_ids]

    def compute_releasable_amount(self, schedule_id: str) -> int:
        """
        Amount the beneficiary could release right now.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
            InvalidStateError: If the schedule has been revoked
        """
        schedule = self._require_schedule(schedule_id)
        self._require_not_revoked(schedule)
        return releasable_amount(schedule, self.current_time())

    def available_withdrawable_amount(self) -> int:
        """
        Tokens held by the ledger that no schedule has reserved.

        Raises:
            ArithmeticUnderflowError: If reserved_total exceeds the balance
        """
        return checked_sub(self.token.balance_of(self.address), self._reserved_total)

    # ==================== State-Changing Functions ====================

    def create_schedule(
        self,
        caller: str,
        beneficiary: str,
        start: int,
        cliff_delay: int,
        duration: int,
        slice_period: int,
        revocable: bool,
        amount: int,
    ) -> str:
        """
        Create a vesting schedule (owner only).

        The tokens must already be held by the ledger: creation only
        reserves ``amount`` against the unreserved balance.

        Args:
            caller: Address calling (must be owner)
            beneficiary: Recipient of the vested tokens
            start: Vesting start timestamp
            cliff_delay: Seconds after start before anything vests
            duration: Total vesting duration in seconds
            slice_period: Vesting granularity in seconds
            revocable: Whether the owner may revoke the schedule
            amount: Total tokens to vest

        Returns:
            The new schedule ID

        Raises:
            UnauthorizedError: If caller is not the owner
            InvalidArgumentError: If a parameter is invalid or the
                unreserved balance cannot cover ``amount``
            DuplicateScheduleIdError: If the derived ID already exists
        """
        with self._operation("create_schedule") as journal:
            self._require_owner(caller, "create vesting schedules")

            if not beneficiary or normalize_address(beneficiary) == ZERO_ADDRESS:
                raise InvalidArgumentError("Beneficiary cannot be the zero address", field="beneficiary")
            self._require_uint(start, "start")
            self._require_uint(cliff_delay, "cliff_delay")
            self._require_uint(duration, "duration", minimum=1)
            self._require_uint(slice_period, "slice_period", minimum=1)
            self._require_uint(amount, "amount", minimum=1)
            if not isinstance(revocable, bool):
                raise InvalidArgumentError("revocable must be a boolean", field="revocable")
            if start + duration > UINT256_MAX:
                raise InvalidArgumentError("start + duration exceeds uint256", field="duration")
            if amount * duration > UINT256_MAX:
                raise InvalidArgumentError(
                    "amount * duration exceeds uint256; vesting math would overflow",
                    field="amount",
                )

            available = self.available_withdrawable_amount()
            if available < amount:
                raise InvalidArgumentError(
                    f"Cannot create vesting schedule: amount {amount} exceeds "
                    f"unreserved balance {available}",
                    field="amount",
                    details={"available": available},
                )

            beneficiary_norm = normalize_address(beneficiary)
            index = self._beneficiary_counts.get(beneficiary_norm, 0)
            schedule_id = compute_schedule_id(beneficiary_norm, index)
            if schedule_id in self._schedules:
                raise DuplicateScheduleIdError(
                    f"Derived schedule ID {schedule_id} already exists",
                    details={"beneficiary": beneficiary_norm, "index": index},
                )

            cliff = checked_add(start, cliff_delay)
            new_reserved = checked_add(self._reserved_total, amount)

            schedule = VestingSchedule(
                schedule_id=schedule_id,
                beneficiary=beneficiary_norm,
                start=start,
                cliff=cliff,
                duration=duration,
                slice_period=slice_period,
                revocable=revocable,
                amount_total=amount,
            )
            self._schedules[schedule_id] = schedule
            self._schedule_ids.append(schedule_id)
            self._reserved_total = new_reserved
            self._beneficiary_counts[beneficiary_norm] = index + 1

            def undo() -> None:
                self._schedules.pop(schedule_id, None)
                self._schedule_ids.remove(schedule_id)
                self._beneficiary_counts[beneficiary_norm] = index
                self._reserved_total = checked_sub(self._reserved_total, amount)

            journal.undo.append(undo)
            journal.schedule_ids.add(schedule_id)
            journal.index_positions.add(len(self._schedule_ids) - 1)
            journal.beneficiaries.add(beneficiary_norm)
            self._commit(journal)

        metrics.record_schedule_created(self.token_address)
        metrics.update_reserved_total(self.token_address, self._reserved_total)
        logger.info(
            "Vesting schedule created",
            extra={
                "event": "vesting.schedule_created",
                "schedule_id": schedule_id[:10],
                "beneficiary": beneficiary_norm[:10],
                "amount": amount,
                "cliff": cliff,
                "end": start + duration,
                "revocable": revocable,
            },
        )
        return schedule_id

    def release(self, caller: str, schedule_id: str, amount: int) -> int:
        """
        Release vested tokens to the schedule's beneficiary.

        A zero amount passes every check and changes nothing.

        Args:
            caller: Beneficiary or owner
            schedule_id: Schedule to release from
            amount: Tokens to release

        Returns:
            The amount released

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
            InvalidStateError: If the schedule has been revoked
            UnauthorizedError: If caller is neither beneficiary nor owner
            InsufficientVestedError: If amount exceeds the releasable amount
            TransferFailedError: If the token transfer fails
        """
        with self._operation("release") as journal:
            schedule = self._require_schedule(schedule_id)
            self._require_not_revoked(schedule)
            caller_norm = normalize_address(caller) if caller else ""
            if caller_norm != schedule.beneficiary and not self.is_owner(caller):
                raise UnauthorizedError(
                    "Only the beneficiary or owner can release vested tokens",
                    details={"caller": caller_norm, "schedule_id": schedule_id},
                )
            self._require_uint(amount, "amount")

            vested = releasable_amount(schedule, self.current_time())
            if vested < amount:
                raise InsufficientVestedError(
                    f"Cannot release {amount}: only {vested} vested tokens available",
                    requested=amount,
                    available=vested,
                    details={"schedule_id": schedule_id},
                )
            if amount == 0:
                return 0

            self._apply_release(schedule, amount, journal)
            self._commit(journal)
            self._transfer(schedule.beneficiary, amount)

        metrics.record_release(self.token_address, amount)
        metrics.update_reserved_total(self.token_address, self._reserved_total)
        logger.info(
            "Vested tokens released",
            extra={
                "event": "vesting.released",
                "schedule_id": schedule_id[:10],
                "beneficiary": schedule.beneficiary[:10],
                "caller": caller_norm[:10],
                "amount": amount,
                "released_total": schedule.released,
            },
        )
        return amount

    def revoke(self, caller: str, schedule_id: str) -> int:
        """
        Revoke a schedule (owner only).

        Tokens vested so far are released to the beneficiary under the
        owner's authority; the unvested remainder is freed for withdrawal.

        Returns:
            The vested amount released as part of the revocation

        Raises:
            UnauthorizedError: If caller is not the owner
            ScheduleNotFoundError: If the schedule does not exist
            InvalidStateError: If already revoked or not revocable
            TransferFailedError: If the token transfer fails
        """
        with self._operation("revoke") as journal:
            self._require_owner(caller, "revoke vesting schedules")
            schedule = self._require_schedule(schedule_id)
            self._require_not_revoked(schedule)
            if not schedule.revocable:
                raise InvalidStateError(
                    f"Vesting schedule {schedule_id} is not revocable",
                    details={"schedule_id": schedule_id},
                )

            vested = releasable_amount(schedule, self.current_time())
            if vested > 0:
                self._apply_release(schedule, vested, journal)

            unreleased = schedule.unreleased
            self._reserved_total = checked_sub(self._reserved_total, unreleased)
            schedule.revoked = True

            def undo() -> None:
                schedule.revoked = False
                self._reserved_total = checked_add(self._reserved_total, unreleased)

            journal.undo.append(undo)
            journal.schedule_ids.add(schedule_id)
            self._commit(journal)

            if vested > 0:
                self._transfer(schedule.beneficiary, vested)

        metrics.record_release(self.token_address, vested)
        metrics.record_revocation(self.token_address)
        metrics.update_reserved_total(self.token_address, self._reserved_total)
        logger.info(
            "Vesting schedule revoked",
            extra={
                "event": "vesting.revoked",
                "schedule_id": schedule_id[:10],
                "beneficiary": schedule.beneficiary[:10],
                "vested_released": vested,
                "freed": unreleased,
            },
        )
        return vested

    def withdraw(self, caller: str, amount: int) -> int:
        """
        Withdraw unreserved tokens to the owner (owner only).

        Returns:
            The amount withdrawn

        Raises:
            UnauthorizedError: If caller is not the owner
            InsufficientFundsError: If amount exceeds the unreserved balance
            TransferFailedError: If the token transfer fails
        """
        with self._operation("withdraw"):
            self._require_owner(caller, "withdraw")
            self._require_uint(amount, "amount")
            available = self.available_withdrawable_amount()
            if amount > available:
                raise InsufficientFundsError(
                    f"Cannot withdraw {amount}: only {available} unreserved tokens available",
                    requested=amount,
                    available=available,
                )
            if amount == 0:
                return 0
            self._transfer(self.owner, amount)

        metrics.record_withdrawal(self.token_address, amount)
        logger.info(
            "Unreserved tokens withdrawn",
            extra={
                "event": "vesting.withdrawn",
                "owner": self.owner[:10],
                "amount": amount,
            },
        )
        return amount

    # ==================== Internals ====================

    def _apply_release(self, schedule: VestingSchedule, amount: int, journal: _Journal) -> None:
        new_released = checked_add(schedule.released, amount)
        if new_released > schedule.amount_total:
            raise IntegrityError(
                f"Release would exceed schedule total ({new_released} > {schedule.amount_total})",
                details={"schedule_id": schedule.schedule_id},
            )
        # underflow here means reserved_total lost track of a schedule
        new_reserved = checked_sub(self._reserved_total, amount)

        schedule.released = new_released
        self._reserved_total = new_reserved

        def undo() -> None:
            schedule.released = checked_sub(schedule.released, amount)
            self._reserved_total = checked_add(self._reserved_total, amount)

        journal.undo.append(undo)
        journal.schedule_ids.add(schedule.schedule_id)

    def _transfer(self, recipient: str, amount: int) -> None:
        try:
            ok = self.token.transfer(self.address, recipient, amount)
        except TokenError as exc:
            raise TransferFailedError(
                f"Token transfer of {amount} to {recipient} failed: {exc}",
                recipient=recipient,
                amount=amount,
            ) from exc
        if not ok:
            raise TransferFailedError(
                f"Token transfer of {amount} to {recipient} was refused",
                recipient=recipient,
                amount=amount,
            )

    @contextmanager
    def _operation(self, name: str) -> Iterator[_Journal]:
        if self._active_operation is not None:
            metrics.record_failure(name, "ReentrantCall")
            logger.warning(
                "Rejected re-entrant %s during %s",
                name,
                self._active_operation,
                extra={"event": "vesting.reentrant_call_rejected", "active": self._active_operation},
            )
            raise InvalidStateError(
                f"Cannot {name} while {self._active_operation} is in progress",
                details={"operation": name, "active": self._active_operation},
            )

        journal = _Journal()
        self._active_operation = name
        try:
            yield journal
        except Exception as exc:
            error = type(exc).__name__
            metrics.record_failure(name, error)
            try:
                self._rollback(journal)
            except StorageError as rollback_exc:
                # memory is rolled back; the store still holds the failed operation's state
                logger.error(
                    "Vesting %s rollback could not be persisted: %s",
                    name,
                    rollback_exc,
                    extra={"event": f"vesting.{name}_rollback_failed", "error": error},
                )
                raise rollback_exc from exc
            log = logger.error if isinstance(exc, IntegrityError) else logger.warning
            log(
                "Vesting %s failed: %s",
                name,
                exc,
                extra={"event": f"vesting.{name}_failed", "error": error},
            )
            raise
        finally:
            self._active_operation = None

    def _rollback(self, journal: _Journal) -> None:
        for undo in reversed(journal.undo):
            undo()
        if journal.undo:
            metrics.update_reserved_total(self.token_address, self._reserved_total)
        if journal.committed:
            self._commit(journal)

    def _commit(self, journal: _Journal) -> None:
        if self.store is None:
            return
        updates: Dict[str, Any] = {RESERVED_TOTAL_KEY: self._reserved_total}
        for schedule_id in journal.schedule_ids:
            schedule = self._schedules.get(schedule_id)
            if schedule is not None:
                updates[schedule_key(schedule_id)] = schedule.to_dict()
        if journal.index_positions:
            for position in journal.index_positions:
                if position < len(self._schedule_ids):
                    updates[schedule_index_key(position)] = self._schedule_ids[position]
            updates[SCHEDULE_COUNT_KEY] = len(self._schedule_ids)
        for beneficiary in journal.beneficiaries:
            updates[beneficiary_count_key(beneficiary)] = self._beneficiary_counts.get(beneficiary, 0)
        self.store.commit(updates)
        journal.committed = True

    def _load_from_store(self, store: LedgerStore) -> None:
        meta = {"token": self.token_address, "owner": self.owner, "address": self.address}
        state = store.load_state()
        if state is None:
            store.commit({META_KEY: meta, SCHEDULE_COUNT_KEY: 0, RESERVED_TOTAL_KEY: 0})
            return
        if state.meta != meta:
            raise InvalidStateError(
                f"Ledger store {store.db_path} belongs to a different ledger",
                details={"stored": state.meta, "expected": meta},
            )
        self._schedule_ids = state.schedule_ids
        self._schedules = state.schedules
        self._reserved_total = state.reserved_total
        self._beneficiary_counts = state.beneficiary_counts

    def _require_schedule(self, schedule_id: str) -> VestingSchedule:
        schedule = self._schedules.get(schedule_id)
        if schedule is None or not schedule.initialized:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    def _require_not_revoked(self, schedule: VestingSchedule) -> None:
        if schedule.revoked:
            raise InvalidStateError(
                f"Vesting schedule {schedule.schedule_id} has been revoked",
                details={"schedule_id": schedule.schedule_id},
            )

    def _require_owner(self, caller: str, action: str) -> None:
        if not self.is_owner(caller):
            raise UnauthorizedError(
                f"Caller is not the owner; only the owner can {action}",
                details={"caller": normalize_address(caller) if caller else ""},
            )

    @staticmethod
    def _require_uint(value: Any, field: str, minimum: int = 0) -> None:
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidArgumentError(f"{field} must be an integer", field=field)
        if value < minimum:
            raise InvalidArgumentError(f"{field} must be >= {minimum}, got {value}", field=field)
        if value > UINT256_MAX:
            raise InvalidArgumentError(f"{field} exceeds uint256", field=field)

    @staticmethod
    def _derive_address(token_address: str, owner: str) -> str:
        digest = hashlib.sha3_256(f"vesting:{token_address}:{owner}".encode()).digest()
        return f"0x{digest[-20:].hex()}"
