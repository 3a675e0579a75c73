#!/usr/bin/env python3
"""
Read-only CLI over a persisted vesting ledger.

Inspects the SQLite store written by ``VestingLedger`` without needing a
live token: schedule listings, releasable amounts at a chosen time, and
offline schedule ID derivation.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Optional

from token_vesting import config
from token_vesting.calculator import releasable_amount
from token_vesting.exceptions import StorageError
from token_vesting.logging_config import configure_from_env
from token_vesting.schedule import VestingSchedule, compute_schedule_id
from token_vesting.storage import LedgerState, LedgerStore

logger = logging.getLogger(__name__)


def _load_state(db_path: str) -> Optional[LedgerState]:
    with LedgerStore(db_path) as store:
        return store.load_state()


def _print_schedule(schedule: VestingSchedule) -> None:
    status = "revoked" if schedule.revoked else "active"
    print(
        f"{schedule.schedule_id}  beneficiary={schedule.beneficiary}  "
        f"total={schedule.amount_total}  released={schedule.released}  "
        f"cliff={schedule.cliff}  end={schedule.end}  {status}"
    )


def _status(args: argparse.Namespace, state: LedgerState) -> int:
    """Handle the status subcommand."""
    summary = {
        "token": state.meta.get("token"),
        "owner": state.meta.get("owner"),
        "address": state.meta.get("address"),
        "schedules": len(state.schedule_ids),
        "revoked": sum(1 for s in state.schedules.values() if s.revoked),
        "reserved_total": state.reserved_total,
    }
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        for key, value in summary.items():
            print(f"{key.replace('_', ' ').title()}: {value}")
    return 0


def _list(args: argparse.Namespace, state: LedgerState) -> int:
    """Handle the list subcommand."""
    schedules = [state.schedules[schedule_id] for schedule_id in state.schedule_ids]
    if args.beneficiary:
        wanted = args.beneficiary.lower()
        schedules = [s for s in schedules if s.beneficiary == wanted]
    if args.json:
        print(json.dumps([s.to_dict() for s in schedules], indent=2))
        return 0
    if not schedules:
        print("No vesting schedules.")
    for schedule in schedules:
        _print_schedule(schedule)
    return 0


def _show(args: argparse.Namespace, state: LedgerState) -> int:
    """Handle the show subcommand."""
    schedule = state.schedules.get(args.schedule_id)
    if schedule is None:
        print(f"Vesting schedule {args.schedule_id} not found", file=sys.stderr)
        return 1
    print(json.dumps(schedule.to_dict(), indent=2))
    return 0


def _releasable(args: argparse.Namespace, state: LedgerState) -> int:
    """Handle the releasable subcommand."""
    schedule = state.schedules.get(args.schedule_id)
    if schedule is None:
        print(f"Vesting schedule {args.schedule_id} not found", file=sys.stderr)
        return 1
    now = args.at if args.at is not None else int(time.time())
    amount = releasable_amount(schedule, now)
    if args.json:
        print(json.dumps({"schedule_id": schedule.schedule_id, "at": now, "releasable": amount}))
    else:
        print(amount)
    return 0


def _schedule_id(args: argparse.Namespace) -> int:
    """Handle the schedule-id subcommand."""
    if args.index < 0:
        print("Index cannot be negative", file=sys.stderr)
        return 1
    print(compute_schedule_id(args.beneficiary, args.index))
    return 0


def _with_state(handler: Any) -> Any:
    def run(args: argparse.Namespace) -> int:
        if not Path(args.db).is_file():
            print(f"No ledger store at {args.db}", file=sys.stderr)
            return 1
        try:
            state = _load_state(args.db)
        except StorageError as exc:
            logger.error("Failed to read ledger store: %s", exc)
            print(f"Storage error: {exc}", file=sys.stderr)
            return 2
        if state is None:
            print(f"No ledger state found in {args.db}", file=sys.stderr)
            return 1
        return handler(args, state)

    return run


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Token vesting ledger inspection")
    parser.add_argument(
        "--db",
        default=config.DB_PATH,
        help=f"Ledger store path (default: {config.DB_PATH})",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON logs to stderr",
    )
    subparsers = parser.add_subparsers(dest="command")

    status = subparsers.add_parser("status", help="Show ledger summary")
    status.add_argument("--json", action="store_true", help="Emit JSON output")
    status.set_defaults(func=_with_state(_status))

    list_cmd = subparsers.add_parser("list", help="List schedules in creation order")
    list_cmd.add_argument("--beneficiary", help="Only show schedules for this address")
    list_cmd.add_argument("--json", action="store_true", help="Emit JSON output")
    list_cmd.set_defaults(func=_with_state(_list))

    show = subparsers.add_parser("show", help="Show one schedule as JSON")
    show.add_argument("schedule_id")
    show.set_defaults(func=_with_state(_show))

    releasable = subparsers.add_parser(
        "releasable",
        help="Compute the releasable amount of a schedule",
    )
    releasable.add_argument("schedule_id")
    releasable.add_argument(
        "--at",
        type=int,
        default=None,
        help="Timestamp to evaluate at (default: now)",
    )
    releasable.add_argument("--json", action="store_true", help="Emit JSON output")
    releasable.set_defaults(func=_with_state(_releasable))

    schedule_id = subparsers.add_parser(
        "schedule-id",
        help="Derive the schedule ID for a beneficiary and index",
    )
    schedule_id.add_argument("beneficiary")
    schedule_id.add_argument("index", type=int)
    schedule_id.set_defaults(func=_schedule_id)

    return parser


def main(argv: Any = None) -> int:
    """Program entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config.validate_config(db_path=args.db)
    except config.ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.json_logs:
        configure_from_env()

    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
