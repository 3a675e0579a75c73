"""Tests for the read-only ledger inspection CLI."""

import json

import pytest

from token_vesting.cli import main
from token_vesting.ledger import VestingLedger
from token_vesting.schedule import compute_schedule_id
from token_vesting.storage import LedgerStore


@pytest.fixture
def persisted(token, owner, alice, bob, db_path, clock):
    """Store with two schedules, one of them revoked; closed before the CLI runs."""
    with LedgerStore(db_path) as store:
        ledger = VestingLedger(token, owner, store=store, time_provider=clock)
        token.mint(owner, ledger.address, 50_000)
        first = ledger.create_schedule(owner, alice, 0, 1000, 10_000, 100, True, 10_000)
        second = ledger.create_schedule(owner, bob, 0, 0, 100, 1, True, 500)
        ledger.revoke(owner, second)
    return {"ledger": ledger, "first": first, "second": second}


def run(capsys, *argv):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def test_status_json(persisted, db_path, owner, capsys):
    code, out, _ = run(capsys, "--db", str(db_path), "status", "--json")
    assert code == 0
    summary = json.loads(out)
    assert summary["owner"] == owner
    assert summary["address"] == persisted["ledger"].address
    assert summary["schedules"] == 2
    assert summary["revoked"] == 1
    assert summary["reserved_total"] == 10_000


def test_status_text(persisted, db_path, capsys):
    code, out, _ = run(capsys, "--db", str(db_path), "status")
    assert code == 0
    assert "Schedules: 2" in out
    assert "Reserved Total: 10000" in out


def test_list_filters_by_beneficiary(persisted, db_path, alice, capsys):
    code, out, _ = run(capsys, "--db", str(db_path), "list", "--beneficiary", alice.upper(), "--json")
    assert code == 0
    records = json.loads(out)
    assert [r["schedule_id"] for r in records] == [persisted["first"]]


def test_list_text_marks_revoked(persisted, db_path, capsys):
    code, out, _ = run(capsys, "--db", str(db_path), "list")
    assert code == 0
    lines = out.strip().splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("active")
    assert lines[1].endswith("revoked")


def test_show(persisted, db_path, capsys):
    code, out, _ = run(capsys, "--db", str(db_path), "show", persisted["first"])
    assert code == 0
    assert json.loads(out)["amount_total"] == 10_000


def test_show_unknown(persisted, db_path, capsys):
    code, _, err = run(capsys, "--db", str(db_path), "show", "0xdead")
    assert code == 1
    assert "not found" in err


@pytest.mark.parametrize("at, expected", [(500, 0), (1000, 1000), (9999, 9900), (20_000, 10_000)])
def test_releasable_at(persisted, db_path, capsys, at, expected):
    code, out, _ = run(capsys, "--db", str(db_path), "releasable", persisted["first"], "--at", str(at))
    assert code == 0
    assert int(out) == expected


def test_releasable_json(persisted, db_path, capsys):
    code, out, _ = run(capsys, "--db", str(db_path), "releasable", persisted["first"], "--at", "1100", "--json")
    assert code == 0
    assert json.loads(out) == {"schedule_id": persisted["first"], "at": 1100, "releasable": 1100}


def test_schedule_id(capsys, alice):
    code, out, _ = run(capsys, "schedule-id", alice, "2")
    assert code == 0
    assert out.strip() == compute_schedule_id(alice, 2)


def test_schedule_id_negative_index(capsys, alice):
    code, _, err = run(capsys, "schedule-id", alice, "-1")
    assert code == 1
    assert "negative" in err


def test_missing_store_is_not_created(db_path, capsys):
    code, _, err = run(capsys, "--db", str(db_path), "status")
    assert code == 1
    assert "No ledger store" in err
    assert not db_path.exists()
    assert not db_path.parent.exists()


def test_empty_store(db_path, capsys):
    LedgerStore(db_path).close()
    code, _, err = run(capsys, "--db", str(db_path), "status")
    assert code == 1
    assert "No ledger state" in err


def test_empty_db_path_is_configuration_error(capsys):
    code, _, err = run(capsys, "--db", "", "status")
    assert code == 2
    assert "Configuration error" in err


def test_no_command_prints_help(capsys):
    code, out, _ = run(capsys)
    assert code == 0
    assert "usage" in out.lower()
