import sys
from pathlib import Path

import pytest

# Ensure the src directory is on the Python path before collection runs.
project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root / "src"))

from token_vesting.ledger import VestingLedger
from token_vesting.storage import LedgerStore
from token_vesting.token_ledger import Token

OWNER = "0x" + "a1" * 20
ALICE = "0x" + "b2" * 20
BOB = "0x" + "c3" * 20
MALLORY = "0x" + "d4" * 20

FUNDING = 100_000


class Clock:
    """Settable time source for deterministic ledgers."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def owner():
    return OWNER


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def mallory():
    return MALLORY


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def token():
    return Token(name="Vest Token", symbol="VST", owner=OWNER)


@pytest.fixture
def ledger(token, clock):
    """Ledger with no token balance."""
    return VestingLedger(token, OWNER, time_provider=clock)


@pytest.fixture
def funded_ledger(ledger, token):
    """Ledger holding FUNDING tokens."""
    token.mint(OWNER, ledger.address, FUNDING)
    return ledger


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "vesting" / "ledger.db"


@pytest.fixture
def store(db_path):
    with LedgerStore(db_path) as ledger_store:
        yield ledger_store


@pytest.fixture
def standard_schedule(funded_ledger):
    """start=0, cliff_delay=1000, duration=10000, slice_period=100, amount=10000."""
    return funded_ledger.create_schedule(
        OWNER, ALICE, start=0, cliff_delay=1000, duration=10_000,
        slice_period=100, revocable=True, amount=10_000,
    )
