"""
Token capability consumed by the vesting ledger.

``TokenLedger`` is all the vesting ledger needs from a token: its address,
a balance lookup and a transfer that reports success. ``Token`` is an
in-memory implementation with owner-only minting, used by the CLI
tooling and the tests to fund ledgers.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Protocol, runtime_checkable

from .calculator import UINT256_MAX
from .exceptions import TokenError
from .schedule import ZERO_ADDRESS, normalize_address

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenLedger(Protocol):
    """Fungible token capability consumed by the vesting ledger."""

    address: str

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        ...


class TransferRecord(NamedTuple):
    """A completed balance movement; mints come from the zero address."""

    sender: str
    recipient: str
    amount: int


@dataclass
class Token:
    """
    In-memory mintable token.

    ``supply_cap`` of 0 means uncapped. The address is derived from name,
    symbol and owner when not given.
    """

    name: str
    symbol: str
    owner: str = ""
    address: str = ""
    supply_cap: int = 0
    total_supply: int = 0
    balances: Dict[str, int] = field(default_factory=dict)
    transfers: List[TransferRecord] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.owner = normalize_address(self.owner)
        if self.address:
            self.address = normalize_address(self.address)
        else:
            seed = f"token:{self.name}:{self.symbol}:{self.owner}".encode()
            self.address = "0x" + hashlib.sha3_256(seed).digest()[-20:].hex()

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            TokenError: On a zero-address recipient, an invalid amount or
                an insufficient sender balance
        """
        source = normalize_address(sender)
        target = self._checked_recipient(recipient)
        self._check_amount(amount)

        available = self.balances.get(source, 0)
        if amount > available:
            raise TokenError(
                f"{self.symbol}: transfer exceeds balance of {source} ({amount} > {available})",
                details={"sender": source, "amount": amount, "balance": available},
            )

        self.balances[source] = available - amount
        self._credit(target, amount)
        self.transfers.append(TransferRecord(source, target, amount))
        logger.debug(
            "Token transfer",
            extra={
                "event": "token.transfer",
                "token": self.symbol,
                "sender": source[:10],
                "recipient": target[:10],
                "amount": amount,
            },
        )
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Create ``amount`` new tokens for ``to`` (owner only)."""
        if not minter or normalize_address(minter) != self.owner:
            raise TokenError(f"{self.symbol}: caller is not owner", details={"caller": minter})
        target = self._checked_recipient(to)
        self._check_amount(amount)

        supply = self.total_supply + amount
        if self.supply_cap and supply > self.supply_cap:
            raise TokenError(f"{self.symbol}: mint exceeds max supply {self.supply_cap}")
        if supply > UINT256_MAX:
            raise TokenError(f"{self.symbol}: total supply exceeds uint256")

        self.total_supply = supply
        self._credit(target, amount)
        self.transfers.append(TransferRecord(ZERO_ADDRESS, target, amount))
        logger.info(
            "Token minted",
            extra={
                "event": "token.mint",
                "token": self.symbol,
                "recipient": target[:10],
                "amount": amount,
                "total_supply": supply,
            },
        )
        return True

    def _credit(self, account: str, amount: int) -> None:
        self.balances[account] = self.balances.get(account, 0) + amount

    def _checked_recipient(self, recipient: str) -> str:
        target = normalize_address(recipient) if recipient else ""
        if not target or target == ZERO_ADDRESS:
            raise TokenError(f"{self.symbol}: recipient is zero address")
        return target

    def _check_amount(self, amount: Any) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TokenError(f"{self.symbol}: amount must be an integer")
        if not 0 <= amount <= UINT256_MAX:
            raise TokenError(f"{self.symbol}: amount {amount} outside uint256 range")

    def to_dict(self) -> Dict[str, Any]:
        state = {
            key: getattr(self, key)
            for key in ("name", "symbol", "owner", "address", "supply_cap", "total_supply")
        }
        state["balances"] = dict(self.balances)
        return state

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            name=data["name"],
            symbol=data["symbol"],
            owner=data.get("owner", ""),
            address=data.get("address", ""),
            supply_cap=int(data.get("supply_cap", 0)),
            total_supply=int(data.get("total_supply", 0)),
            balances={k: int(v) for k, v in data.get("balances", {}).items()},
        )
