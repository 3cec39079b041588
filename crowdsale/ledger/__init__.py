# -*- coding: utf-8 -*-
"""
crowdsale.ledger
================

The token-ledger collaborator: the interface the coordinator consumes, the
shared validation helpers, and a reference in-memory implementation.

Interface
---------
`TokenLedgerLike` is what the coordinator needs from any token ledger:

    total_supply() -> int
    balance_of(addr) -> int
    transfer(caller, to, amount) -> bool
    approve / transfer_from / allowance   (present, unused by core flows)

Ledgers that can also stage writes and roll them back implement
`SupportsAtomic` (an `atomic()` context manager). The coordinator uses it to
make release all-or-nothing.

Conventions
-----------
- Addresses are non-empty `bytes`.
- Amounts are Python ints in [0, 2**256-1]; no floats.
- Symbols: 1..11 printable ASCII (uppercased); names: 1..64 printable ASCII.
"""

from __future__ import annotations

from typing import (Any, ContextManager, Final, Protocol,
                    runtime_checkable)

from crowdsale.errors import InvalidAddress, InvalidAmount

U256_MAX: Final[int] = 2**256 - 1
DEFAULT_DECIMALS: Final[int] = 18
MAX_DECIMALS: Final[int] = 36

# non-empty sentinel used as the counterparty of mint Transfer events
ZERO_ADDR: Final[bytes] = b"\x00"


# -----------------------------------------------------------------------------
# Collaborator protocols
# -----------------------------------------------------------------------------


@runtime_checkable
class TokenLedgerLike(Protocol):
    def total_supply(self) -> int: ...

    def balance_of(self, addr: bytes) -> int: ...

    def allowance(self, owner: bytes, spender: bytes) -> int: ...

    def transfer(self, caller: bytes, to: bytes, amount: int) -> bool: ...

    def approve(self, caller: bytes, spender: bytes, amount: int) -> bool: ...

    def transfer_from(self, caller: bytes, owner: bytes, to: bytes, amount: int) -> bool: ...


@runtime_checkable
class SupportsAtomic(Protocol):
    def atomic(self) -> ContextManager[Any]: ...


# -----------------------------------------------------------------------------
# Validation helpers (deterministic, float-free)
# -----------------------------------------------------------------------------


def require_address(addr: Any) -> None:
    """
    Ensure `addr` is non-empty bytes. No fixed width is imposed; identities
    are opaque to the ledger.
    """
    if not isinstance(addr, (bytes, bytearray)) or len(addr) == 0:
        raise InvalidAddress(address=addr)


def require_amount(n: Any) -> None:
    """
    Ensure `n` is an integer amount in [0, 2**256-1].
    """
    if isinstance(n, bool) or not isinstance(n, int) or n < 0 or n > U256_MAX:
        raise InvalidAmount(amount=n)


def is_printable_ascii(s: bytes) -> bool:
    if not isinstance(s, (bytes, bytearray)) or len(s) == 0:
        return False
    return all(32 <= b <= 126 for b in s)


def require_symbol(sym: bytes) -> None:
    if not is_printable_ascii(sym) or not (1 <= len(sym) <= 11):
        raise ValueError(f"token symbol must be 1..11 printable ASCII bytes, got {sym!r}")


def require_name(name: bytes) -> None:
    if not is_printable_ascii(name) or not (1 <= len(name) <= 64):
        raise ValueError(f"token name must be 1..64 printable ASCII bytes, got {name!r}")


def normalize_symbol(sym: bytes) -> bytes:
    """ASCII-uppercase `sym`. Locale-free."""
    return sym.decode("ascii").upper().encode("ascii")


def clamp_decimals(n: int) -> int:
    """
    Clamp decimals to [0, 36].
    """
    if n < 0:
        return 0
    if n > MAX_DECIMALS:
        return MAX_DECIMALS
    return int(n)


from .journal import BalanceJournal  # noqa: E402
from .token import EVT_APPROVAL, EVT_TRANSFER, TokenLedger  # noqa: E402

__all__ = [
    "U256_MAX",
    "DEFAULT_DECIMALS",
    "MAX_DECIMALS",
    "ZERO_ADDR",
    "TokenLedgerLike",
    "SupportsAtomic",
    "require_address",
    "require_amount",
    "is_printable_ascii",
    "require_symbol",
    "require_name",
    "normalize_symbol",
    "clamp_decimals",
    "BalanceJournal",
    "TokenLedger",
    "EVT_TRANSFER",
    "EVT_APPROVAL",
]
