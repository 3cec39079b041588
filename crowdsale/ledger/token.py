# -*- coding: utf-8 -*-
"""
ERC-20–like fungible token ledger
=================================

Deterministic, float-free token ledger used as the crowdsale's token
collaborator. Balances and allowances live in a `BalanceJournal`, so callers
can group several transfers into one all-or-nothing batch via `atomic()`.

Highlights
----------
- Explicit `caller` parameters for mutating calls (no ambient sender).
- Events emitted to an `EventLog`:
    - "Transfer" {"from": bytes, "to": bytes, "value": int}
    - "Approval" {"owner": bytes, "spender": bytes, "value": int}
- U256-checked amounts (no silent wrap, no negatives).
- Entire initial supply minted to `initial_holder` at construction.

Public interface
----------------
# metadata / views
name, symbol, decimals (attributes)
total_supply() -> int
balance_of(addr: bytes) -> int
allowance(owner: bytes, spender: bytes) -> int

# state-changing (explicit caller)
transfer(caller, to, amount) -> bool
approve(caller, spender, amount) -> bool
transfer_from(caller, owner, to, amount) -> bool
increase_allowance(caller, spender, added) -> bool
decrease_allowance(caller, spender, subtracted) -> bool

# batching
atomic() -> context manager (commit on success, revert on exception)

Notes
-----
- Addresses are raw non-empty `bytes`.
- Failing calls raise a `LedgerError` subclass and leave state untouched.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Final, Iterator, Optional

from crowdsale.errors import InsufficientAllowance, InsufficientBalance
from crowdsale.events import EventLog

from . import (ZERO_ADDR, clamp_decimals, normalize_symbol, require_address,
               require_amount, require_name, require_symbol)
from .journal import BalanceJournal

log = logging.getLogger(__name__)

EVT_TRANSFER: Final[str] = "Transfer"
EVT_APPROVAL: Final[str] = "Approval"


class TokenLedger:
    """
    In-memory fungible token ledger.

    All mutating methods hold a re-entrant lock, so a sequence of calls made
    inside `atomic()` from one thread is never interleaved with another
    thread's writes.
    """

    def __init__(
        self,
        name: bytes,
        symbol: bytes,
        decimals: int,
        initial_holder: bytes,
        initial_supply: int,
        *,
        events: Optional[EventLog] = None,
        journal: Optional[BalanceJournal] = None,
    ) -> None:
        require_name(name)
        require_symbol(symbol)
        require_address(initial_holder)
        require_amount(initial_supply)

        self.name = bytes(name)
        self.symbol = normalize_symbol(bytes(symbol))
        self.decimals = clamp_decimals(decimals)
        self.events = events if events is not None else EventLog()
        self._j = journal if journal is not None else BalanceJournal()
        self._lock = threading.RLock()

        if initial_supply > 0:
            with self._j.atomic():
                self._j.set_total_supply(self._j.total_supply() + initial_supply)
                self._j.set_balance(initial_holder, self._j.balance(initial_holder) + initial_supply)
            self.events.emit(
                EVT_TRANSFER,
                {"from": ZERO_ADDR, "to": bytes(initial_holder), "value": initial_supply},
            )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def total_supply(self) -> int:
        return self._j.total_supply()

    def balance_of(self, addr: bytes) -> int:
        require_address(addr)
        return self._j.balance(bytes(addr))

    def allowance(self, owner: bytes, spender: bytes) -> int:
        require_address(owner)
        require_address(spender)
        return self._j.allowance(bytes(owner), bytes(spender))

    # ------------------------------------------------------------------
    # Mutations (explicit caller)
    # ------------------------------------------------------------------

    def transfer(self, caller: bytes, to: bytes, amount: int) -> bool:
        require_address(caller)
        require_address(to)
        require_amount(amount)
        with self._lock:
            self._move(bytes(caller), bytes(to), amount)
        return True

    def approve(self, caller: bytes, spender: bytes, amount: int) -> bool:
        require_address(caller)
        require_address(spender)
        require_amount(amount)
        with self._lock:
            self._j.set_allowance(bytes(caller), bytes(spender), amount)
            self._flush()
            self.events.emit(
                EVT_APPROVAL,
                {"owner": bytes(caller), "spender": bytes(spender), "value": amount},
            )
        return True

    def transfer_from(self, caller: bytes, owner: bytes, to: bytes, amount: int) -> bool:
        """
        Spender (`caller`) moves `amount` from `owner` to `to` using its allowance.
        """
        require_address(caller)
        require_address(owner)
        require_address(to)
        require_amount(amount)
        spender, src, dst = bytes(caller), bytes(owner), bytes(to)
        with self._lock:
            current = self._j.allowance(src, spender)
            if current < amount:
                raise InsufficientAllowance(owner=src, spender=spender, have=current, need=amount)
            with self._j.atomic():
                self._j.set_allowance(src, spender, current - amount)
                self._move(src, dst, amount)
        return True

    def increase_allowance(self, caller: bytes, spender: bytes, added: int) -> bool:
        require_address(caller)
        require_address(spender)
        require_amount(added)
        with self._lock:
            cur = self._j.allowance(bytes(caller), bytes(spender))
            new = cur + added
            require_amount(new)
            return self.approve(caller, spender, new)

    def decrease_allowance(self, caller: bytes, spender: bytes, subtracted: int) -> bool:
        require_address(caller)
        require_address(spender)
        require_amount(subtracted)
        with self._lock:
            cur = self._j.allowance(bytes(caller), bytes(spender))
            if cur < subtracted:
                raise InsufficientAllowance(
                    owner=bytes(caller), spender=bytes(spender), have=cur, need=subtracted
                )
            return self.approve(caller, spender, cur - subtracted)

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["TokenLedger"]:
        """
        Group several mutations into one all-or-nothing batch. Events emitted
        inside a batch that fails are dropped with it.
        """
        with self._lock:
            mark = self.events.mark()
            try:
                with self._j.atomic():
                    yield self
            except BaseException:
                dropped = self.events.truncate(mark)
                log.debug("token batch reverted (%d events dropped)", dropped)
                raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _move(self, src: bytes, dst: bytes, amount: int) -> None:
        have = self._j.balance(src)
        if have < amount:
            raise InsufficientBalance(holder=src, have=have, need=amount)
        if amount and src != dst:
            self._j.set_balance(src, have - amount)
            new_to = self._j.balance(dst) + amount
            require_amount(new_to)
            self._j.set_balance(dst, new_to)
            self._flush()
        # Zero-value transfers still emit, per ERC-20 practice.
        self.events.emit(EVT_TRANSFER, {"from": src, "to": dst, "value": amount})

    def _flush(self) -> None:
        # Outside a batch the root overlay is applied straight away.
        if self._j.depth() == 1:
            self._j.commit()


__all__ = ["TokenLedger", "EVT_TRANSFER", "EVT_APPROVAL"]
