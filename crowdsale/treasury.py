from __future__ import annotations

"""
Crowdsale Treasury — native value balances
------------------------------------------

The value side of a sale: participants pay contributions in this unit, the
coordinator retains what it collects in its own account, and withdrawals pay
out of that account. Token allocations live in the token ledger, never here.

Amounts are integer *base units* (no floats). All operations check:
  • Non-negativity
  • Sufficient balance before debits/transfers

Every mutation appends a `JournalEntry` for observability. State can be
serialized with `dump()` and restored with `load()`.

Concurrency: a coarse `threading.RLock` protects mutating methods.
"""

from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, Iterable, List, Literal, Mapping, Optional

from crowdsale.errors import InsufficientBalance, InvalidAmount
from crowdsale.events import EventLog
from crowdsale.ledger import require_address

Amount = int
OpName = Literal["credit", "debit", "transfer"]


def _ensure_amount(x: int) -> None:
    if isinstance(x, bool) or not isinstance(x, int) or x < 0:
        raise InvalidAmount(amount=x)


@dataclass(frozen=True)
class JournalEntry:
    seq: int
    op: OpName
    amount: Amount
    source: Optional[bytes] = None
    destination: Optional[bytes] = None
    meta: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "seq": self.seq,
            "op": self.op,
            "amount": self.amount,
            "source": self.source.hex() if self.source else None,
            "destination": self.destination.hex() if self.destination else None,
            "meta": dict(self.meta),
        }


class Treasury:
    """
    In-memory native value ledger.

    Storage-agnostic: `dump()` yields a JSON-friendly dict, `load()` restores.
    """

    def __init__(self, *, events: Optional[EventLog] = None) -> None:
        self._balances: Dict[bytes, Amount] = {}
        self._journal: List[JournalEntry] = []
        self._lock = RLock()
        self.events = events

    # --- load/save ---

    def dump(self) -> Dict:
        with self._lock:
            return {"balances": {k.hex(): v for k, v in sorted(self._balances.items()) if v}}

    @classmethod
    def load(cls, data: Mapping, *, events: Optional[EventLog] = None) -> "Treasury":
        t = cls(events=events)
        for k, v in (data.get("balances") or {}).items():
            _ensure_amount(int(v))
            t._balances[bytes.fromhex(k)] = int(v)
        return t

    # --- introspection ---

    def balance(self, holder: bytes) -> Amount:
        require_address(holder)
        with self._lock:
            return self._balances.get(bytes(holder), 0)

    def total(self) -> Amount:
        with self._lock:
            return sum(self._balances.values())

    def journal(self) -> Iterable[JournalEntry]:
        return tuple(self._journal)

    # --- mutations (all locked) ---

    def credit(self, holder: bytes, amount: Amount, *, reason: str = "credit") -> JournalEntry:
        """Mint `amount` of value into `holder` (funding, tests, genesis)."""
        require_address(holder)
        _ensure_amount(amount)
        with self._lock:
            h = bytes(holder)
            self._balances[h] = self._balances.get(h, 0) + amount
            return self._record("credit", amount, destination=h, reason=reason)

    def debit(self, holder: bytes, amount: Amount, *, reason: str = "debit") -> JournalEntry:
        require_address(holder)
        _ensure_amount(amount)
        with self._lock:
            h = bytes(holder)
            have = self._balances.get(h, 0)
            if have < amount:
                raise InsufficientBalance(holder=h, have=have, need=amount)
            self._balances[h] = have - amount
            return self._record("debit", amount, source=h, reason=reason)

    def transfer(
        self,
        source: bytes,
        destination: bytes,
        amount: Amount,
        *,
        reason: str = "transfer",
    ) -> JournalEntry:
        """
        Move `amount` from `source` to `destination`. The sufficiency check
        happens before any write, so a failed transfer changes nothing.
        """
        require_address(source)
        require_address(destination)
        _ensure_amount(amount)
        with self._lock:
            src, dst = bytes(source), bytes(destination)
            have = self._balances.get(src, 0)
            if have < amount:
                raise InsufficientBalance(holder=src, have=have, need=amount)
            if amount and src != dst:
                self._balances[src] = have - amount
                self._balances[dst] = self._balances.get(dst, 0) + amount
            entry = self._record("transfer", amount, source=src, destination=dst, reason=reason)
            if self.events is not None:
                self.events.emit(
                    "ValueTransfer",
                    {"from": src, "to": dst, "value": amount, "reason": reason},
                )
            return entry

    # --- internals ---

    def _record(
        self,
        op: OpName,
        amount: Amount,
        *,
        source: Optional[bytes] = None,
        destination: Optional[bytes] = None,
        reason: str,
    ) -> JournalEntry:
        je = JournalEntry(
            seq=len(self._journal) + 1,
            op=op,
            amount=amount,
            source=source,
            destination=destination,
            meta={"reason": reason},
        )
        self._journal.append(je)
        return je


__all__ = ["Treasury", "JournalEntry"]
