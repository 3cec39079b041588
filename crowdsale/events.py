"""
crowdsale.events — change notifications emitted by the coordinator and ledgers.

Records are immutable and strictly ordered by `seq` (emission order within one
log). Several components may share one `EventLog`; the coordinator and its
token ledger do so by default, which gives a single audit trail for a sale.

Names in use
------------
Coordinator: SaleStarted, Allowed, Purchased, TokensReleased, FundsWithdrawn
Token ledger: Transfer, Approval
Treasury:     ValueTransfer

A batch that is rolled back (e.g. a failed release) must not leave its events
behind: take `mark()` before staging and `truncate(mark)` on failure.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional


@dataclass(frozen=True)
class Event:
    seq: int
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "name": self.name,
            "args": {k: (v.hex() if isinstance(v, (bytes, bytearray)) else v) for k, v in self.args.items()},
        }


class EventLog:
    """
    A simple, thread-safe in-memory event sink.

    Keeps all records in RAM; intended for a single sale's lifetime.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: List[Event] = []

    def emit(self, name: str, args: Optional[Mapping[str, Any]] = None) -> Event:
        with self._lock:
            ev = Event(seq=len(self._records), name=name, args=dict(args or {}))
            self._records.append(ev)
            return ev

    def filter(self, name: Optional[str] = None, *, limit: Optional[int] = None) -> List[Event]:
        with self._lock:
            out = [ev for ev in self._records if name is None or ev.name == name]
        return out if limit is None else out[:limit]

    def names(self) -> List[str]:
        with self._lock:
            return [ev.name for ev in self._records]

    # rollback support

    def mark(self) -> int:
        with self._lock:
            return len(self._records)

    def truncate(self, mark: int) -> int:
        """Drop every record emitted after `mark`. Returns how many were dropped."""
        if mark < 0:
            raise ValueError("mark must be >= 0")
        with self._lock:
            dropped = max(0, len(self._records) - mark)
            del self._records[mark:]
            return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[Event]:
        with self._lock:
            return iter(list(self._records))


__all__ = ["Event", "EventLog"]
