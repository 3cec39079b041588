"""
crowdsale.ledger.journal — journaled token balances with checkpoints.

A copy-on-write write journal layered over base mappings for balances and
allowances (plus the total-supply scalar). Nested checkpoints are a stack of
overlays: writes go to the top overlay, reads consult overlays top → base.
`commit()` merges the top overlay into its parent (or the base when it is the
root layer); `revert()` discards it.

Key properties
--------------
- Pure Python, integers only, no I/O.
- Nested checkpoints (begin/commit/revert) with O(changes) merge cost.
- `atomic()` wraps begin/commit/revert in a context manager so a batch of
  ledger writes either lands completely or not at all.

Intended usage
--------------
    j = BalanceJournal()
    with j.atomic():
        j.set_balance(a, j.balance(a) - 5)
        j.set_balance(b, j.balance(b) + 5)
        # an exception here discards both writes
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, MutableMapping, Optional, Tuple

AllowKey = Tuple[bytes, bytes]


@dataclass
class _Overlay:
    """
    A single journal layer.

    - `balances`: staged holder balances.
    - `allowances`: staged (owner, spender) allowances.
    - `total_supply`: staged total supply, `None` when untouched in this layer.
    """

    balances: Dict[bytes, int] = field(default_factory=dict)
    allowances: Dict[AllowKey, int] = field(default_factory=dict)
    total_supply: Optional[int] = None

    def is_empty(self) -> bool:
        return not self.balances and not self.allowances and self.total_supply is None


class BalanceJournal:
    """
    Balance/allowance state with nested checkpoints.

    Parameters
    ----------
    balances, allowances : optional base mappings (persisted state). Fresh
        dicts are used when omitted.
    total_supply : base total supply.
    """

    def __init__(
        self,
        balances: Optional[MutableMapping[bytes, int]] = None,
        allowances: Optional[MutableMapping[AllowKey, int]] = None,
        total_supply: int = 0,
    ) -> None:
        self._base_balances: MutableMapping[bytes, int] = balances if balances is not None else {}
        self._base_allowances: MutableMapping[AllowKey, int] = allowances if allowances is not None else {}
        self._base_total = int(total_supply)
        # The root overlay is always present.
        self._layers: List[_Overlay] = [_Overlay()]

    # ------------------------------------------------------------------ #
    # Checkpointing
    # ------------------------------------------------------------------ #

    def depth(self) -> int:
        """Number of overlays (>= 1)."""
        return len(self._layers)

    def begin(self) -> int:
        """Start a new checkpoint. Returns the new depth marker."""
        self._layers.append(_Overlay())
        return len(self._layers)

    def commit(self) -> None:
        """
        Merge the top overlay into its parent. Committing the root layer
        applies it to the base mappings.
        """
        top = self._layers.pop()
        if self._layers:
            self._merge_layers(self._layers[-1], top)
        else:
            self._apply_to_base(top)
            self._layers.append(_Overlay())

    def revert(self) -> None:
        """Discard the top overlay (or clear it if it's the root)."""
        if len(self._layers) > 1:
            self._layers.pop()
        else:
            self._layers[0] = _Overlay()

    def commit_to(self, marker: int) -> None:
        """Commit repeatedly until depth equals `marker`."""
        if marker < 1:
            raise ValueError("marker must be >= 1")
        while len(self._layers) > marker:
            self.commit()

    def revert_to(self, marker: int) -> None:
        """Revert repeatedly until depth equals `marker`."""
        if marker < 1:
            raise ValueError("marker must be >= 1")
        while len(self._layers) > marker:
            self.revert()

    @contextmanager
    def atomic(self) -> Iterator["BalanceJournal"]:
        """
        Run a block inside its own checkpoint: commit on normal exit, revert
        on any exception (which is re-raised).
        """
        marker = self.begin()
        try:
            yield self
        except BaseException:
            self.revert_to(marker - 1)
            raise
        else:
            self.commit_to(marker - 1)
            if marker - 1 == 1:
                # Flush the root so committed batches reach the base state.
                self.commit()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def balance(self, holder: bytes) -> int:
        for layer in reversed(self._layers):
            if holder in layer.balances:
                return layer.balances[holder]
        return int(self._base_balances.get(holder, 0))

    def allowance(self, owner: bytes, spender: bytes) -> int:
        key = (owner, spender)
        for layer in reversed(self._layers):
            if key in layer.allowances:
                return layer.allowances[key]
        return int(self._base_allowances.get(key, 0))

    def total_supply(self) -> int:
        for layer in reversed(self._layers):
            if layer.total_supply is not None:
                return layer.total_supply
        return self._base_total

    def holders(self) -> List[bytes]:
        """Holders with a non-zero visible balance, sorted."""
        seen = set(self._base_balances.keys())
        for layer in self._layers:
            seen.update(layer.balances.keys())
        return sorted(h for h in seen if self.balance(h) > 0)

    # ------------------------------------------------------------------ #
    # Writes (top overlay)
    # ------------------------------------------------------------------ #

    def set_balance(self, holder: bytes, value: int) -> None:
        if value < 0:
            raise ValueError("balance must be non-negative")
        self._layers[-1].balances[holder] = int(value)

    def set_allowance(self, owner: bytes, spender: bytes, value: int) -> None:
        if value < 0:
            raise ValueError("allowance must be non-negative")
        self._layers[-1].allowances[(owner, spender)] = int(value)

    def set_total_supply(self, value: int) -> None:
        if value < 0:
            raise ValueError("total supply must be non-negative")
        self._layers[-1].total_supply = int(value)

    # ------------------------------------------------------------------ #
    # Internal merge/apply
    # ------------------------------------------------------------------ #

    @staticmethod
    def _merge_layers(dst: _Overlay, src: _Overlay) -> None:
        dst.balances.update(src.balances)
        dst.allowances.update(src.allowances)
        if src.total_supply is not None:
            dst.total_supply = src.total_supply

    def _apply_to_base(self, layer: _Overlay) -> None:
        for holder, value in layer.balances.items():
            if value == 0:
                self._base_balances.pop(holder, None)
            else:
                self._base_balances[holder] = value
        for key, value in layer.allowances.items():
            if value == 0:
                self._base_allowances.pop(key, None)
            else:
                self._base_allowances[key] = value
        if layer.total_supply is not None:
            self._base_total = layer.total_supply

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def pending_changes(self) -> int:
        """Total staged balance + allowance entries across layers."""
        return sum(len(l.balances) + len(l.allowances) for l in self._layers)


__all__ = ["BalanceJournal", "AllowKey"]
