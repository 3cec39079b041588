from __future__ import annotations

"""
Crowdsale record types.

- SaleConfig: the immutable parameters fixed by `start`.
- Purchase: one accepted contribution, appended to the purchase record.
- SalePhase: the derived phase of a sale.

This module is intentionally small and pure (no ledger access, no I/O).
"""


from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, NewType

Address = bytes
TokenAmount = NewType("TokenAmount", int)
Timestamp = NewType("Timestamp", int)


class SalePhase(Enum):
    """Derived sale phase. `RELEASED` is the released sub-state of an ended sale."""

    NOT_STARTED = "not_started"
    ACTIVE = "active"
    ENDED = "ended"
    RELEASED = "released"


@dataclass(frozen=True)
class SaleConfig:
    """
    Sale parameters, fixed once by `Crowdsale.start` and never changed.

    Fields
    ------
    end_time: absolute time (seconds, same clock as the coordinator's time source).
    unit_price: tokens issued per unit of contributed value.
    available_tokens: inventory reserved for sale at start.
    min_contribution / max_contribution: per-transaction value bounds.
    """

    end_time: Timestamp
    unit_price: int
    available_tokens: TokenAmount
    min_contribution: int
    max_contribution: int

    def quantity_for(self, value: int) -> TokenAmount:
        return TokenAmount(self.unit_price * value)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class Purchase:
    """An accepted contribution. Immutable; the ordered sequence drives release."""

    participant: Address
    quantity: TokenAmount
    value: int
    timestamp: Timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participant": self.participant.hex(),
            "quantity": int(self.quantity),
            "value": self.value,
            "timestamp": int(self.timestamp),
        }


__all__ = [
    "Address",
    "TokenAmount",
    "Timestamp",
    "SalePhase",
    "SaleConfig",
    "Purchase",
]
