"""
crowdsale — token crowdsale coordinator.

Accepts contributions from allowlisted participants at a fixed token price,
records allocations, and after the sale ends releases them in one
all-or-nothing batch before the administrator may withdraw collected value.

Submodules:
- coordinator: the `Crowdsale` state machine
- access:      admin / allowlist / phase guards
- ledger:      token ledger protocol + in-memory `TokenLedger` and `BalanceJournal`
- treasury:    native value balances contributions are paid in
- events:      ordered event log shared by the coordinator and its ledgers
- errors:      `CrowdsaleError` hierarchy
- config, metrics, version, cli

Common symbols are lazily re-exported from their submodules on first access.
"""

from __future__ import annotations

from importlib import import_module as _imp
from typing import Any, Dict, Tuple

from .version import __version__

# Map of public attributes → (submodule, symbol)
_exports: Dict[str, Tuple[str, str]] = {
    # Coordinator
    "Crowdsale": ("coordinator", "Crowdsale"),
    "SaleConfig": ("types", "SaleConfig"),
    "SalePhase": ("types", "SalePhase"),
    "Purchase": ("types", "Purchase"),
    # Collaborators
    "TokenLedger": ("ledger", "TokenLedger"),
    "TokenLedgerLike": ("ledger", "TokenLedgerLike"),
    "Treasury": ("treasury", "Treasury"),
    "EventLog": ("events", "EventLog"),
    # Errors
    "CrowdsaleError": ("errors", "CrowdsaleError"),
    # Config
    "CrowdsaleConfig": ("config", "CrowdsaleConfig"),
}

__all__ = tuple(["__version__", *_exports.keys()])


def __getattr__(name: str) -> Any:
    """
    Lazy attribute loader to avoid import-time dependency tangles.
    """
    if name in _exports:
        submod, symbol = _exports[name]
        mod = _imp(f"{__name__}.{submod}")
        return getattr(mod, symbol)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover
    return sorted(list(globals().keys()) + list(__all__))
