from __future__ import annotations
# crowdsale/errors.py
"""
Error types for the crowdsale coordinator and its ledgers. Every failure is a
synchronous precondition rejection: by the time one of these is raised, no
state has been mutated.

Hierarchy
---------
CrowdsaleError (base)
 ├─ AuthorizationError   : wrong caller identity
 ├─ PhaseError           : operation outside its valid sale phase
 ├─ ConfigurationError   : invalid `start` parameters
 ├─ EligibilityError     : contributor is not allowlisted
 ├─ BoundsError          : contribution outside min/max or not a multiple of price
 ├─ InventoryError       : requested quantity exceeds remaining inventory
 └─ LedgerError          : token / value ledger failure (balances, allowances, transfers)

Each error carries a stable `code`, a human message and a JSON-friendly
`details` mapping, so it can be surfaced over logs and the CLI unchanged.
"""


from typing import Any, Dict, Mapping, Optional
import json


class CrowdsaleError(Exception):
    """Base class for crowdsale domain errors."""

    code: str = "CROWDSALE_ERROR"
    category: str = "error"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=_jsonable)
            except (TypeError, ValueError):
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


def _jsonable(x: Any) -> Any:
    if isinstance(x, (bytes, bytearray)):
        return _show(bytes(x))
    return str(x)


def _show(identity: bytes) -> str:
    """Printable form of an identity: utf-8 when clean, hex otherwise."""
    try:
        s = identity.decode("ascii")
        if s.isprintable():
            return s
    except UnicodeDecodeError:
        pass
    return "0x" + identity.hex()


# -------------------------- Categories --------------------------


class AuthorizationError(CrowdsaleError):
    code = "CROWDSALE_UNAUTHORIZED"
    category = "authorization"


class PhaseError(CrowdsaleError):
    code = "CROWDSALE_BAD_PHASE"
    category = "phase"

    def __init__(
        self,
        message: str = "operation not allowed in current phase",
        *,
        phase: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if phase is not None:
            d.setdefault("phase", phase)
        super().__init__(message, details=d)


class ConfigurationError(CrowdsaleError):
    code = "CROWDSALE_BAD_CONFIG"
    category = "configuration"


class EligibilityError(CrowdsaleError):
    code = "CROWDSALE_NOT_ELIGIBLE"
    category = "eligibility"


class BoundsError(CrowdsaleError):
    code = "CROWDSALE_BOUNDS"
    category = "bounds"


class InventoryError(CrowdsaleError):
    code = "CROWDSALE_INVENTORY"
    category = "inventory"


class LedgerError(CrowdsaleError):
    code = "CROWDSALE_LEDGER"
    category = "ledger"


# -------------------------- Authorization --------------------------


class NotAdmin(AuthorizationError):
    """Caller is not the administrator fixed at coordinator creation."""
    code = "CROWDSALE_NOT_ADMIN"

    def __init__(self, *, caller: bytes, operation: str, message: str = "only admin") -> None:
        super().__init__(message, details={"caller": _show(caller), "operation": operation})


# -------------------------- Phase --------------------------


class AlreadyStarted(PhaseError):
    code = "CROWDSALE_ALREADY_STARTED"

    def __init__(self, *, phase: str, message: str = "sale already started") -> None:
        super().__init__(message, phase=phase)


class SaleNotActive(PhaseError):
    code = "CROWDSALE_NOT_ACTIVE"

    def __init__(self, *, phase: str, message: str = "sale must be active") -> None:
        super().__init__(message, phase=phase)


class SaleStillActive(PhaseError):
    """Raised by release/withdraw before the sale has ended (or before it started)."""
    code = "CROWDSALE_NOT_ENDED"

    def __init__(self, *, phase: str, message: str = "sale must have ended") -> None:
        super().__init__(message, phase=phase)


class AlreadyReleased(PhaseError):
    code = "CROWDSALE_ALREADY_RELEASED"

    def __init__(self, *, phase: str = "released", message: str = "tokens already released") -> None:
        super().__init__(message, phase=phase)


class TokensNotReleased(PhaseError):
    code = "CROWDSALE_NOT_RELEASED"

    def __init__(self, *, phase: str = "ended", message: str = "tokens must be released first") -> None:
        super().__init__(message, phase=phase)


# -------------------------- Configuration --------------------------


class InvalidDuration(ConfigurationError):
    code = "CROWDSALE_INVALID_DURATION"

    def __init__(self, *, duration: int, message: str = "duration should be > 0") -> None:
        super().__init__(message, details={"duration": duration})


class InvalidPrice(ConfigurationError):
    code = "CROWDSALE_INVALID_PRICE"

    def __init__(self, *, unit_price: int, message: str = "unit price should be > 0") -> None:
        super().__init__(message, details={"unit_price": unit_price})


class InvalidInventory(ConfigurationError):
    code = "CROWDSALE_INVALID_INVENTORY"

    def __init__(
        self,
        *,
        available_tokens: int,
        total_supply: int,
        message: str = "available tokens should be > 0 and <= total supply",
    ) -> None:
        super().__init__(
            message,
            details={"available_tokens": available_tokens, "total_supply": total_supply},
        )


class InvalidMinContribution(ConfigurationError):
    code = "CROWDSALE_INVALID_MIN"

    def __init__(self, *, min_contribution: int, message: str = "min contribution should be > 0") -> None:
        super().__init__(message, details={"min_contribution": min_contribution})


class InvalidMaxContribution(ConfigurationError):
    code = "CROWDSALE_INVALID_MAX"

    def __init__(
        self,
        *,
        max_contribution: int,
        min_contribution: int,
        available_tokens: int,
        message: str = "max contribution should be >= min contribution and <= available tokens",
    ) -> None:
        super().__init__(
            message,
            details={
                "max_contribution": max_contribution,
                "min_contribution": min_contribution,
                "available_tokens": available_tokens,
            },
        )


# -------------------------- Eligibility / bounds / inventory --------------------------


class NotEligible(EligibilityError):
    code = "CROWDSALE_NOT_ALLOWLISTED"

    def __init__(self, *, caller: bytes, message: str = "only allowlisted participants") -> None:
        super().__init__(message, details={"caller": _show(caller)})


class NonMultipleOfPrice(BoundsError):
    code = "CROWDSALE_NON_MULTIPLE"

    def __init__(self, *, value: int, unit_price: int, message: str = "value must be a multiple of price") -> None:
        super().__init__(message, details={"value": value, "unit_price": unit_price})


class OutOfBounds(BoundsError):
    code = "CROWDSALE_OUT_OF_BOUNDS"

    def __init__(
        self,
        *,
        value: int,
        minimum: int,
        maximum: int,
        message: str = "value must be between min and max contribution",
    ) -> None:
        super().__init__(message, details={"value": value, "min": minimum, "max": maximum})


class InsufficientInventory(InventoryError):
    code = "CROWDSALE_INSUFFICIENT_INVENTORY"

    def __init__(self, *, requested: int, available: int, message: str = "not enough tokens left for sale") -> None:
        super().__init__(message, details={"requested": requested, "available": available})


# -------------------------- Ledger --------------------------


class InvalidAmount(LedgerError):
    code = "CROWDSALE_LEDGER_BAD_AMOUNT"

    def __init__(self, *, amount: Any, message: str = "amount must be an integer in [0, 2**256-1]") -> None:
        super().__init__(message, details={"amount": repr(amount)})


class InvalidAddress(LedgerError):
    code = "CROWDSALE_LEDGER_BAD_ADDR"

    def __init__(self, *, address: Any, message: str = "address must be non-empty bytes") -> None:
        super().__init__(message, details={"address": repr(address)})


class InsufficientBalance(LedgerError):
    code = "CROWDSALE_LEDGER_BALANCE"

    def __init__(
        self,
        *,
        holder: bytes,
        have: int,
        need: int,
        message: str = "insufficient balance",
    ) -> None:
        super().__init__(message, details={"holder": _show(holder), "have": have, "need": need})


class InsufficientAllowance(LedgerError):
    code = "CROWDSALE_LEDGER_ALLOWANCE"

    def __init__(
        self,
        *,
        owner: bytes,
        spender: bytes,
        have: int,
        need: int,
        message: str = "allowance too low",
    ) -> None:
        super().__init__(
            message,
            details={"owner": _show(owner), "spender": _show(spender), "have": have, "need": need},
        )


class TransferFailed(LedgerError):
    """A token transfer issued during release failed; the whole batch was rolled back."""
    code = "CROWDSALE_TRANSFER_FAILED"

    def __init__(
        self,
        *,
        participant: Optional[bytes] = None,
        quantity: Optional[int] = None,
        index: Optional[int] = None,
        reason: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
        message: str = "token transfer failed during release",
    ) -> None:
        d = dict(details or {})
        if participant is not None:
            d["participant"] = _show(participant)
        if quantity is not None:
            d["quantity"] = quantity
        if index is not None:
            d["index"] = index
        if reason is not None:
            d["reason"] = reason
        super().__init__(message, details=d)


class InsufficientFunds(LedgerError):
    """Withdrawal exceeds the value retained by the coordinator."""
    code = "CROWDSALE_INSUFFICIENT_FUNDS"

    def __init__(self, *, have: int, need: int, message: str = "insufficient funds") -> None:
        super().__init__(message, details={"have": have, "need": need})


# -------------------------- helpers --------------------------


def error_to_payload(err: CrowdsaleError) -> Dict[str, Any]:
    """
    Map a CrowdsaleError to a JSON-friendly payload:

        {"status": "<category>", "error": {code, message, details}}
    """
    return {"status": err.category, "error": err.to_dict()}


__all__ = [
    "CrowdsaleError",
    "AuthorizationError",
    "PhaseError",
    "ConfigurationError",
    "EligibilityError",
    "BoundsError",
    "InventoryError",
    "LedgerError",
    "NotAdmin",
    "AlreadyStarted",
    "SaleNotActive",
    "SaleStillActive",
    "AlreadyReleased",
    "TokensNotReleased",
    "InvalidDuration",
    "InvalidPrice",
    "InvalidInventory",
    "InvalidMinContribution",
    "InvalidMaxContribution",
    "NotEligible",
    "NonMultipleOfPrice",
    "OutOfBounds",
    "InsufficientInventory",
    "InvalidAmount",
    "InvalidAddress",
    "InsufficientBalance",
    "InsufficientAllowance",
    "TransferFailed",
    "InsufficientFunds",
    "error_to_payload",
]
