# -*- coding: utf-8 -*-
"""
crowdsale.access
================

Guard functions checked at the top of every coordinator operation. Each guard
either returns silently or raises the matching `CrowdsaleError`; none of them
mutate anything.

- `require_admin(admin, caller, op)`       → NotAdmin
- `require_allowlisted(allowlist, caller)` → NotEligible
- `require_phase(op, phase)`               → the PhaseError listed in PHASE_RULES

The legal phase for each operation lives in one table, so the state machine's
rules can be read (and tested) in one place:

    op           allowed phase   otherwise
    ----------   -------------   ------------------------------------------
    start        NOT_STARTED     AlreadyStarted
    allow        any             -
    contribute   ACTIVE          SaleNotActive
    release      ENDED           SaleStillActive (not ended) / AlreadyReleased
    withdraw     RELEASED        SaleStillActive (not ended) / TokensNotReleased
"""
from __future__ import annotations

from typing import AbstractSet, Callable, Dict, Mapping, Tuple

from crowdsale.errors import (AlreadyReleased, AlreadyStarted, NotAdmin,
                              NotEligible, PhaseError, SaleNotActive,
                              SaleStillActive, TokensNotReleased)
from crowdsale.types import SalePhase

__all__ = [
    "PHASE_RULES",
    "require_admin",
    "require_allowlisted",
    "require_phase",
    "allowed_phases",
]

_ErrFactory = Callable[[SalePhase], PhaseError]

_ALL = frozenset(SalePhase)
_NOT_ENDED = (SalePhase.NOT_STARTED, SalePhase.ACTIVE)


def _already_started(p: SalePhase) -> PhaseError:
    return AlreadyStarted(phase=p.value)


def _not_active(p: SalePhase) -> PhaseError:
    return SaleNotActive(phase=p.value)


def _still_active(p: SalePhase) -> PhaseError:
    return SaleStillActive(phase=p.value)


def _already_released(p: SalePhase) -> PhaseError:
    return AlreadyReleased(phase=p.value)


def _not_released(p: SalePhase) -> PhaseError:
    return TokensNotReleased(phase=p.value)


# op -> (allowed phases, {rejected phase: error factory})
PHASE_RULES: Mapping[str, Tuple[AbstractSet[SalePhase], Dict[SalePhase, _ErrFactory]]] = {
    "start": (
        frozenset({SalePhase.NOT_STARTED}),
        {p: _already_started for p in _ALL - {SalePhase.NOT_STARTED}},
    ),
    "allow": (_ALL, {}),
    "contribute": (
        frozenset({SalePhase.ACTIVE}),
        {p: _not_active for p in _ALL - {SalePhase.ACTIVE}},
    ),
    "release": (
        frozenset({SalePhase.ENDED}),
        {
            **{p: _still_active for p in _NOT_ENDED},
            SalePhase.RELEASED: _already_released,
        },
    ),
    "withdraw": (
        frozenset({SalePhase.RELEASED}),
        {
            **{p: _still_active for p in _NOT_ENDED},
            SalePhase.ENDED: _not_released,
        },
    ),
}


def allowed_phases(op: str) -> AbstractSet[SalePhase]:
    return PHASE_RULES[op][0]


def require_phase(op: str, phase: SalePhase) -> None:
    """
    Raise the PhaseError registered for (`op`, `phase`) unless `phase` is legal.
    Unknown operations raise KeyError (a programming error, not a sale rule).
    """
    allowed, rejections = PHASE_RULES[op]
    if phase in allowed:
        return
    raise rejections[phase](phase)


def require_admin(admin: bytes, caller: bytes, op: str) -> None:
    """
    Raise NotAdmin unless `caller` equals the administrator.
    """
    if caller != admin:
        raise NotAdmin(caller=caller, operation=op)


def require_allowlisted(allowlist: AbstractSet[bytes], caller: bytes) -> None:
    """
    Raise NotEligible unless `caller` has been allowlisted.
    """
    if caller not in allowlist:
        raise NotEligible(caller=caller)
