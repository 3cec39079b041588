from __future__ import annotations

"""
Crowdsale Coordinator
---------------------

Accepts contributions from allowlisted participants, converts them into token
allocations at a fixed rate, and once the sale has ended releases every
allocation in one batch and lets the administrator withdraw collected value.

Phases (derived, never stored):

    NOT_STARTED --start()--> ACTIVE --(deadline OR inventory == 0)--> ENDED
    ENDED --release()--> RELEASED --withdraw()--> RELEASED (repeatable)

Accounting
~~~~~~~~~~
- `available` only ever decreases, by exactly the quantity of each purchase;
  sum(purchase.quantity) + available == inventory fixed at start.
- Contributed value moves from the participant's treasury account into the
  coordinator's own account and stays there until `withdraw`.
- Token allocations are recorded as purchases and only transferred on
  `release`; the `released` flag is committed after every transfer succeeded.

Dependencies are injected: administrator identity, token ledger, value
treasury, and a time source (`time_fn() -> seconds`). Time-gated transitions
are evaluated lazily on each call; nothing is scheduled.

Concurrency: one re-entrant lock serializes every operation, so each either
applies all of its effects or none of them.
"""

import logging
import time
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from crowdsale import metrics
from crowdsale.access import (require_admin, require_allowlisted,
                              require_phase)
from crowdsale.errors import (CrowdsaleError, InsufficientFunds,
                              InsufficientInventory, InvalidAmount,
                              InvalidDuration, InvalidInventory,
                              InvalidMaxContribution, InvalidMinContribution,
                              InvalidPrice, InventoryError, LedgerError,
                              NonMultipleOfPrice, OutOfBounds, TransferFailed)
from crowdsale.events import EventLog
from crowdsale.ledger import (SupportsAtomic, TokenLedger, TokenLedgerLike,
                              require_address)
from crowdsale.treasury import Treasury
from crowdsale.types import (Address, Purchase, SaleConfig, SalePhase,
                             Timestamp, TokenAmount)

log = logging.getLogger(__name__)

DEFAULT_ADDRESS: Address = b"crowdsale"


def _is_int(x: Any) -> bool:
    return isinstance(x, int) and not isinstance(x, bool)


class Crowdsale:
    """
    Crowdsale state machine over a token ledger and a value treasury.

    Usage:
      sale = Crowdsale.deploy(admin, b"SJS Tokens", b"SJS", 18, 1000 * 10**18)
      sale.start(admin, duration=100, unit_price=2, available_tokens=...,
                 min_contribution=..., max_contribution=...)
      sale.allow(admin, alice)
      sale.contribute(alice, value)
      ... deadline passes ...
      sale.release(admin)
      sale.withdraw(admin, dest, sale.funds)
    """

    def __init__(
        self,
        admin: Address,
        token: TokenLedgerLike,
        *,
        treasury: Optional[Treasury] = None,
        time_fn: Callable[[], float] = time.time,
        address: Address = DEFAULT_ADDRESS,
        events: Optional[EventLog] = None,
    ) -> None:
        require_address(admin)
        require_address(address)
        self.admin = bytes(admin)
        self.address = bytes(address)
        self.token = token
        if events is None:
            events = getattr(token, "events", None)
            if events is None:
                events = EventLog()
        self.events = events
        self.treasury = treasury if treasury is not None else Treasury(events=events)
        self._now = time_fn
        self._lock = RLock()

        self._config: Optional[SaleConfig] = None
        self._available: int = 0
        self._allowlist: Set[Address] = set()
        self._purchases: List[Purchase] = []
        self._released = False
        # Purchases already paid out by a non-atomic ledger during a failed release.
        self._release_cursor = 0

    @classmethod
    def deploy(
        cls,
        admin: Address,
        name: bytes,
        symbol: bytes,
        decimals: int,
        initial_supply: int,
        *,
        treasury: Optional[Treasury] = None,
        time_fn: Callable[[], float] = time.time,
        address: Address = DEFAULT_ADDRESS,
    ) -> "Crowdsale":
        """
        Create the sale together with its own token: the whole initial supply
        is minted to the coordinator's address.
        """
        events = EventLog()
        token = TokenLedger(name, symbol, decimals, address, initial_supply, events=events)
        if treasury is None:
            treasury = Treasury(events=events)
        return cls(admin, token, treasury=treasury, time_fn=time_fn, address=address, events=events)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def now(self) -> Timestamp:
        return Timestamp(int(self._now()))

    @property
    def phase(self) -> SalePhase:
        with self._lock:
            return self._phase(self.now())

    def _phase(self, now: int) -> SalePhase:
        cfg = self._config
        if cfg is None:
            return SalePhase.NOT_STARTED
        if self._released:
            return SalePhase.RELEASED
        if now >= cfg.end_time or self._available == 0:
            return SalePhase.ENDED
        return SalePhase.ACTIVE

    @property
    def config(self) -> Optional[SaleConfig]:
        return self._config

    @property
    def end_time(self) -> int:
        return int(self._config.end_time) if self._config else 0

    @property
    def unit_price(self) -> int:
        return self._config.unit_price if self._config else 0

    @property
    def min_contribution(self) -> int:
        return self._config.min_contribution if self._config else 0

    @property
    def max_contribution(self) -> int:
        return self._config.max_contribution if self._config else 0

    @property
    def available(self) -> int:
        return self._available

    @property
    def released(self) -> bool:
        return self._released

    @property
    def funds(self) -> int:
        """Value currently retained by the coordinator."""
        return self.treasury.balance(self.address)

    @property
    def tokens_sold(self) -> int:
        with self._lock:
            return sum(p.quantity for p in self._purchases)

    @property
    def value_collected(self) -> int:
        with self._lock:
            return sum(p.value for p in self._purchases)

    def purchases(self) -> Tuple[Purchase, ...]:
        with self._lock:
            return tuple(self._purchases)

    def is_allowed(self, identity: Address) -> bool:
        return bytes(identity) in self._allowlist

    def allowlist(self) -> List[Address]:
        with self._lock:
            return sorted(self._allowlist)

    def allocation_of(self, identity: Address) -> int:
        """Total tokens purchased by `identity` (released or not)."""
        who = bytes(identity)
        with self._lock:
            return sum(p.quantity for p in self._purchases if p.participant == who)

    def assert_consistent(self) -> None:
        """Verify sum(purchases) + available == inventory fixed at start."""
        with self._lock:
            if self._config is None:
                if self._purchases or self._available:
                    raise InventoryError("sale not started but has inventory or purchases")
                return
            sold = sum(p.quantity for p in self._purchases)
            if sold + self._available != self._config.available_tokens:
                raise InventoryError(
                    "inventory invariant violated",
                    details={
                        "sold": sold,
                        "available": self._available,
                        "at_start": int(self._config.available_tokens),
                    },
                )

    def summary(self) -> Dict[str, Any]:
        """JSON-friendly snapshot of the sale."""
        with self._lock:
            return {
                "address": self.address.hex(),
                "admin": self.admin.hex(),
                "phase": self._phase(self.now()).value,
                "config": self._config.to_dict() if self._config else None,
                "available": self._available,
                "released": self._released,
                "funds": self.funds,
                "tokens_sold": sum(p.quantity for p in self._purchases),
                "value_collected": sum(p.value for p in self._purchases),
                "allowlist": [a.hex() for a in sorted(self._allowlist)],
                "purchases": [p.to_dict() for p in self._purchases],
            }

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def start(
        self,
        caller: Address,
        duration: int,
        unit_price: int,
        available_tokens: int,
        min_contribution: int,
        max_contribution: int,
    ) -> SaleConfig:
        """
        Configure and open the sale. Single initialization point: any later
        call fails with AlreadyStarted and leaves the configuration untouched.
        """
        with self._lock:
            require_admin(self.admin, caller, "start")
            now = self.now()
            require_phase("start", self._phase(now))

            if not _is_int(duration) or duration <= 0:
                raise InvalidDuration(duration=duration)
            if not _is_int(unit_price) or unit_price <= 0:
                raise InvalidPrice(unit_price=unit_price)
            supply = self.token.total_supply()
            if not _is_int(available_tokens) or available_tokens <= 0 or available_tokens > supply:
                raise InvalidInventory(available_tokens=available_tokens, total_supply=supply)
            if not _is_int(min_contribution) or min_contribution <= 0:
                raise InvalidMinContribution(min_contribution=min_contribution)
            if (
                not _is_int(max_contribution)
                or max_contribution <= 0
                or max_contribution > available_tokens
                or max_contribution < min_contribution
            ):
                raise InvalidMaxContribution(
                    max_contribution=max_contribution,
                    min_contribution=min_contribution,
                    available_tokens=available_tokens,
                )

            cfg = SaleConfig(
                end_time=Timestamp(now + duration),
                unit_price=unit_price,
                available_tokens=TokenAmount(available_tokens),
                min_contribution=min_contribution,
                max_contribution=max_contribution,
            )
            self._config = cfg
            self._available = available_tokens

            self.events.emit("SaleStarted", cfg.to_dict())
            metrics.record_start(available_tokens)
            log.info(
                "sale started: end=%d price=%d inventory=%d bounds=[%d, %d]",
                cfg.end_time, unit_price, available_tokens, min_contribution, max_contribution,
            )
            return cfg

    def allow(self, caller: Address, identity: Address) -> bool:
        """
        Allowlist `identity`. Idempotent; returns True if it was newly added.
        """
        with self._lock:
            require_admin(self.admin, caller, "allow")
            require_phase("allow", self._phase(self.now()))
            require_address(identity)
            who = bytes(identity)
            if who in self._allowlist:
                return False
            self._allowlist.add(who)
            self.events.emit("Allowed", {"identity": who})
            log.debug("allowlisted %s", who.hex())
            return True

    def allow_many(self, caller: Address, identities: Iterable[Address]) -> int:
        """
        Allowlist a batch. Every identity is validated before any is added.
        Returns how many were newly added.
        """
        with self._lock:
            require_admin(self.admin, caller, "allow")
            batch = list(identities)
            for who in batch:
                require_address(who)
            return sum(1 for who in batch if self.allow(caller, who))

    # ------------------------------------------------------------------
    # Participation
    # ------------------------------------------------------------------

    def contribute(self, caller: Address, value: int) -> Purchase:
        """
        Buy `unit_price * value` tokens for `value`. The value is collected
        from the caller's treasury account; the purchase is appended and the
        inventory decremented in the same locked step.
        """
        with self._lock:
            try:
                return self._contribute(caller, value)
            except CrowdsaleError as e:
                metrics.record_rejection(e.code)
                log.debug("contribution rejected: %s", e)
                raise

    def _contribute(self, caller: Address, value: int) -> Purchase:
        require_address(caller)
        caller = bytes(caller)
        require_allowlisted(self._allowlist, caller)
        now = self.now()
        require_phase("contribute", self._phase(now))
        cfg = self._config
        assert cfg is not None

        if not _is_int(value) or value < 0:
            raise InvalidAmount(amount=value)
        if value % cfg.unit_price != 0:
            raise NonMultipleOfPrice(value=value, unit_price=cfg.unit_price)
        if value < cfg.min_contribution or value > cfg.max_contribution:
            raise OutOfBounds(value=value, minimum=cfg.min_contribution, maximum=cfg.max_contribution)
        quantity = cfg.quantity_for(value)
        if quantity > self._available:
            raise InsufficientInventory(requested=quantity, available=self._available)

        # Only failure left is the caller's value balance; it raises before any write.
        self.treasury.transfer(caller, self.address, value, reason="contribution")

        purchase = Purchase(participant=caller, quantity=quantity, value=value, timestamp=now)
        self._purchases.append(purchase)
        self._available -= quantity

        self.events.emit("Purchased", {"participant": caller, "quantity": quantity, "value": value})
        metrics.record_contribution(quantity, value, self._available)
        log.debug(
            "purchase #%d: %s bought %d for %d (remaining %d)",
            len(self._purchases), caller.hex(), quantity, value, self._available,
        )
        if self._available == 0:
            log.info("inventory exhausted; sale ended")
        return purchase

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def release(self, caller: Address) -> int:
        """
        Transfer every purchased allocation from the coordinator's token
        balance to its participant, in purchase order. On failure `released`
        stays False and the call can be retried.

        With a `SupportsAtomic` ledger the batch is all-or-nothing: no
        allocation is moved. A ledger without batching cannot undo transfers
        already made, so a mid-batch failure leaves earlier participants paid;
        a retry resumes after the last allocation that was paid and never pays
        anyone twice. A shortfall in the coordinator's token balance is caught
        before any transfer on either kind of ledger.

        Returns the quantity transferred by this call.
        """
        with self._lock:
            require_admin(self.admin, caller, "release")
            require_phase("release", self._phase(self.now()))

            pending = self._purchases[self._release_cursor:]
            owed = sum(p.quantity for p in pending)
            mark = self.events.mark()
            cursor = self._release_cursor

            with metrics.time_release():
                try:
                    have = self.token.balance_of(self.address)
                    if have < owed:
                        raise TransferFailed(
                            reason="coordinator token balance does not cover allocations",
                            details={"have": have, "need": owed},
                        )
                    if isinstance(self.token, SupportsAtomic):
                        with self.token.atomic():
                            self._transfer_all(pending, cursor)
                    else:
                        self._transfer_all(pending, cursor)
                except Exception:
                    if isinstance(self.token, SupportsAtomic):
                        self._release_cursor = cursor
                        self.events.truncate(mark)
                    metrics.record_release(False)
                    log.warning(
                        "release failed (%d purchases, %d tokens owed)", len(pending), owed
                    )
                    raise

            self._released = True
            self._release_cursor = len(self._purchases)
            self.events.emit("TokensReleased", {"purchases": len(self._purchases), "quantity": owed})
            metrics.record_release(True)
            log.info("released %d tokens across %d purchases", owed, len(pending))
            return owed

    def _transfer_all(self, pending: List[Purchase], offset: int) -> None:
        for i, p in enumerate(pending, start=offset):
            try:
                ok = self.token.transfer(self.address, p.participant, p.quantity)
            except LedgerError as e:
                raise TransferFailed(
                    participant=p.participant, quantity=p.quantity, index=i, reason=e.code
                ) from e
            if ok is False:
                raise TransferFailed(
                    participant=p.participant, quantity=p.quantity, index=i, reason="ledger returned false"
                )
            self._release_cursor = i + 1
            log.debug("released %d tokens to %s", p.quantity, p.participant.hex())

    def withdraw(self, caller: Address, destination: Address, amount: int) -> int:
        """
        Move `amount` of retained value to `destination`. Only after release;
        repeatable up to the retained balance. Returns the remaining funds.
        """
        with self._lock:
            require_admin(self.admin, caller, "withdraw")
            require_phase("withdraw", self._phase(self.now()))
            require_address(destination)
            if not _is_int(amount) or amount < 0:
                raise InvalidAmount(amount=amount)
            have = self.funds
            if have < amount:
                raise InsufficientFunds(have=have, need=amount)

            self.treasury.transfer(self.address, destination, amount, reason="withdraw")

            self.events.emit("FundsWithdrawn", {"destination": bytes(destination), "amount": amount})
            metrics.record_withdrawal(amount)
            log.info("withdrew %d to %s", amount, bytes(destination).hex())
            return have - amount


__all__ = ["Crowdsale", "DEFAULT_ADDRESS"]
