# -*- coding: utf-8 -*-
"""
Property tests for the coordinator's accounting.

- inventory conservation: sold + available == inventory at start, and
  available never increases, across arbitrary contribution sequences
- rejected contributions leave the sale untouched
- release is one-shot and conserves token supply
- journal revert restores the baseline exactly
"""
from __future__ import annotations

from typing import List, Tuple

from hypothesis import given, settings, strategies as st

from crowdsale.coordinator import Crowdsale
from crowdsale.errors import (AlreadyReleased, AlreadyStarted,
                              CrowdsaleError, NonMultipleOfPrice, PhaseError)
from crowdsale.ledger.journal import BalanceJournal
from crowdsale.types import SalePhase

from .conftest import ADMIN, FakeClock

PARTICIPANTS = [b"p0", b"p1", b"p2", b"p3"]
OUTSIDER = b"outsider"

PRICE = st.integers(min_value=1, max_value=5)
INVENTORY = st.integers(min_value=1, max_value=200)
CONTRIBUTIONS = st.lists(
    st.tuples(st.integers(min_value=0, max_value=4), st.integers(min_value=0, max_value=60)),
    min_size=0,
    max_size=30,
)


def _mk(price: int, inventory: int, lo: int = 1, hi: int = 50) -> Tuple[Crowdsale, FakeClock]:
    clock = FakeClock(0)
    sale = Crowdsale.deploy(ADMIN, b"Prop Token", b"PT", 0, 1_000, time_fn=clock)
    hi = min(hi, inventory)
    lo = min(lo, hi)
    sale.start(ADMIN, 1_000, price, inventory, lo, hi)
    sale.allow_many(ADMIN, PARTICIPANTS)
    for p in PARTICIPANTS + [OUTSIDER]:
        sale.treasury.credit(p, 10_000)
    return sale, clock


def _who(i: int) -> bytes:
    return OUTSIDER if i == len(PARTICIPANTS) else PARTICIPANTS[i]


@settings(max_examples=150, deadline=None)
@given(price=PRICE, inventory=INVENTORY, ops=CONTRIBUTIONS)
def test_inventory_is_conserved(price, inventory, ops: List[Tuple[int, int]]):
    sale, _ = _mk(price, inventory)
    prev = sale.available
    for idx, value in ops:
        try:
            sale.contribute(_who(idx), value)
        except CrowdsaleError:
            pass
        assert sale.available <= prev
        prev = sale.available
        assert sale.tokens_sold + sale.available == inventory
    assert sale.funds == sale.value_collected
    assert all(p.participant != OUTSIDER for p in sale.purchases())
    sale.assert_consistent()


@settings(max_examples=100, deadline=None)
@given(price=st.integers(min_value=2, max_value=7), value=st.integers(min_value=1, max_value=49))
def test_non_multiple_never_mutates(price, value):
    if value % price == 0:
        value += 1
    sale, _ = _mk(price, 200)
    before = (sale.available, sale.purchases(), sale.funds)
    try:
        sale.contribute(PARTICIPANTS[0], value)
    except NonMultipleOfPrice:
        pass
    else:
        raise AssertionError("non-multiple contribution accepted")
    assert (sale.available, sale.purchases(), sale.funds) == before


@settings(max_examples=60, deadline=None)
@given(price=PRICE, ops=CONTRIBUTIONS)
def test_release_is_one_shot_and_conserves_supply(price, ops):
    sale, clock = _mk(price, 200)
    for idx, value in ops:
        try:
            sale.contribute(_who(idx), value)
        except CrowdsaleError:
            pass
    clock.advance(1_000)
    assert sale.phase is SalePhase.ENDED
    sale.release(ADMIN)
    balances = {p: sale.token.balance_of(p) for p in PARTICIPANTS}
    for p in PARTICIPANTS:
        assert balances[p] == sale.allocation_of(p)
    assert sum(balances.values()) + sale.token.balance_of(sale.address) == 1_000

    try:
        sale.release(ADMIN)
    except AlreadyReleased:
        pass
    else:
        raise AssertionError("second release accepted")
    assert {p: sale.token.balance_of(p) for p in PARTICIPANTS} == balances


@settings(max_examples=40, deadline=None)
@given(steps=st.integers(min_value=0, max_value=3))
def test_second_start_always_rejected(steps):
    sale, clock = _mk(2, 100)
    cfg = sale.config
    if steps >= 1:
        sale.contribute(PARTICIPANTS[0], 4)
    if steps >= 2:
        clock.advance(1_000)
    if steps >= 3:
        sale.release(ADMIN)
    try:
        sale.start(ADMIN, 10, 1, 10, 1, 10)
    except AlreadyStarted as e:
        assert isinstance(e, PhaseError)
    else:
        raise AssertionError("restart accepted")
    assert sale.config == cfg


@settings(max_examples=100, deadline=None)
@given(
    base=st.dictionaries(st.binary(min_size=1, max_size=4), st.integers(min_value=0, max_value=10**6), max_size=8),
    writes=st.dictionaries(st.binary(min_size=1, max_size=4), st.integers(min_value=0, max_value=10**6), max_size=8),
)
def test_journal_revert_restores_baseline(base, writes):
    j = BalanceJournal(balances=dict(base))
    seen = {k: j.balance(k) for k in set(base) | set(writes)}
    marker = j.begin()
    for k, v in writes.items():
        j.set_balance(k, v)
    j.revert_to(marker - 1)
    assert {k: j.balance(k) for k in seen} == seen
