import pytest

from crowdsale import metrics
from crowdsale.errors import (BoundsError, EligibilityError,
                              InsufficientBalance, InsufficientInventory,
                              InvalidAddress, InventoryError, NonMultipleOfPrice,
                              NotAdmin, NotEligible, OutOfBounds, SaleNotActive)
from crowdsale.types import SalePhase

from .conftest import ADMIN, ALICE, BOB, CAROL, T0


def _state(sale):
    return (sale.available, sale.purchases(), sale.funds, sale.treasury.dump())


def test_contribution_records_purchase_and_collects_value(active_sale):
    p = active_sale.contribute(ALICE, 4)
    assert (p.participant, p.quantity, p.value, p.timestamp) == (ALICE, 8, 4, T0)
    assert active_sale.available == 22
    assert active_sale.purchases() == (p,)
    assert active_sale.funds == 4
    assert active_sale.treasury.balance(ALICE) == 96
    assert active_sale.allocation_of(ALICE) == 8
    # tokens are not moved until release
    assert active_sale.token.balance_of(ALICE) == 0
    (ev,) = active_sale.events.filter("Purchased")
    assert ev.args == {"participant": ALICE, "quantity": 8, "value": 4}
    active_sale.assert_consistent()


def test_allow_is_admin_only_and_idempotent(active_sale):
    with pytest.raises(NotAdmin):
        active_sale.allow(ALICE, CAROL)
    assert active_sale.allow(ADMIN, CAROL) is True
    assert active_sale.allow(ADMIN, CAROL) is False
    assert active_sale.is_allowed(CAROL)
    assert len(active_sale.events.filter("Allowed")) == 3  # alice, bob, carol


def test_allow_many_validates_whole_batch_first(sale):
    with pytest.raises(InvalidAddress):
        sale.allow_many(ADMIN, [CAROL, b""])
    assert not sale.is_allowed(CAROL)
    assert sale.allow_many(ADMIN, [CAROL, CAROL, BOB]) == 2
    assert sale.allowlist() == [BOB, CAROL]


def test_allowlisting_before_start_is_permitted(sale):
    sale.allow(ADMIN, ALICE)
    assert sale.is_allowed(ALICE)


def test_non_allowlisted_rejected_without_mutation(active_sale):
    active_sale.treasury.credit(CAROL, 100)
    before = _state(active_sale)
    with pytest.raises(NotEligible) as ei:
        active_sale.contribute(CAROL, 2)
    assert isinstance(ei.value, EligibilityError)
    assert _state(active_sale) == before


def test_eligibility_checked_before_phase(sale):
    # not started and not allowlisted: eligibility wins
    with pytest.raises(NotEligible):
        sale.contribute(CAROL, 2)


def test_contribute_before_start(sale):
    sale.allow(ADMIN, ALICE)
    with pytest.raises(SaleNotActive):
        sale.contribute(ALICE, 2)


def test_contribute_after_deadline(active_sale, clock):
    clock.advance(100)
    with pytest.raises(SaleNotActive) as ei:
        active_sale.contribute(ALICE, 2)
    assert ei.value.details["phase"] == "ended"


@pytest.mark.parametrize("value", [1, 3, 9])
def test_non_multiple_of_price_rejected(active_sale, value):
    before = _state(active_sale)
    with pytest.raises(NonMultipleOfPrice):
        active_sale.contribute(ALICE, value)
    assert _state(active_sale) == before


@pytest.mark.parametrize("value", [0, 12])
def test_out_of_bounds_rejected(active_sale, value):
    with pytest.raises(OutOfBounds) as ei:
        active_sale.contribute(ALICE, value)
    assert isinstance(ei.value, BoundsError)
    assert ei.value.details["min"] == 1
    assert ei.value.details["max"] == 10
    assert active_sale.purchases() == ()


def test_inventory_cannot_be_oversold(active_sale):
    active_sale.contribute(ALICE, 10)  # 20 tokens, 10 left
    with pytest.raises(InsufficientInventory) as ei:
        active_sale.contribute(BOB, 6)  # 12 tokens
    assert isinstance(ei.value, InventoryError)
    assert ei.value.details == {"requested": 12, "available": 10}
    assert active_sale.available == 10
    assert active_sale.treasury.balance(BOB) == 100


@pytest.mark.parametrize("order", [(ALICE, BOB), (BOB, ALICE)])
def test_racing_for_last_inventory_exactly_one_wins(active_sale, order):
    active_sale.contribute(ALICE, 6)  # 12 tokens, 18 left
    first, second = order
    active_sale.contribute(first, 8)  # 16 tokens, 2 left
    with pytest.raises(InventoryError):
        active_sale.contribute(second, 8)
    assert active_sale.available == 2
    assert len(active_sale.purchases()) == 2
    active_sale.assert_consistent()


def test_exhausted_inventory_ends_sale_before_deadline(sale):
    sale.start(ADMIN, 100, 1, 10, 1, 10)
    sale.allow(ADMIN, ALICE)
    sale.treasury.credit(ALICE, 10)
    sale.contribute(ALICE, 10)
    assert sale.available == 0
    assert sale.phase is SalePhase.ENDED
    with pytest.raises(SaleNotActive):
        sale.contribute(ALICE, 1)


def test_unfunded_contribution_rejected_without_mutation(active_sale):
    active_sale.allow(ADMIN, CAROL)
    with pytest.raises(InsufficientBalance):
        active_sale.contribute(CAROL, 2)
    assert active_sale.purchases() == ()
    assert active_sale.available == 30


def test_rejections_are_counted_by_code(active_sale):
    def count():
        return metrics.REGISTRY.get_sample_value(
            "crowdsale_contributions_rejected_total", {"code": NonMultipleOfPrice.code}
        ) or 0.0

    before = count()
    with pytest.raises(NonMultipleOfPrice):
        active_sale.contribute(ALICE, 3)
    assert count() == before + 1
