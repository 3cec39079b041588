"""
Full sale lifecycle with 18-decimal amounts: contributions of 1 and 10 whole
units at a price of 2 buy 2 and 20 whole tokens.
"""
from crowdsale.coordinator import Crowdsale
from crowdsale.types import SalePhase

from .conftest import ADMIN, ALICE, BOB, VAULT, FakeClock

UNIT = 10**18


def test_full_lifecycle():
    clock = FakeClock(1_700_000_000)
    sale = Crowdsale.deploy(ADMIN, b"SJS Tokens", b"SJS", 18, 1_000 * UNIT, time_fn=clock)
    assert sale.token.total_supply() == 1_000 * UNIT

    sale.start(ADMIN, 100, 2, 30 * UNIT, 1 * UNIT, 10 * UNIT)
    sale.allow_many(ADMIN, [ALICE, BOB])
    sale.treasury.credit(ALICE, 5 * UNIT)
    sale.treasury.credit(BOB, 50 * UNIT)

    a = sale.contribute(ALICE, 1 * UNIT)
    b = sale.contribute(BOB, 10 * UNIT)
    assert (a.quantity, b.quantity) == (2 * UNIT, 20 * UNIT)
    assert sale.available == 8 * UNIT
    assert sale.funds == 11 * UNIT
    assert sale.phase is SalePhase.ACTIVE

    clock.advance(101)
    assert sale.phase is SalePhase.ENDED

    sale.release(ADMIN)
    assert sale.released
    assert sale.token.balance_of(ALICE) == 2 * UNIT
    assert sale.token.balance_of(BOB) == 20 * UNIT
    assert sale.token.balance_of(sale.address) == 978 * UNIT

    remaining = sale.withdraw(ADMIN, VAULT, 11 * UNIT)
    assert remaining == 0
    assert sale.treasury.balance(VAULT) == 11 * UNIT
    assert sale.phase is SalePhase.RELEASED

    assert sale.events.names() == [
        "Transfer",  # mint
        "SaleStarted",
        "Allowed",
        "Allowed",
        "ValueTransfer",
        "Purchased",
        "ValueTransfer",
        "Purchased",
        "Transfer",
        "Transfer",
        "TokensReleased",
        "ValueTransfer",
        "FundsWithdrawn",
    ]
    sale.assert_consistent()

    summary = sale.summary()
    assert summary["phase"] == "released"
    assert summary["tokens_sold"] == 22 * UNIT
    assert summary["value_collected"] == 11 * UNIT
    assert [p["participant"] for p in summary["purchases"]] == [ALICE.hex(), BOB.hex()]
