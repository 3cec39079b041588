import pytest

from crowdsale.coordinator import Crowdsale

ADMIN = b"admin"
ALICE = b"alice"
BOB = b"bob"
CAROL = b"carol"
VAULT = b"vault"

T0 = 1_000


class FakeClock:
    def __init__(self, t: float = 0.0):
        self.t = float(t)

    def advance(self, dt: float) -> None:
        self.t += float(dt)

    def now(self) -> float:
        return self.t

    __call__ = now


def mk_sale(clock: FakeClock, supply: int = 1_000) -> Crowdsale:
    return Crowdsale.deploy(ADMIN, b"SJS Tokens", b"SJS", 0, supply, time_fn=clock)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def sale(clock: FakeClock) -> Crowdsale:
    """Deployed, not started. 1000-token supply held by the coordinator."""
    return mk_sale(clock)


@pytest.fixture
def active_sale(sale: Crowdsale) -> Crowdsale:
    """
    Started sale: price 2, 30 tokens, contributions in [1, 10], 100s long.
    ALICE and BOB are allowlisted and funded with 100 value each.
    """
    sale.start(ADMIN, 100, 2, 30, 1, 10)
    sale.allow_many(ADMIN, [ALICE, BOB])
    sale.treasury.credit(ALICE, 100)
    sale.treasury.credit(BOB, 100)
    return sale
