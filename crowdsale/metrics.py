from __future__ import annotations

"""
Prometheus metrics for the crowdsale coordinator.

We expose counters and histograms covering:
- contributions: accepted, and rejected by error code
- tokens sold and value collected (raw base units)
- releases: completed and rolled back, with batch duration
- withdrawals
- remaining inventory (gauge)

Metrics live in a dedicated registry so embedding apps can merge or expose it
as they see fit; `render_latest()` returns the text exposition format.
"""


import time
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, generate_latest)

REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Counters
# ────────────────────────────────────────────────────────────────────────────────

CONTRIBUTIONS_ACCEPTED = Counter(
    "crowdsale_contributions_accepted_total",
    "Total contributions accepted.",
    registry=REGISTRY,
)

CONTRIBUTIONS_REJECTED = Counter(
    "crowdsale_contributions_rejected_total",
    "Total contributions rejected, by error code.",
    labelnames=("code",),
    registry=REGISTRY,
)

TOKENS_SOLD = Counter(
    "crowdsale_tokens_sold_total",
    "Tokens allocated to participants (base units).",
    registry=REGISTRY,
)

VALUE_COLLECTED = Counter(
    "crowdsale_value_collected_total",
    "Value collected from participants (base units).",
    registry=REGISTRY,
)

RELEASES = Counter(
    "crowdsale_releases_total",
    "Release attempts by result.",
    labelnames=("result",),  # "released" | "rolled_back"
    registry=REGISTRY,
)

WITHDRAWALS = Counter(
    "crowdsale_withdrawals_total",
    "Completed withdrawals.",
    registry=REGISTRY,
)

VALUE_WITHDRAWN = Counter(
    "crowdsale_value_withdrawn_total",
    "Value withdrawn by the administrator (base units).",
    registry=REGISTRY,
)

# ────────────────────────────────────────────────────────────────────────────────
# Gauges / histograms
# ────────────────────────────────────────────────────────────────────────────────

INVENTORY_REMAINING = Gauge(
    "crowdsale_inventory_remaining",
    "Tokens still available for sale.",
    registry=REGISTRY,
)

_BATCH_BUCKETS: Tuple[float, ...] = (
    0.0005,
    0.001,
    0.005,
    0.01,
    0.05,
    0.1,
    0.5,
    1.0,
    5.0,
)

RELEASE_SECONDS = Histogram(
    "crowdsale_release_seconds",
    "Time spent executing a release batch.",
    buckets=_BATCH_BUCKETS,
    registry=REGISTRY,
)

# ────────────────────────────────────────────────────────────────────────────────
# Recording helpers
# ────────────────────────────────────────────────────────────────────────────────


def record_contribution(quantity: int, value: int, remaining: int) -> None:
    CONTRIBUTIONS_ACCEPTED.inc()
    TOKENS_SOLD.inc(quantity)
    VALUE_COLLECTED.inc(value)
    INVENTORY_REMAINING.set(remaining)


def record_rejection(code: str) -> None:
    CONTRIBUTIONS_REJECTED.labels(code=code).inc()


def record_start(available: int) -> None:
    INVENTORY_REMAINING.set(available)


def record_release(ok: bool) -> None:
    RELEASES.labels(result="released" if ok else "rolled_back").inc()


def record_withdrawal(amount: int) -> None:
    WITHDRAWALS.inc()
    VALUE_WITHDRAWN.inc(amount)


@contextmanager
def time_release() -> Iterator[None]:
    """Context manager to observe release batch duration."""
    start = time.perf_counter()
    try:
        yield
    finally:
        RELEASE_SECONDS.observe(time.perf_counter() - start)


def render_latest(registry: Optional[CollectorRegistry] = None) -> Tuple[bytes, str]:
    """Return (payload, content_type) for the text exposition format."""
    return generate_latest(registry or REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "REGISTRY",
    "CONTRIBUTIONS_ACCEPTED",
    "CONTRIBUTIONS_REJECTED",
    "TOKENS_SOLD",
    "VALUE_COLLECTED",
    "RELEASES",
    "WITHDRAWALS",
    "VALUE_WITHDRAWN",
    "INVENTORY_REMAINING",
    "RELEASE_SECONDS",
    "record_contribution",
    "record_rejection",
    "record_start",
    "record_release",
    "record_withdrawal",
    "time_release",
    "render_latest",
]
