"""
Shared fixtures for marketplace tests.
"""

import pytest

from core.clock import MockBlockClock
from data_marketplace import DataMarketplace, InMemoryLedger


PLATFORM = "platform"
OWNER = "alice"
CONSUMER = "lab"
FINGERPRINT = bytes(range(32))
PRICE = 10_000_000
FUNDS = 10**12


@pytest.fixture
def clock():
    """Block clock starting at height 100."""
    return MockBlockClock(initial_height=100)


@pytest.fixture
def ledger():
    """Ledger with two funded consumers."""
    return InMemoryLedger({CONSUMER: FUNDS, "clinic": FUNDS})


@pytest.fixture
def market(ledger, clock):
    """Marketplace with default configuration."""
    return DataMarketplace(PLATFORM, ledger, clock)


@pytest.fixture
def make_record(market):
    """Factory: consent, register and assess a record."""

    def _make(
        owner=OWNER,
        category="EHR",
        price=PRICE,
        scores=(80, 70, 90, 60),
        can_reidentify=False,
    ):
        if not market.is_consent_live(owner, category):
            market.grant_consent(owner, category, can_reidentify=can_reidentify)
        record_id = market.register(owner, category, FINGERPRINT, price, "cohort extract")
        if scores is not None:
            market.assess(PLATFORM, record_id, *scores)
        return record_id

    return _make


@pytest.fixture
def make_request(market):
    """Factory: open a funded research request."""

    def _make(
        consumer=CONSUMER,
        categories=("EHR",),
        max_price=PRICE,
        min_quality=60,
        max_records=5,
        budget=None,
        **kwargs,
    ):
        if budget is None:
            budget = max_price * max_records
        return market.open_request(
            consumer,
            "Cardiology cohort",
            list(categories),
            max_price_per_record=max_price,
            min_quality=min_quality,
            max_records=max_records,
            budget=budget,
            **kwargs,
        )

    return _make
