"""Shared pytest fixtures for procurement simulator tests."""

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


from procurement_sim.catalog import create_counterparty_config
from procurement_sim.models import LineItemRequest, Offer, OfferSource, PriorityWeights
from procurement_sim.offer_ledger import OfferLedger


class FakeClock:
    """Monotonic clock advancing one second per call."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_offer(price: float, lead_time: int = 30, terms: str = "30/70") -> Offer:
    return Offer(unit_price=price, lead_time_days=lead_time, payment_terms=terms)


@pytest.fixture
def offer_factory():
    return make_offer


@pytest.fixture
def ledger(clock):
    return OfferLedger("supplier-1", clock=clock)


@pytest.fixture
def haggling_ledger(ledger):
    """Brand and supplier converging over three rounds."""
    for round_num, (brand, supplier) in enumerate([(20.0, 30.0), (22.0, 28.0), (24.0, 26.0)]):
        ledger.add_offer(round_num, OfferSource.BRAND, make_offer(brand))
        ledger.add_offer(round_num, OfferSource.SUPPLIER, make_offer(supplier))
    return ledger


@pytest.fixture
def small_order():
    """Two products, 15,000 units: the 5% volume tier."""
    return [
        LineItemRequest(product_id="FSH013", quantity=10000),
        LineItemRequest(product_id="FSH014", quantity=5000),
    ]


@pytest.fixture
def equal_priorities():
    return PriorityWeights()


@pytest.fixture
def supplier_profile():
    return create_counterparty_config("supplier-1")
