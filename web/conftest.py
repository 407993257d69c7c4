from decimal import Decimal

import pytest

from apps.checkout.adapters import (
    InMemoryCatalog,
    InMemoryCampaigns,
    InMemoryCustomers,
    InMemoryLedger,
    InMemoryOrders,
    InMemoryOutcomes,
    InMemoryPromotions,
    PaymentsStub,
    StaticTaxLookup,
)
from apps.checkout.domain import ProductSnapshot
from apps.checkout.finalizer import Finalizer
from apps.checkout.payments import PaymentOrchestrator
from apps.checkout.promotions import PromotionApplier
from apps.checkout.service import CheckoutService
from apps.checkout.shipping import ShippingCalculator
from apps.checkout.stock import StockReservationGuard
from apps.checkout.store import OrderStore
from apps.checkout.totals import TotalsCalculator


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False


def product(pid, price, stock, categories=("c1",), name=None):
    return ProductSnapshot(
        id=pid,
        name=name or f"Product {pid}",
        unit_price=Decimal(str(price)),
        stock_quantity=stock,
        category_ids=frozenset(categories),
    )


class Pipeline:
    """In-memory wiring of every checkout component, shared by the tests."""

    def __init__(self, products=(), campaigns=(), promotions=(), carts=None, tax_rates=None, payments=None, **service_kwargs):
        self.catalog = InMemoryCatalog(products)
        self.campaigns = InMemoryCampaigns(campaigns)
        self.promotion_codes = InMemoryPromotions(promotions)
        self.customers = InMemoryCustomers(carts)
        self.orders = InMemoryOrders()
        self.ledger = InMemoryLedger()
        self.outcomes = InMemoryOutcomes()
        self.payments = payments or PaymentsStub()
        self.tax = StaticTaxLookup(tax_rates or {"US": "0.10"})

        self.guard = StockReservationGuard(self.catalog)
        self.store = OrderStore(self.orders)
        self.orchestrator = PaymentOrchestrator(self.store, self.payments)
        self.finalizer = Finalizer(self.customers, self.guard, self.ledger, self.outcomes)
        self.service = CheckoutService(
            customers=self.customers,
            catalog=self.catalog,
            campaigns=self.campaigns,
            guard=self.guard,
            promotions=PromotionApplier(self.promotion_codes, self.orders),
            shipping=ShippingCalculator(),
            totals=TotalsCalculator(self.tax),
            orchestrator=self.orchestrator,
            finalizer=self.finalizer,
            **service_kwargs,
        )


@pytest.fixture
def make_pipeline():
    return Pipeline


@pytest.fixture
def address():
    return {"street": "1 Main St", "city": "Springfield", "state": "il", "postal_code": "62701", "country": "us"}


@pytest.fixture
def checkout_request(address):
    return {
        "customer_id": "cust-1",
        "payment_method": "credit_card",
        "shipping_address": address,
        "shipping_method": "standard",
        "ip_address": "203.0.113.7",
        "user_agent": "pytest",
    }


@pytest.fixture
def make_product():
    return product
