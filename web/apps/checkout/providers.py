"""Service provider helpers for wiring the checkout pipeline.

``get_checkout_service`` is the single place where adapters are chosen. The
pipeline always persists through the Django ORM repositories; the payment
capability is the remote ``HttpPaymentGateway`` when
``settings.USE_HTTP_ADAPTERS`` is truthy and the in-process ``PaymentsStub``
otherwise (tests and local development).
"""

from django.conf import settings

from .adapters import PaymentsStub
from .finalizer import Finalizer
from .http_adapters import HttpPaymentGateway
from .payments import PaymentOrchestrator
from .promotions import PromotionApplier
from .reconciliation import Reconciler
from .repository import (
    OrderRepository,
    OrmCampaignDirectory,
    OrmCatalog,
    OrmCustomerStore,
    OrmFinalizeOutcomes,
    OrmPaymentLedger,
    OrmPromotionCodes,
    OrmStock,
    SettingsTaxLookup,
)
from .service import CheckoutService
from .shipping import ShippingCalculator
from .stock import StockReservationGuard
from .store import OrderStore
from .totals import TotalsCalculator


def get_payment_capability():
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return HttpPaymentGateway()
    return PaymentsStub()


def _finalizer(customers) -> Finalizer:
    return Finalizer(
        customers=customers,
        guard=StockReservationGuard(OrmStock()),
        ledger=OrmPaymentLedger(),
        outcomes=OrmFinalizeOutcomes(),
    )


def _store(orders) -> OrderStore:
    return OrderStore(orders, currency=getattr(settings, "CHECKOUT_CURRENCY", "USD"))


def get_checkout_service() -> CheckoutService:
    """Return a ``CheckoutService`` wired with the configured adapters."""
    customers = OrmCustomerStore()
    orders = OrderRepository()
    return CheckoutService(
        customers=customers,
        catalog=OrmCatalog(),
        campaigns=OrmCampaignDirectory(),
        guard=StockReservationGuard(OrmStock()),
        promotions=PromotionApplier(OrmPromotionCodes(), orders),
        shipping=ShippingCalculator(getattr(settings, "CHECKOUT_SHIPPING_RATES", None)),
        totals=TotalsCalculator(SettingsTaxLookup()),
        orchestrator=PaymentOrchestrator(_store(orders), get_payment_capability()),
        finalizer=_finalizer(customers),
        min_purchase_policy=getattr(settings, "CHECKOUT_MIN_PURCHASE_POLICY", "reprice"),
        allow_partial_cart=getattr(settings, "CHECKOUT_ALLOW_PARTIAL_CART", False),
        currency=getattr(settings, "CHECKOUT_CURRENCY", "USD"),
    )


def get_reconciler() -> Reconciler:
    customers = OrmCustomerStore()
    return Reconciler(_store(OrderRepository()), _finalizer(customers), OrmFinalizeOutcomes())
