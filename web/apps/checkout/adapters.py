"""In-process adapters for the checkout ports.

These adapters implement every port without a database or network calls.
They are intended for unit tests and local development where deterministic
behavior is useful and external services are not required.
"""

import copy
import threading
import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from .domain import (
    ZERO,
    Address,
    Campaign,
    CartLine,
    FinalizeOutcome,
    FinalizeStatus,
    Order,
    OrderStatus,
    PaymentContext,
    PaymentRecord,
    PaymentResult,
    PaymentStatus,
    ProductSnapshot,
    PromotionCode,
    utcnow,
)

_EPOCH = datetime.min


def campaign_order_key(campaign: Campaign):
    """Stacking order: explicit rank, then activation time, then id."""
    starts = campaign.starts_at.replace(tzinfo=None) if campaign.starts_at else _EPOCH
    return (campaign.rank, starts, campaign.id)


def lookup_rate(rates: dict, default, address: Address) -> Decimal:
    """Pick the most specific rate: ``COUNTRY:STATE``, then ``COUNTRY``."""
    country = (address.country or "").upper()
    state = (address.state or "").upper()
    for key in (f"{country}:{state}", country):
        if key in rates:
            return Decimal(str(rates[key]))
    return Decimal(str(default))


class InMemoryCatalog:
    """Product catalog that also serves as the stock store.

    ``decrement`` compares and writes under one lock, so concurrent commits on
    the same product never oversell.
    """

    def __init__(self, products: Iterable[ProductSnapshot] = ()):
        self._products = {p.id: p for p in products}
        self._lock = threading.Lock()

    def stock_of(self, product_id: str) -> Optional[int]:
        product = self._products.get(product_id)
        return product.stock_quantity if product else None

    def restock(self, product_id: str, quantity: int) -> None:
        with self._lock:
            product = self._products[product_id]
            self._products[product_id] = replace(product, stock_quantity=product.stock_quantity + quantity)

    async def get_products_by_ids(self, ids) -> List[ProductSnapshot]:
        return [self._products[i] for i in ids if i in self._products]

    async def read_stock(self, ids) -> dict:
        return {
            i: (self._products[i].name, self._products[i].stock_quantity) for i in ids if i in self._products
        }

    async def decrement(self, lines) -> List[bool]:
        results = []
        with self._lock:
            for product_id, quantity in lines:
                product = self._products.get(product_id)
                if product is None or product.stock_quantity < quantity:
                    results.append(False)
                    continue
                self._products[product_id] = replace(product, stock_quantity=product.stock_quantity - quantity)
                results.append(True)
        return results


class InMemoryCampaigns:
    def __init__(self, campaigns: Iterable[Campaign] = ()):
        self._campaigns = list(campaigns)

    async def get_active_campaigns(self, now: Optional[datetime] = None) -> List[Campaign]:
        now = now or utcnow()
        active = [
            c
            for c in self._campaigns
            if (c.starts_at is None or c.starts_at <= now) and (c.ends_at is None or c.ends_at >= now)
        ]
        return sorted(active, key=campaign_order_key)


class InMemoryPromotions:
    def __init__(self, codes: Iterable[PromotionCode] = ()):
        self._codes = {c.code.upper(): c for c in codes}

    async def get_promotion(self, code: str) -> Optional[PromotionCode]:
        return self._codes.get(code.upper())


class InMemoryCustomers:
    """Carts and order history keyed by customer id."""

    def __init__(self, carts: Optional[dict] = None):
        self.carts = {k: list(v) for k, v in (carts or {}).items()}
        self.order_history = {}

    async def get_cart(self, customer_id: str) -> List[CartLine]:
        return list(self.carts.get(customer_id, []))

    async def clear_cart(self, customer_id: str) -> None:
        self.carts[customer_id] = []

    async def append_order(self, customer_id: str, order_id: str) -> None:
        history = self.order_history.setdefault(customer_id, [])
        if order_id not in history:
            history.append(order_id)


class InMemoryOrders:
    """Order documents stored as copies, as a database would."""

    def __init__(self):
        self._orders = {}

    async def insert(self, order: Order) -> None:
        if order.id in self._orders:
            raise KeyError(f"Order {order.id} already exists")
        self._orders[order.id] = copy.deepcopy(order)

    async def update(self, order: Order) -> None:
        if order.id not in self._orders:
            raise KeyError(f"Order {order.id} not found")
        self._orders[order.id] = copy.deepcopy(order)

    async def get(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def has_used_promotion(self, customer_id: str, code: str) -> bool:
        return any(
            o.customer_id == customer_id
            and (o.promotion or {}).get("code") == code
            and o.status not in (OrderStatus.CANCELLED, OrderStatus.FAILED)
            for o in self._orders.values()
        )

    async def list_pending_before(self, cutoff: datetime) -> List[Order]:
        return [
            copy.deepcopy(o)
            for o in self._orders.values()
            if o.status == OrderStatus.PENDING and o.payment_status == PaymentStatus.PENDING and o.created_at < cutoff
        ]


class PaymentsStub:
    """Stub implementation of ``PaymentCapabilityPort``.

    Approves charges with a positive amount and returns generated ids.
    Non-positive amounts are declined.
    """

    def __init__(self):
        self.calls = []

    async def process(self, order: Order, context: PaymentContext) -> PaymentResult:
        self.calls.append((order.id, order.total))
        if order.total <= ZERO:
            return PaymentResult(success=False, error="Amount must be positive")
        return PaymentResult(
            success=True,
            payment_id=f"pay_{uuid.uuid4().hex[:24]}",
            transaction_id=str(uuid.uuid4()),
            amount=order.total,
            currency=order.currency,
            billing_address=context.billing_address,
            status="approved",
        )


class StaticTaxLookup:
    def __init__(self, rates: Optional[dict] = None, default="0"):
        self.rates = {k.upper(): v for k, v in (rates or {}).items()}
        self.default = default

    async def rate_for(self, shipping_address: Address) -> Decimal:
        return lookup_rate(self.rates, self.default, shipping_address)


class InMemoryLedger:
    def __init__(self):
        self.entries = {}

    async def record(self, entry: PaymentRecord) -> None:
        self.entries.setdefault(entry.payment_id, entry)


class InMemoryOutcomes:
    def __init__(self):
        self._outcomes = {}

    async def get(self, order_id: str) -> Optional[FinalizeOutcome]:
        outcome = self._outcomes.get(order_id)
        return copy.deepcopy(outcome) if outcome else None

    async def save(self, outcome: FinalizeOutcome) -> None:
        self._outcomes[outcome.order_id] = copy.deepcopy(outcome)

    async def list_unreconciled(self) -> List[FinalizeOutcome]:
        return [
            copy.deepcopy(o) for o in self._outcomes.values() if o.status == FinalizeStatus.NEEDS_RECONCILIATION
        ]
