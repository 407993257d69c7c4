"""Domain models for the checkout pipeline.

This module contains the enums and dataclasses that flow through the
pipeline: cart lines, catalog and campaign snapshots, priced line items, the
order aggregate and the payment/finalize records. It has no I/O; ports for
external collaborators live in ``ports`` and the components that use them
in their own modules.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional


CENT = Decimal("0.01")
ZERO = Decimal("0")


def money(value) -> Decimal:
    """Coerce a number to a Decimal quantized to cents.

    Args:
        value: int, str, float or Decimal amount.

    Returns:
        Decimal: The amount rounded half-up to two decimal places.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle of an order document."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"
    CASH_ON_DELIVERY = "cash_on_delivery"


class CampaignType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    FREE_SHIPPING = "free_shipping"
    BUNDLE = "bundle"
    BUY_X_GET_Y = "buy_x_get_y"


class UnavailableReason(str, Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"


class ShippingMethod(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"


# ---- Catalog / campaign snapshots ----
@dataclass(frozen=True)
class CartLine:
    """A single cart entry as requested by the customer.

    Attributes:
        product_id: Catalog identifier of the product.
        requested_quantity: Units the customer asked for.
    """

    product_id: str
    requested_quantity: int


@dataclass(frozen=True)
class ProductSnapshot:
    """Point-in-time read of a catalog product.

    The pipeline never assumes the snapshot stays valid until commit; stock
    is re-validated by the conditional decrement.
    """

    id: str
    name: str
    unit_price: Decimal
    stock_quantity: int
    category_ids: frozenset = frozenset()
    seller_id: Optional[str] = None


@dataclass(frozen=True)
class Campaign:
    """A promotional rule read from the campaign directory.

    Attributes:
        id: Campaign identifier.
        name: Display name.
        type: Raw campaign type. Kept as a string so that unknown types coming
            from the directory can be reported instead of rejected.
        amount: Fixed amount or percentage, depending on ``type``.
        valid_category_ids: Categories the campaign applies to.
        excluded_product_ids: Products excluded even when their category matches.
        min_purchase_amount: Optional post-discount subtotal threshold.
        buy_x: Units to buy for a ``buy_x_get_y`` campaign.
        get_y: Units given for free per ``buy_x`` bought.
        rank: Explicit stacking precedence; lower ranks apply first.
        starts_at: Start of the active window.
        ends_at: End of the active window.
    """

    id: str
    name: str
    type: str
    amount: Decimal = ZERO
    valid_category_ids: frozenset = frozenset()
    excluded_product_ids: frozenset = frozenset()
    min_purchase_amount: Optional[Decimal] = None
    buy_x: Optional[int] = None
    get_y: Optional[int] = None
    rank: int = 0
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    def is_eligible(self, product: ProductSnapshot) -> bool:
        """Category intersects and product is not explicitly excluded."""
        return bool(self.valid_category_ids & product.category_ids) and (
            product.id not in self.excluded_product_ids
        )


@dataclass(frozen=True)
class PromotionCode:
    code: str
    name: str
    type: str
    amount: Decimal
    min_purchase_amount: Decimal = ZERO
    max_discount_amount: Optional[Decimal] = None
    applicable_product_ids: frozenset = frozenset()
    one_time_use: bool = False
    active: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


# ---- Pricing results ----
@dataclass(frozen=True)
class AppliedCampaign:
    campaign_id: str
    campaign_name: str
    discount_type: str
    discount_value: Decimal


@dataclass(frozen=True)
class UnavailableLine:
    """A cart line excluded from pricing.

    Attributes:
        product_id: Requested product.
        reason: Why the line cannot be priced.
        requested: Units requested.
        available: Units in stock at read time (None when not found).
        name: Product name when known.
    """

    product_id: str
    reason: UnavailableReason
    requested: int
    available: Optional[int] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class OrderLineItem:
    """A cart line resolved to a priced order component.

    ``price_at_purchase`` is the charge-of-record and never changes once the
    order is persisted. ``effective_quantity`` only differs from
    ``requested_quantity`` under a ``buy_x_get_y`` campaign.
    """

    product_id: str
    product_name: str
    requested_quantity: int
    effective_quantity: int
    original_unit_price: Decimal
    price_at_purchase: Decimal
    line_subtotal: Decimal
    applied_campaigns: tuple = ()
    discount_percentage: Decimal = ZERO


@dataclass(frozen=True)
class PricingResult:
    line_items: tuple = ()
    subtotal: Decimal = ZERO
    unavailable: tuple = ()
    below_minimum: tuple = ()


@dataclass(frozen=True)
class Totals:
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class ShippingQuote:
    method: ShippingMethod
    cost: Decimal
    estimated_delivery: date


@dataclass(frozen=True)
class PromotionResult:
    discount: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    promotion: Optional[dict] = None


@dataclass(frozen=True)
class StockShortage:
    product_id: str
    requested: int
    available: Optional[int]
    name: Optional[str] = None


@dataclass(frozen=True)
class StockCheck:
    available: bool
    shortages: tuple = ()


@dataclass(frozen=True)
class StockCommitResult:
    """Outcome of a batched conditional decrement.

    Attributes:
        applied: Product ids whose decrement went through.
        skipped: Shortages for lines whose stock condition failed at commit time.
    """

    applied: tuple = ()
    skipped: tuple = ()

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped)


# ---- Addresses / payment ----
@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    recipient_name: str = ""
    line2: str = ""

    def as_dict(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "recipient_name": self.recipient_name,
            "line2": self.line2,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Address":
        data = data or {}
        return cls(
            street=data.get("street") or data.get("line1") or "",
            city=data.get("city") or "",
            state=data.get("state") or "",
            postal_code=data.get("postal_code") or data.get("zip") or "",
            country=data.get("country") or data.get("country_code") or "",
            recipient_name=data.get("recipient_name") or data.get("name") or "",
            line2=data.get("line2") or "",
        )


@dataclass(frozen=True)
class PaymentContext:
    """Request-side information handed to the payment capability.

    Attributes:
        ip_address: Client IP of the checkout request.
        user_agent: Client user agent.
        billing_address: Billing address; defaults to the shipping address.
        idempotency_key: Optional caller key propagated to the processor.
    """

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    billing_address: Optional[Address] = None
    idempotency_key: Optional[str] = None

    def with_billing_default(self, shipping_address: Address) -> "PaymentContext":
        if self.billing_address is not None:
            return self
        return replace(self, billing_address=shipping_address)


@dataclass(frozen=True)
class PaymentResult:
    """Answer of the external payment capability."""

    success: bool
    payment_id: Optional[str] = None
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    billing_address: Optional[Address] = None
    status: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PaymentRecord:
    """Ledger entry written by the finalizer for a successful payment."""

    order_id: str
    customer_id: str
    payment_id: str
    payment_status: str
    payment_method: str
    total_amount: Decimal
    currency: str
    description: str
    processor_response: dict = field(default_factory=dict)
    billing_address: Optional[dict] = None
    metadata: dict = field(default_factory=dict)


# ---- Order aggregate ----
@dataclass
class Order:
    """The order document.

    Attributes:
        id: Persistent identifier.
        customer_id: Owner of the order.
        items: Embedded line items; never empty.
        payment_method: One of ``PaymentMethod``.
        shipping_address: Where the order ships.
        subtotal / discount / tax / shipping_cost / total: Financial fields;
            ``total == (subtotal - discount) + tax + shipping_cost``.
        applied_campaigns: Union of the line-level applied campaigns.
    """

    id: str
    customer_id: str
    items: List[OrderLineItem]
    payment_method: str
    shipping_address: Address
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    currency: str = "USD"
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    shipping_method: str = ShippingMethod.STANDARD.value
    applied_campaigns: List[AppliedCampaign] = field(default_factory=list)
    promotion: Optional[dict] = None
    estimated_delivery: Optional[date] = None
    payment_id: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_details: dict = field(default_factory=dict)
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def awaiting_payment(self) -> bool:
        return self.status == OrderStatus.PENDING and self.payment_status == PaymentStatus.PENDING

    def mark_paid(self, result: PaymentResult, processor: str) -> None:
        """Move the order to processing/completed and record the processor ids."""
        now = utcnow()
        self.status = OrderStatus.PROCESSING
        self.payment_status = PaymentStatus.COMPLETED
        self.payment_id = result.payment_id
        self.transaction_id = result.transaction_id
        self.payment_details = {
            "method": self.payment_method,
            "processor": processor,
            "transaction_id": result.transaction_id,
            "processed_at": now.isoformat(),
        }
        self.completed_at = now
        self.updated_at = now

    def mark_payment_failed(self, reason: str, processor_error: Optional[str] = None) -> None:
        """Move the order to failed/failed and keep the error for support."""
        self.status = OrderStatus.FAILED
        self.payment_status = PaymentStatus.FAILED
        self.failure_reason = reason
        details = dict(self.payment_details or {})
        details["error"] = reason
        if processor_error:
            details["processor_error"] = processor_error
        self.payment_details = details
        self.updated_at = utcnow()


# ---- Finalize saga ----
class FinalizeStatus(str, Enum):
    COMPLETED = "completed"
    NEEDS_RECONCILIATION = "needs_reconciliation"


@dataclass
class FinalizeOutcome:
    """Persisted progress of the post-payment finalize saga for one order."""

    order_id: str
    customer_id: str
    cart_cleared: bool = False
    order_linked: bool = False
    committed_product_ids: List[str] = field(default_factory=list)
    payment_recorded: bool = False
    shortages: List[StockShortage] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    attempts: int = 0
    status: FinalizeStatus = FinalizeStatus.NEEDS_RECONCILIATION
    updated_at: datetime = field(default_factory=utcnow)

    def pending_lines(self, line_items) -> list:
        """Lines not yet decremented.

        ``committed_product_ids`` holds one entry per applied line, so each
        entry accounts for exactly one line of that product.
        """
        committed = Counter(self.committed_product_ids)
        pending = []
        for item in line_items:
            if committed[item.product_id] > 0:
                committed[item.product_id] -= 1
            else:
                pending.append(item)
        return pending

    def refresh_status(self, line_items) -> FinalizeStatus:
        done = (
            self.cart_cleared
            and self.order_linked
            and self.payment_recorded
            and not self.shortages
            and not self.pending_lines(line_items)
        )
        self.status = FinalizeStatus.COMPLETED if done else FinalizeStatus.NEEDS_RECONCILIATION
        self.updated_at = utcnow()
        return self.status


@dataclass(frozen=True)
class CheckoutResult:
    """What ``create_and_process_order`` hands back on success."""

    order: Order
    payment_result: dict


@dataclass(frozen=True)
class CheckoutOutcome:
    order: Order
    payment_result: dict
    finalize: FinalizeOutcome
    unavailable: tuple = ()
