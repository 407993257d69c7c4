"""Django ORM adapters for the checkout ports.

This module maps the domain dataclasses to the models in ``models`` so the
pipeline is not coupled to Django ORM details. Reads and single-statement
writes use the async ORM API; the multi-statement stock commit runs inside
one ``transaction.atomic`` block through ``sync_to_async``.
"""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F, Q

from . import models
from .adapters import StaticTaxLookup
from .domain import (
    Address,
    Campaign,
    CartLine,
    FinalizeOutcome,
    FinalizeStatus,
    Order,
    OrderStatus,
    PaymentRecord,
    PaymentStatus,
    ProductSnapshot,
    PromotionCode,
    StockShortage,
    utcnow,
)
from .store import applied_campaign_from, line_item_from


# ---------------- Catalog / stock ---------------- #

def _product(row: models.Product) -> ProductSnapshot:
    return ProductSnapshot(
        id=row.id,
        name=row.name,
        unit_price=row.unit_price,
        stock_quantity=row.stock_quantity,
        category_ids=frozenset(row.category_ids or ()),
        seller_id=row.seller_id,
    )


class OrmCatalog:
    async def get_products_by_ids(self, ids: Iterable[str]) -> List[ProductSnapshot]:
        return [_product(row) async for row in models.Product.objects.filter(pk__in=list(ids))]


def _decrement_atomically(lines) -> List[bool]:
    applied = []
    with transaction.atomic():
        for product_id, quantity in lines:
            # Compare and write in one UPDATE; the row count says whether it applied.
            rows = models.Product.objects.filter(pk=product_id, stock_quantity__gte=quantity).update(
                stock_quantity=F("stock_quantity") - quantity
            )
            applied.append(rows == 1)
    return applied


class OrmStock:
    async def read_stock(self, ids: Iterable[str]) -> dict:
        rows = models.Product.objects.filter(pk__in=list(ids)).values_list("id", "name", "stock_quantity")
        return {pk: (name, qty) async for pk, name, qty in rows}

    async def decrement(self, lines) -> List[bool]:
        return await sync_to_async(_decrement_atomically)(list(lines))


# ---------------- Campaigns / promotions ---------------- #

def _campaign(row: models.Campaign) -> Campaign:
    return Campaign(
        id=row.id,
        name=row.name,
        type=row.type,
        amount=row.amount,
        valid_category_ids=frozenset(row.valid_category_ids or ()),
        excluded_product_ids=frozenset(row.excluded_product_ids or ()),
        min_purchase_amount=row.min_purchase_amount,
        buy_x=row.buy_x,
        get_y=row.get_y,
        rank=row.rank,
        starts_at=row.starts_at,
        ends_at=row.ends_at,
    )


class OrmCampaignDirectory:
    async def get_active_campaigns(self, now: Optional[datetime] = None) -> List[Campaign]:
        now = now or utcnow()
        qs = (
            models.Campaign.objects.filter(status=models.Campaign.Status.ACTIVE)
            .filter(Q(starts_at__isnull=True) | Q(starts_at__lte=now))
            .filter(Q(ends_at__isnull=True) | Q(ends_at__gte=now))
            .order_by("rank", F("starts_at").asc(nulls_first=True), "id")
        )
        return [_campaign(row) async for row in qs]


class OrmPromotionCodes:
    async def get_promotion(self, code: str) -> Optional[PromotionCode]:
        try:
            row = await models.PromotionCode.objects.aget(pk=code.upper())
        except models.PromotionCode.DoesNotExist:
            return None
        return PromotionCode(
            code=row.code,
            name=row.name,
            type=row.type,
            amount=row.amount,
            min_purchase_amount=row.min_purchase_amount,
            max_discount_amount=row.max_discount_amount,
            applicable_product_ids=frozenset(row.applicable_product_ids or ()),
            one_time_use=row.one_time_use,
            active=row.active,
            starts_at=row.starts_at,
            ends_at=row.ends_at,
        )


# ---------------- Customers ---------------- #

class OrmCustomerStore:
    async def get_cart(self, customer_id: str) -> List[CartLine]:
        qs = models.CartItem.objects.filter(customer_id=customer_id)
        return [CartLine(row.product_id, row.quantity) async for row in qs]

    async def clear_cart(self, customer_id: str) -> None:
        await models.CartItem.objects.filter(customer_id=customer_id).adelete()

    async def append_order(self, customer_id: str, order_id: str) -> None:
        await models.CustomerOrderLink.objects.aget_or_create(customer_id=customer_id, order_id=order_id)


# ---------------- Orders ---------------- #

def _order_fields(order: Order) -> dict:
    return {
        "customer_id": order.customer_id,
        "status": order.status.value,
        "payment_status": order.payment_status.value,
        "payment_method": order.payment_method,
        "payment_id": order.payment_id,
        "transaction_id": order.transaction_id,
        "payment_details": order.payment_details,
        "failure_reason": order.failure_reason,
        "items": [asdict(item) for item in order.items],
        "applied_campaigns": [asdict(c) for c in order.applied_campaigns],
        "shipping_address": order.shipping_address.as_dict(),
        "shipping_method": order.shipping_method,
        "estimated_delivery": order.estimated_delivery,
        "promotion": order.promotion,
        "promotion_code": (order.promotion or {}).get("code"),
        "subtotal": order.subtotal,
        "discount": order.discount,
        "tax": order.tax,
        "shipping_cost": order.shipping_cost,
        "total": order.total,
        "currency": order.currency,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "completed_at": order.completed_at,
        "shipped_at": order.shipped_at,
        "delivered_at": order.delivered_at,
        "cancelled_at": order.cancelled_at,
    }


def _order(row: models.OrderModel) -> Order:
    return Order(
        id=str(row.id),
        customer_id=row.customer_id,
        items=[line_item_from(item) for item in row.items],
        payment_method=row.payment_method,
        shipping_address=Address.from_dict(row.shipping_address),
        subtotal=row.subtotal,
        discount=row.discount,
        tax=row.tax,
        shipping_cost=row.shipping_cost,
        total=row.total,
        currency=row.currency,
        status=OrderStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        shipping_method=row.shipping_method,
        applied_campaigns=[applied_campaign_from(c) for c in row.applied_campaigns],
        promotion=row.promotion,
        estimated_delivery=row.estimated_delivery,
        payment_id=row.payment_id,
        transaction_id=row.transaction_id,
        payment_details=row.payment_details or {},
        failure_reason=row.failure_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
        cancelled_at=row.cancelled_at,
    )


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM."""

    async def insert(self, order: Order) -> None:
        await models.OrderModel.objects.acreate(id=order.id, **_order_fields(order))

    async def update(self, order: Order) -> None:
        fields = _order_fields(order)
        fields.pop("created_at")
        rows = await models.OrderModel.objects.filter(pk=order.id).aupdate(**fields)
        if rows != 1:
            raise models.OrderModel.DoesNotExist(f"Order {order.id} not found")

    async def get(self, order_id: str) -> Optional[Order]:
        try:
            row = await models.OrderModel.objects.aget(pk=order_id)
        except (models.OrderModel.DoesNotExist, DjangoValidationError):
            return None
        return _order(row)

    async def has_used_promotion(self, customer_id: str, code: str) -> bool:
        return await (
            models.OrderModel.objects.filter(customer_id=customer_id, promotion_code=code)
            .exclude(status__in=[models.OrderModel.Status.CANCELLED, models.OrderModel.Status.FAILED])
            .aexists()
        )

    async def list_pending_before(self, cutoff: datetime) -> List[Order]:
        qs = models.OrderModel.objects.filter(
            status=models.OrderModel.Status.PENDING,
            payment_status=models.OrderModel.PaymentStatus.PENDING,
            created_at__lt=cutoff,
        ).order_by("created_at")
        return [_order(row) async for row in qs]


# ---------------- Payments ledger / finalize outcomes ---------------- #

class OrmPaymentLedger:
    async def record(self, entry: PaymentRecord) -> None:
        await models.PaymentRecordModel.objects.aget_or_create(
            payment_id=entry.payment_id,
            defaults={
                "order_id": entry.order_id,
                "customer_id": entry.customer_id,
                "payment_status": entry.payment_status,
                "payment_method": entry.payment_method,
                "total_amount": entry.total_amount,
                "currency": entry.currency,
                "description": entry.description,
                "processor_response": entry.processor_response,
                "billing_address": entry.billing_address,
                "metadata": entry.metadata,
            },
        )


def _outcome(row: models.FinalizeOutcomeModel) -> FinalizeOutcome:
    return FinalizeOutcome(
        order_id=str(row.order_id),
        customer_id=row.customer_id,
        cart_cleared=row.cart_cleared,
        order_linked=row.order_linked,
        committed_product_ids=list(row.committed_product_ids),
        payment_recorded=row.payment_recorded,
        shortages=[StockShortage(**s) for s in row.shortages],
        errors=list(row.errors),
        attempts=row.attempts,
        status=FinalizeStatus(row.status),
        updated_at=row.updated_at,
    )


class OrmFinalizeOutcomes:
    async def get(self, order_id: str) -> Optional[FinalizeOutcome]:
        try:
            row = await models.FinalizeOutcomeModel.objects.aget(pk=order_id)
        except (models.FinalizeOutcomeModel.DoesNotExist, DjangoValidationError):
            return None
        return _outcome(row)

    async def save(self, outcome: FinalizeOutcome) -> None:
        await models.FinalizeOutcomeModel.objects.aupdate_or_create(
            order_id=outcome.order_id,
            defaults={
                "customer_id": outcome.customer_id,
                "cart_cleared": outcome.cart_cleared,
                "order_linked": outcome.order_linked,
                "committed_product_ids": list(outcome.committed_product_ids),
                "payment_recorded": outcome.payment_recorded,
                "shortages": [asdict(s) for s in outcome.shortages],
                "errors": list(outcome.errors),
                "attempts": outcome.attempts,
                "status": outcome.status.value,
                "updated_at": outcome.updated_at,
            },
        )

    async def list_unreconciled(self) -> List[FinalizeOutcome]:
        qs = models.FinalizeOutcomeModel.objects.filter(
            status=models.FinalizeOutcomeModel.Status.NEEDS_RECONCILIATION
        ).order_by("updated_at")
        return [_outcome(row) async for row in qs]


# ---------------- Tax ---------------- #

class SettingsTaxLookup(StaticTaxLookup):
    """Tax rates from ``CHECKOUT_TAX_RATES`` keyed by ``COUNTRY`` or ``COUNTRY:STATE``."""

    def __init__(self):
        super().__init__(
            rates=getattr(settings, "CHECKOUT_TAX_RATES", {}),
            default=getattr(settings, "CHECKOUT_DEFAULT_TAX_RATE", Decimal("0")),
        )
