"""Order aggregate store.

Creates the order document in ``pending`` with financial fields that are
validated and internally derived, and persists later state transitions.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .domain import (
    ZERO,
    Address,
    AppliedCampaign,
    Order,
    OrderLineItem,
    OrderStatus,
    PaymentStatus,
    money,
    utcnow,
)
from .errors import ValidationError
from .ports import OrderRepositoryPort
from .schemas import OrderDraftIn, parse

logger = logging.getLogger("checkout.store")


def applied_campaign_from(data) -> AppliedCampaign:
    if isinstance(data, AppliedCampaign):
        return data
    return AppliedCampaign(
        campaign_id=str(data["campaign_id"]),
        campaign_name=data.get("campaign_name", ""),
        discount_type=data.get("discount_type", ""),
        discount_value=Decimal(str(data.get("discount_value", "0"))),
    )


def line_item_from(data) -> OrderLineItem:
    """Build an ``OrderLineItem`` from an instance or a mapping.

    Raises:
        ValidationError: When the product id is missing, a quantity is below
            one or a price is negative.
    """
    if isinstance(data, OrderLineItem):
        item = data
    else:
        try:
            requested = int(data.get("requested_quantity", data.get("quantity", 0)))
            price = money(data["price_at_purchase"])
            effective = int(data.get("effective_quantity", requested))
            item = OrderLineItem(
                product_id=str(data.get("product_id") or ""),
                product_name=data.get("product_name", ""),
                requested_quantity=requested,
                effective_quantity=effective,
                original_unit_price=money(data.get("original_unit_price", price)),
                price_at_purchase=price,
                line_subtotal=money(data.get("line_subtotal", price * effective)),
                applied_campaigns=tuple(applied_campaign_from(c) for c in data.get("applied_campaigns", ())),
                discount_percentage=money(data.get("discount_percentage", ZERO)),
            )
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError(f"Malformed order item: {e}", fields=["items"]) from e

    if not item.product_id:
        raise ValidationError("Order item without product id", fields=["items.product_id"])
    if item.requested_quantity < 1 or item.effective_quantity < 0:
        raise ValidationError("Quantity must be at least 1", fields=["items.requested_quantity"])
    if item.price_at_purchase < ZERO:
        raise ValidationError("Price cannot be negative", fields=["items.price_at_purchase"])
    return item


def union_campaigns(items) -> list:
    """Flatten line-level campaigns, keeping the first occurrence of each id."""
    seen = set()
    out = []
    for item in items:
        for applied in item.applied_campaigns:
            if applied.campaign_id in seen:
                continue
            seen.add(applied.campaign_id)
            out.append(applied)
    return out


class OrderStore:
    """Persists order documents through an ``OrderRepositoryPort``."""

    def __init__(self, orders: OrderRepositoryPort, currency: str = "USD"):
        self.orders = orders
        self.currency = currency

    async def create_order(self, order_data) -> Order:
        """Validate order data and persist a new pending order.

        Args:
            order_data: Mapping matching ``OrderDraftIn``.

        Returns:
            Order: The stored order, ``status='pending'`` and
            ``payment_status='pending'``.

        Raises:
            ValidationError: Missing required fields, empty items, or financial
                fields that do not add up.
        """
        draft: OrderDraftIn = parse(OrderDraftIn, order_data)

        items = [line_item_from(i) for i in draft.items]
        subtotal = money(draft.subtotal)
        discount = money(draft.discount)
        tax = money(draft.tax)
        shipping_cost = money(draft.shipping_cost)

        lines_total = sum((i.line_subtotal for i in items), ZERO)
        if lines_total != subtotal:
            raise ValidationError(
                f"Subtotal {subtotal} does not match line items {lines_total}",
                code="INCONSISTENT_TOTALS",
                fields=["subtotal"],
            )
        if discount > subtotal:
            raise ValidationError("Discount exceeds subtotal", code="DISCOUNT_EXCEEDS_SUBTOTAL", fields=["discount"])

        total = (subtotal - discount) + tax + shipping_cost
        if total <= ZERO:
            raise ValidationError("Total must be positive", code="INCONSISTENT_TOTALS", fields=["total"])
        if draft.total is not None and money(draft.total) != total:
            logger.warning(
                "caller total ignored",
                extra={"supplied_total": str(draft.total), "derived_total": str(total)},
            )

        now = utcnow()
        order = Order(
            id=str(uuid.uuid4()),
            customer_id=draft.customer_id,
            items=items,
            payment_method=draft.payment_method.value,
            shipping_address=Address(**draft.shipping_address.model_dump()),
            shipping_method=draft.shipping_method.value,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            shipping_cost=shipping_cost,
            total=total,
            currency=draft.currency if "currency" in draft.model_fields_set else self.currency,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            applied_campaigns=union_campaigns(items),
            promotion=draft.promotion,
            estimated_delivery=draft.estimated_delivery,
            created_at=now,
            updated_at=now,
        )
        await self.orders.insert(order)

        logger.info(
            "order created",
            extra={
                "order_id": order.id,
                "customer_id": order.customer_id,
                "subtotal": str(subtotal),
                "discount": str(discount),
                "tax": str(tax),
                "shipping_cost": str(shipping_cost),
                "total": str(total),
            },
        )
        return order

    async def save(self, order: Order) -> Order:
        order.updated_at = utcnow()
        await self.orders.update(order)
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        return await self.orders.get(order_id)

    async def list_pending_before(self, cutoff: datetime) -> List[Order]:
        return await self.orders.list_pending_before(cutoff)
