"""Customer-entered promotion codes.

A code applies on top of the campaign pricing: it yields an order-level
discount or waives shipping. It never changes line prices.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from .domain import ZERO, OrderLineItem, PromotionCode, PromotionResult, money, utcnow
from .errors import PromotionError
from .ports import OrderRepositoryPort, PromotionCodePort

logger = logging.getLogger("checkout.promotions")

HUNDRED = Decimal("100")


def _in_window(promotion: PromotionCode, now: datetime) -> bool:
    if promotion.starts_at and promotion.starts_at > now:
        return False
    if promotion.ends_at and promotion.ends_at < now:
        return False
    return True


def promotion_snapshot(promotion: PromotionCode) -> dict:
    """Order-side copy of the code as it was when the order was placed."""
    return {
        "code": promotion.code,
        "name": promotion.name,
        "type": promotion.type,
        "amount": str(promotion.amount),
        "applicable_product_ids": sorted(promotion.applicable_product_ids),
    }


class PromotionApplier:
    def __init__(self, promotions: PromotionCodePort, orders: OrderRepositoryPort):
        self.promotions = promotions
        self.orders = orders

    async def apply(
        self,
        code: Optional[str],
        customer_id: str,
        line_items: Sequence[OrderLineItem],
        subtotal: Decimal,
        shipping_cost: Decimal,
        now: Optional[datetime] = None,
    ) -> PromotionResult:
        """Resolve ``code`` into a discount and a final shipping cost.

        Args:
            code: Code typed by the customer, or None.
            customer_id: Customer placing the order.
            line_items: Priced lines (after campaigns).
            subtotal: Sum of the line subtotals.
            shipping_cost: Quoted shipping cost.
            now: Evaluation time, defaults to the current UTC time.

        Returns:
            PromotionResult: ``discount`` never exceeds ``subtotal``.

        Raises:
            PromotionError: Unknown, inactive or expired code, a one-time code
                already used, or a subtotal below the code minimum.
        """
        if not code:
            return PromotionResult(discount=ZERO, shipping_cost=shipping_cost)

        now = now or utcnow()
        promotion = await self.promotions.get_promotion(code)
        if promotion is None or not promotion.active or not _in_window(promotion, now):
            raise PromotionError("Invalid or expired promotion code", fields=["promotion_code"])

        if promotion.one_time_use and await self.orders.has_used_promotion(customer_id, promotion.code):
            raise PromotionError("This promotion code has already been used", fields=["promotion_code"])

        if promotion.min_purchase_amount and subtotal < promotion.min_purchase_amount:
            raise PromotionError(
                f"Promotion requires a minimum purchase of {promotion.min_purchase_amount}",
                fields=["promotion_code"],
            )

        discount = ZERO
        final_shipping = shipping_cost
        if promotion.type == "percentage":
            applicable = [
                item
                for item in line_items
                if not promotion.applicable_product_ids or item.product_id in promotion.applicable_product_ids
            ]
            base = sum((item.line_subtotal for item in applicable), ZERO)
            discount = money(base * promotion.amount / HUNDRED)
            if promotion.max_discount_amount is not None:
                discount = min(discount, money(promotion.max_discount_amount))
        elif promotion.type == "fixed":
            discount = money(promotion.amount)
        elif promotion.type == "free_shipping":
            final_shipping = ZERO
        else:
            raise PromotionError(f"Unsupported promotion type {promotion.type}", fields=["promotion_code"])

        discount = min(discount, subtotal)
        logger.info(
            "promotion applied",
            extra={
                "code": promotion.code,
                "customer_id": customer_id,
                "discount": str(discount),
                "shipping_cost": str(final_shipping),
            },
        )
        return PromotionResult(
            discount=discount,
            shipping_cost=final_shipping,
            promotion=promotion_snapshot(promotion),
        )
