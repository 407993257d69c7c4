"""Discount engine: prices cart lines against the active campaigns.

The engine is a pure function over read-only snapshots. Campaigns stack: they
are applied in the order the directory returns them (explicit ``rank`` first)
and each eligible campaign works on the running price left by the previous
one.
"""

import logging
from decimal import Decimal
from typing import Iterable, Sequence

from .domain import (
    ZERO,
    AppliedCampaign,
    Campaign,
    CampaignType,
    CartLine,
    OrderLineItem,
    PricingResult,
    ProductSnapshot,
    UnavailableLine,
    UnavailableReason,
    money,
)

logger = logging.getLogger("checkout.discounts")

HUNDRED = Decimal("100")


def _non_negative(value: Decimal) -> Decimal:
    if value.is_nan():
        return value
    return value if value > ZERO else ZERO


class DiscountEngine:
    """Compute per-line effective price and quantity for a cart."""

    def apply(
        self,
        cart_lines: Sequence[CartLine],
        products: Iterable[ProductSnapshot],
        campaigns: Sequence[Campaign],
        exclude: Iterable[str] = (),
    ) -> PricingResult:
        """Price every cart line.

        Lines whose product is missing or lacks stock are reported in
        ``unavailable`` and skipped; that is a per-line outcome, not an error.

        Args:
            cart_lines: Lines requested by the customer.
            products: Catalog snapshots read for those lines.
            campaigns: Active campaigns in stacking order.
            exclude: Campaign ids to leave out (used when re-pricing after a
                minimum-purchase violation).

        Returns:
            PricingResult: Line items, subtotal, unavailable lines and the
            campaigns whose ``min_purchase_amount`` the subtotal misses. Empty
            when ``cart_lines`` is empty.
        """
        if not cart_lines:
            return PricingResult()

        catalog = {p.id: p for p in products}
        skip = set(exclude)
        active = [c for c in campaigns if c.id not in skip]

        line_items = []
        unavailable = []
        subtotal = ZERO

        for line in cart_lines:
            product = catalog.get(line.product_id)
            if product is None:
                unavailable.append(
                    UnavailableLine(
                        product_id=line.product_id,
                        reason=UnavailableReason.NOT_FOUND,
                        requested=line.requested_quantity,
                    )
                )
                continue
            if line.requested_quantity > product.stock_quantity:
                unavailable.append(
                    UnavailableLine(
                        product_id=product.id,
                        reason=UnavailableReason.INSUFFICIENT_STOCK,
                        requested=line.requested_quantity,
                        available=product.stock_quantity,
                        name=product.name,
                    )
                )
                continue

            item = self._price_line(line, product, active)
            line_items.append(item)
            subtotal += item.line_subtotal

        logger.info(
            "cart priced",
            extra={
                "lines": len(cart_lines),
                "priced": len(line_items),
                "unavailable": len(unavailable),
                "campaigns": len(active),
                "subtotal": str(subtotal),
            },
        )

        return PricingResult(
            line_items=tuple(line_items),
            subtotal=subtotal,
            unavailable=tuple(unavailable),
            below_minimum=tuple(self._below_minimum(active, subtotal)),
        )

    def _price_line(self, line: CartLine, product: ProductSnapshot, campaigns) -> OrderLineItem:
        price = product.unit_price
        quantity = line.requested_quantity
        applied = []

        for campaign in campaigns:
            if not campaign.is_eligible(product):
                continue
            before = price
            try:
                price, quantity, counts = self._apply_campaign(campaign, price, quantity)
            except ArithmeticError:
                logger.exception(
                    "campaign arithmetic failed",
                    extra={"campaign_id": campaign.id, "product_id": product.id},
                )
                price = before
                continue
            if counts or price != before:
                applied.append(
                    AppliedCampaign(
                        campaign_id=campaign.id,
                        campaign_name=campaign.name,
                        discount_type=campaign.type,
                        discount_value=campaign.amount,
                    )
                )

        if not price.is_finite():
            logger.warning(
                "non-finite price, falling back to catalog price",
                extra={"product_id": product.id},
            )
            price = product.unit_price

        price_at_purchase = money(price)
        original = money(product.unit_price)
        if original > ZERO:
            discount_percentage = money((original - price_at_purchase) / original * HUNDRED)
        else:
            discount_percentage = money(ZERO)

        return OrderLineItem(
            product_id=product.id,
            product_name=product.name,
            requested_quantity=line.requested_quantity,
            effective_quantity=quantity,
            original_unit_price=original,
            price_at_purchase=price_at_purchase,
            line_subtotal=price_at_purchase * quantity,
            applied_campaigns=tuple(applied),
            discount_percentage=discount_percentage,
        )

    def _apply_campaign(self, campaign: Campaign, price: Decimal, quantity: int):
        """Apply one campaign to the running price/quantity.

        Returns:
            tuple: ``(price, quantity, always_applied)`` where the flag marks
            campaign types recorded even when the price did not move.
        """
        try:
            kind = CampaignType(campaign.type)
        except ValueError:
            logger.warning("unknown campaign type", extra={"campaign_id": campaign.id, "type": campaign.type})
            return price, quantity, False

        if kind is CampaignType.FIXED:
            return _non_negative(price - campaign.amount), quantity, False

        if kind is CampaignType.PERCENTAGE:
            return _non_negative(price * (1 - campaign.amount / HUNDRED)), quantity, False

        if kind is CampaignType.BUY_X_GET_Y:
            buy_x = campaign.buy_x or 0
            get_y = campaign.get_y or 0
            if buy_x <= 0:
                logger.warning("buy_x_get_y without buy_x", extra={"campaign_id": campaign.id})
                return price, quantity, False
            if quantity >= buy_x:
                free_units = (quantity // buy_x) * get_y
                quantity = max(0, quantity - free_units)
            return price, quantity, True

        # free_shipping and bundle do not change the line price.
        logger.warning("campaign type not priced per line", extra={"campaign_id": campaign.id, "type": campaign.type})
        return price, quantity, False

    def _below_minimum(self, campaigns, subtotal: Decimal) -> list:
        flagged = []
        for campaign in campaigns:
            if campaign.min_purchase_amount and subtotal < campaign.min_purchase_amount:
                logger.info(
                    "subtotal below campaign minimum",
                    extra={
                        "campaign_id": campaign.id,
                        "subtotal": str(subtotal),
                        "minimum": str(campaign.min_purchase_amount),
                    },
                )
                flagged.append(campaign)
        return flagged
