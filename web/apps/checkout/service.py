"""Checkout service: the cart-to-order pipeline.

Stages run strictly in sequence inside the caller's task:
pricing, promotion, shipping and totals, an advisory stock check, order
creation and payment, then finalize. Each collaborator is injected; wiring
happens in ``providers``.
"""

import logging
from typing import List, Optional, Sequence

from gateway.context import bind_order

from .discounts import DiscountEngine
from .domain import (
    Address,
    CartLine,
    CheckoutOutcome,
    CheckoutResult,
    PaymentContext,
    PricingResult,
    utcnow,
)
from .errors import AvailabilityError, CampaignMinimumError, ValidationError
from .finalizer import Finalizer
from .payments import PaymentOrchestrator
from .ports import CampaignDirectoryPort, CatalogPort, CustomerStorePort
from .promotions import PromotionApplier
from .schemas import CheckoutRequestIn, parse
from .shipping import ShippingCalculator
from .stock import StockReservationGuard
from .totals import TotalsCalculator

logger = logging.getLogger("checkout.service")

MIN_PURCHASE_POLICIES = ("reprice", "reject", "flag")


class CheckoutService:
    """Application service exposing the checkout entry points.

    Args:
        min_purchase_policy: What to do with campaigns whose minimum purchase
            the discounted subtotal misses: ``reprice`` drops them and prices
            the cart again, ``reject`` raises ``CampaignMinimumError``,
            ``flag`` keeps the discounts and only logs.
        allow_partial_cart: When False any unavailable cart line aborts the
            checkout with ``AvailabilityError``; when True the order is placed
            for the remaining lines.
    """

    def __init__(
        self,
        *,
        customers: CustomerStorePort,
        catalog: CatalogPort,
        campaigns: CampaignDirectoryPort,
        guard: StockReservationGuard,
        promotions: PromotionApplier,
        shipping: ShippingCalculator,
        totals: TotalsCalculator,
        orchestrator: PaymentOrchestrator,
        finalizer: Finalizer,
        engine: Optional[DiscountEngine] = None,
        min_purchase_policy: str = "reprice",
        allow_partial_cart: bool = False,
        currency: str = "USD",
    ):
        if min_purchase_policy not in MIN_PURCHASE_POLICIES:
            raise ValueError(f"Unknown minimum purchase policy: {min_purchase_policy}")
        self.customers = customers
        self.catalog = catalog
        self.campaigns = campaigns
        self.guard = guard
        self.promotions = promotions
        self.shipping = shipping
        self.totals = totals
        self.orchestrator = orchestrator
        self.finalizer = finalizer
        self.engine = engine or DiscountEngine()
        self.min_purchase_policy = min_purchase_policy
        self.allow_partial_cart = allow_partial_cart
        self.currency = currency

    async def create_and_process_order(self, order_data, payment_method: str, payment_context=None) -> CheckoutResult:
        """Create a pending order from already priced data and charge it.

        Raises:
            ValidationError: Order data rejected; nothing was stored.
            PaymentError: The order exists with ``status='failed'``.
        """
        return await self.orchestrator.create_and_process_order(order_data, payment_method, payment_context)

    async def place_order(self, request, cart_lines: Optional[Sequence[CartLine]] = None) -> CheckoutOutcome:
        """Turn the customer's cart into a paid, finalized order.

        Args:
            request: Mapping matching ``CheckoutRequestIn``.
            cart_lines: Lines to order. Read from the customer store when None.

        Returns:
            CheckoutOutcome: Paid order, payment summary, finalize record and
            the cart lines that were left out (only with ``allow_partial_cart``).

        Raises:
            ValidationError: Bad request, empty cart, invalid promotion or a
                campaign minimum under the ``reject`` policy. Nothing happened.
            AvailabilityError: Lines cannot be served. Nothing happened.
            PaymentError: Payment attempted and failed; the order is stored as
                failed and stock was not touched.
            ReconciliationRequired: Payment succeeded but finalize did not
                complete; the stored finalize outcome says what is missing.
        """
        req: CheckoutRequestIn = parse(CheckoutRequestIn, request)

        if cart_lines is not None:
            _require_lines(cart_lines)
        else:
            cart_lines = await self.customers.get_cart(req.customer_id)
            _require_lines(cart_lines)
        cart_lines = merge_cart_lines(cart_lines)

        now = utcnow()
        products = await self.catalog.get_products_by_ids(sorted({line.product_id for line in cart_lines}))
        campaigns = await self.campaigns.get_active_campaigns(now)

        pricing = self.engine.apply(cart_lines, products, campaigns)
        pricing = self._enforce_minimums(pricing, cart_lines, products, campaigns)

        if pricing.unavailable and not self.allow_partial_cart:
            raise AvailabilityError(pricing.unavailable)
        if not pricing.line_items:
            raise AvailabilityError(pricing.unavailable, "None of the cart items can be fulfilled")

        line_items = list(pricing.line_items)
        quote = self.shipping.quote(req.shipping_method, now)
        promotion = await self.promotions.apply(
            req.promotion_code, req.customer_id, line_items, pricing.subtotal, quote.cost, now
        )
        address = Address(**req.shipping_address.model_dump())
        totals = await self.totals.compute(pricing.subtotal, promotion.discount, address, promotion.shipping_cost)

        check = await self.guard.check(line_items)
        if not check.available:
            raise AvailabilityError(check.shortages)

        order_data = {
            "customer_id": req.customer_id,
            "items": line_items,
            "payment_method": req.payment_method,
            "shipping_address": address.as_dict(),
            "shipping_method": quote.method,
            "subtotal": pricing.subtotal,
            "discount": promotion.discount,
            "tax": totals.tax,
            "shipping_cost": promotion.shipping_cost,
            "total": totals.total,
            "currency": self.currency,
            "promotion": promotion.promotion,
            "estimated_delivery": quote.estimated_delivery,
        }
        billing = Address(**req.billing_address.model_dump()) if req.billing_address else None
        context = PaymentContext(
            ip_address=req.ip_address,
            user_agent=req.user_agent,
            billing_address=billing,
            idempotency_key=req.idempotency_key,
        )

        result = await self.orchestrator.create_and_process_order(order_data, req.payment_method.value, context)
        order = result.order

        with bind_order(order.id):
            outcome = await self.finalizer.finalize(
                order,
                req.customer_id,
                order.items,
                result.payment_result,
                req.payment_method.value,
                req.promotion_code,
            )
            logger.info(
                "checkout completed",
                extra={"order_id": order.id, "customer_id": req.customer_id, "total": str(order.total)},
            )

        return CheckoutOutcome(
            order=order,
            payment_result=result.payment_result,
            finalize=outcome,
            unavailable=pricing.unavailable,
        )

    def _enforce_minimums(self, pricing: PricingResult, cart_lines, products, campaigns) -> PricingResult:
        # Only campaigns that actually priced a line can be violated.
        applied = {c.campaign_id for item in pricing.line_items for c in item.applied_campaigns}
        violated = [c for c in pricing.below_minimum if c.id in applied]
        if not violated:
            return pricing

        if self.min_purchase_policy == "reject":
            raise CampaignMinimumError(violated, pricing.subtotal)

        if self.min_purchase_policy == "flag":
            logger.warning(
                "campaign minimum not met, discounts kept",
                extra={"campaigns": [c.id for c in violated], "subtotal": str(pricing.subtotal)},
            )
            return pricing

        # Dropping discounts only raises the subtotal, so one more pass is final.
        excluded = [c.id for c in violated]
        logger.info(
            "repricing without campaigns below minimum",
            extra={"campaigns": excluded, "subtotal": str(pricing.subtotal)},
        )
        return self.engine.apply(cart_lines, products, campaigns, exclude=excluded)


def merge_cart_lines(cart_lines) -> List[CartLine]:
    """One line per product, quantities summed, in first-seen order."""
    quantities = {}
    for line in cart_lines:
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.requested_quantity
    return [CartLine(product_id, quantity) for product_id, quantity in quantities.items()]


def _require_lines(cart_lines) -> None:
    if not cart_lines:
        raise ValidationError("Cart is empty", code="EMPTY_CART", fields=["items"])
    for line in cart_lines:
        if not line.product_id or line.requested_quantity < 1:
            raise ValidationError(
                "Cart lines need a product id and a quantity of at least 1",
                code="INVALID_CART_LINE",
                fields=["product_id", "requested_quantity"],
            )
