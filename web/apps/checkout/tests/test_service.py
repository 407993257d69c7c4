"""End-to-end tests of the checkout service with in-memory adapters.

These cover the full pipeline: pricing, availability policy, promotions,
totals, payment, and finalize, including the failure paths that must leave
stock untouched.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from apps.checkout.adapters import PaymentsStub
from apps.checkout.domain import (
    Campaign,
    CartLine,
    FinalizeStatus,
    OrderStatus,
    PaymentResult,
    PaymentStatus,
    PromotionCode,
    UnavailableReason,
)
from apps.checkout.errors import (
    AvailabilityError,
    CampaignMinimumError,
    PartialCommitError,
    PaymentError,
    PromotionError,
    ValidationError,
)

FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)
TEN_PCT = Campaign(id="k1", name="Ten", type="percentage", amount=Decimal("10"), valid_category_ids=frozenset({"c1"}))


class ExplodingCatalog:
    async def get_products_by_ids(self, ids):
        raise AssertionError("catalog must not be called")


class StubPaymentsDecline:
    async def process(self, order, context):
        return PaymentResult(success=False, error="insufficient_funds")


class RacingPayments(PaymentsStub):
    """Approves the charge while another order takes the remaining stock."""

    def __init__(self, catalog, product_id, quantity):
        super().__init__()
        self.catalog = catalog
        self.product_id = product_id
        self.quantity = quantity

    async def process(self, order, context):
        await self.catalog.decrement([(self.product_id, self.quantity)])
        return await super().process(order, context)


@pytest.fixture
def shop(make_pipeline, make_product):
    def build(**kwargs):
        kwargs.setdefault("products", [make_product("P1", "100", 5), make_product("P2", "10", 1)])
        kwargs.setdefault("campaigns", [TEN_PCT])
        kwargs.setdefault("carts", {"cust-1": [CartLine("P1", 2)]})
        return make_pipeline(**kwargs)

    return build


def test_place_order_happy_path(shop, checkout_request):
    pipeline = shop()
    outcome = asyncio.run(pipeline.service.place_order(checkout_request))

    order = outcome.order
    assert order.status is OrderStatus.PROCESSING
    assert order.payment_status is PaymentStatus.COMPLETED
    assert order.items[0].price_at_purchase == Decimal("90.00")
    assert order.subtotal == Decimal("180.00")
    assert order.shipping_cost == Decimal("5.99")
    assert order.tax == Decimal("18.00")
    assert order.total == Decimal("203.99")
    assert order.total == (order.subtotal - order.discount) + order.tax + order.shipping_cost
    assert order.estimated_delivery is not None
    assert [c.campaign_id for c in order.applied_campaigns] == ["k1"]

    assert outcome.finalize.status is FinalizeStatus.COMPLETED
    assert pipeline.catalog.stock_of("P1") == 3
    assert asyncio.run(pipeline.customers.get_cart("cust-1")) == []
    assert pipeline.customers.order_history["cust-1"] == [order.id]


def test_empty_cart_fails_before_any_collaborator_call(shop, checkout_request):
    pipeline = shop()
    pipeline.service.catalog = ExplodingCatalog()
    with pytest.raises(ValidationError) as e:
        asyncio.run(pipeline.service.place_order(checkout_request, cart_lines=[]))
    assert e.value.code == "EMPTY_CART"


def test_empty_stored_cart_is_rejected(shop, checkout_request):
    pipeline = shop(carts={})
    with pytest.raises(ValidationError) as e:
        asyncio.run(pipeline.service.place_order(checkout_request))
    assert e.value.code == "EMPTY_CART"


def test_payment_failure_keeps_stock_and_cart(shop, checkout_request):
    pipeline = shop(payments=StubPaymentsDecline())
    with pytest.raises(PaymentError) as e:
        asyncio.run(pipeline.service.place_order(checkout_request))

    stored = asyncio.run(pipeline.orders.get(e.value.order.id))
    assert stored.status is OrderStatus.FAILED
    assert stored.payment_status is PaymentStatus.FAILED
    assert pipeline.catalog.stock_of("P1") == 5
    assert asyncio.run(pipeline.customers.get_cart("cust-1")) == [CartLine("P1", 2)]
    assert asyncio.run(pipeline.outcomes.get(stored.id)) is None


def test_unavailable_line_aborts_by_default(shop, checkout_request):
    pipeline = shop(carts={"cust-1": [CartLine("P1", 1), CartLine("P2", 3)]})
    with pytest.raises(AvailabilityError) as e:
        asyncio.run(pipeline.service.place_order(checkout_request))

    assert [u.product_id for u in e.value.unavailable] == ["P2"]
    assert e.value.unavailable[0].reason is UnavailableReason.INSUFFICIENT_STOCK
    assert pipeline.payments.calls == []
    assert asyncio.run(pipeline.orders.list_pending_before(FAR_FUTURE)) == []


def test_partial_cart_places_remaining_lines_when_allowed(shop, checkout_request):
    pipeline = shop(carts={"cust-1": [CartLine("P1", 1), CartLine("GONE", 1)]}, allow_partial_cart=True)
    outcome = asyncio.run(pipeline.service.place_order(checkout_request))

    assert [i.product_id for i in outcome.order.items] == ["P1"]
    assert [u.reason for u in outcome.unavailable] == [UnavailableReason.NOT_FOUND]


def test_no_fulfillable_line_is_an_availability_error(shop, checkout_request):
    pipeline = shop(carts={"cust-1": [CartLine("P2", 3)]}, allow_partial_cart=True)
    with pytest.raises(AvailabilityError):
        asyncio.run(pipeline.service.place_order(checkout_request))


def minimum_campaign():
    return Campaign(
        id="big",
        name="Big spender",
        type="percentage",
        amount=Decimal("10"),
        valid_category_ids=frozenset({"c1"}),
        min_purchase_amount=Decimal("200"),
    )


def test_campaign_below_minimum_is_repriced_by_default(shop, checkout_request):
    pipeline = shop(campaigns=[minimum_campaign()])
    outcome = asyncio.run(pipeline.service.place_order(checkout_request))
    assert outcome.order.subtotal == Decimal("200.00")
    assert outcome.order.applied_campaigns == []


def test_campaign_below_minimum_rejected_under_reject_policy(shop, checkout_request):
    pipeline = shop(campaigns=[minimum_campaign()], min_purchase_policy="reject")
    with pytest.raises(CampaignMinimumError) as e:
        asyncio.run(pipeline.service.place_order(checkout_request))
    assert [c.id for c in e.value.campaigns] == ["big"]


def test_campaign_below_minimum_kept_under_flag_policy(shop, checkout_request):
    pipeline = shop(campaigns=[minimum_campaign()], min_purchase_policy="flag")
    outcome = asyncio.run(pipeline.service.place_order(checkout_request))
    assert outcome.order.subtotal == Decimal("180.00")


def test_unknown_min_purchase_policy_is_refused(shop):
    with pytest.raises(ValueError):
        shop(min_purchase_policy="ignore")


def test_promotion_code_discounts_order_once(shop, checkout_request):
    save = PromotionCode(code="SAVE10", name="Save 10", type="percentage", amount=Decimal("10"), one_time_use=True)
    pipeline = shop(promotions=[save])
    checkout_request["promotion_code"] = "save10"

    outcome = asyncio.run(pipeline.service.place_order(checkout_request))
    assert outcome.order.discount == Decimal("18.00")
    assert outcome.order.promotion["code"] == "SAVE10"
    assert outcome.order.tax == Decimal("16.20")

    pipeline.customers.carts["cust-1"] = [CartLine("P1", 1)]
    with pytest.raises(PromotionError):
        asyncio.run(pipeline.service.place_order(checkout_request))


def test_stock_taken_during_payment_surfaces_partial_commit(shop, checkout_request):
    """Payment succeeded but another order took the stock: reconciliation required."""
    pipeline = shop()
    pipeline.orchestrator.payments = RacingPayments(pipeline.catalog, "P1", 4)

    with pytest.raises(PartialCommitError) as e:
        asyncio.run(pipeline.service.place_order(checkout_request))

    order = asyncio.run(pipeline.orders.get(e.value.order.id))
    assert order.status is OrderStatus.PROCESSING
    assert order.payment_status is PaymentStatus.COMPLETED
    assert pipeline.catalog.stock_of("P1") == 1
    assert e.value.outcome.status is FinalizeStatus.NEEDS_RECONCILIATION
    assert [s.product_id for s in e.value.shortages] == ["P1"]


def test_create_and_process_order_entry_point(shop, address):
    pipeline = shop()
    price = Decimal("25.00")
    result = asyncio.run(
        pipeline.service.create_and_process_order(
            {
                "customer_id": "cust-9",
                "items": [{"product_id": "P1", "product_name": "P1", "quantity": 1, "price_at_purchase": price}],
                "payment_method": "paypal",
                "shipping_address": address,
                "subtotal": price,
            },
            "paypal",
        )
    )
    assert result.order.payment_status is PaymentStatus.COMPLETED
    assert result.payment_result["amount"] == Decimal("25.00")


def test_repeated_cart_lines_are_merged_per_product(shop, checkout_request):
    pipeline = shop(carts={"cust-1": [CartLine("P1", 2), CartLine("P1", 1)]})
    outcome = asyncio.run(pipeline.service.place_order(checkout_request))

    (item,) = outcome.order.items
    assert item.requested_quantity == 3
    assert outcome.finalize.status is FinalizeStatus.COMPLETED
    assert pipeline.catalog.stock_of("P1") == 2


def test_repeated_cart_lines_cannot_exceed_stock_together(shop, checkout_request):
    pipeline = shop()
    with pytest.raises(AvailabilityError) as e:
        asyncio.run(pipeline.service.place_order(checkout_request, cart_lines=[CartLine("P1", 3), CartLine("P1", 3)]))

    assert [(u.product_id, u.requested) for u in e.value.unavailable] == [("P1", 6)]
    assert pipeline.payments.calls == []
    assert pipeline.catalog.stock_of("P1") == 5


def test_minimum_of_a_campaign_that_priced_nothing_is_ignored(shop, checkout_request):
    tv_deal = Campaign(
        id="tv",
        name="TV deal",
        type="fixed",
        amount=Decimal("50"),
        valid_category_ids=frozenset({"tv"}),
        min_purchase_amount=Decimal("1000"),
    )
    pipeline = shop(campaigns=[tv_deal], min_purchase_policy="reject")

    outcome = asyncio.run(pipeline.service.place_order(checkout_request))
    assert outcome.order.subtotal == Decimal("200.00")
    assert outcome.order.applied_campaigns == []
