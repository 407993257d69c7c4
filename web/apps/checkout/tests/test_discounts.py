"""Unit tests for the discount engine.

The engine is pure, so these tests call it directly with snapshots built by
the ``make_product`` fixture and hand-written campaigns.
"""

import asyncio
import logging
from decimal import Decimal

from apps.checkout.adapters import InMemoryCampaigns
from apps.checkout.discounts import DiscountEngine
from apps.checkout.domain import Campaign, CartLine, UnavailableReason


def campaign(cid, type_, amount="0", categories=("c1",), **kw):
    return Campaign(
        id=cid,
        name=f"Campaign {cid}",
        type=type_,
        amount=Decimal(amount),
        valid_category_ids=frozenset(categories),
        **kw,
    )


def test_percentage_campaign_scenario(make_product):
    """100 at 10% off, two units: 90 each, 180 in total."""
    p1 = make_product("P1", "100", 5)
    result = DiscountEngine().apply([CartLine("P1", 2)], [p1], [campaign("k1", "percentage", "10")])

    (item,) = result.line_items
    assert item.price_at_purchase == Decimal("90.00")
    assert item.line_subtotal == Decimal("180.00")
    assert result.subtotal == Decimal("180.00")
    assert item.discount_percentage == Decimal("10.00")
    assert [a.campaign_id for a in item.applied_campaigns] == ["k1"]
    assert result.unavailable == ()


def test_percentage_rounds_once_to_cents(make_product):
    p = make_product("P1", "19.99", 10)
    result = DiscountEngine().apply([CartLine("P1", 3)], [p], [campaign("k1", "percentage", "15")])
    (item,) = result.line_items
    assert item.price_at_purchase == Decimal("16.99")
    assert item.line_subtotal == Decimal("50.97")
    assert sum(i.line_subtotal for i in result.line_items) == result.subtotal


def test_buy_x_get_y_reduces_billed_quantity(make_product):
    """buy 3 get 1 with 7 requested bills 5 units."""
    p = make_product("P1", "10", 10)
    promo = campaign("b", "buy_x_get_y", buy_x=3, get_y=1)
    result = DiscountEngine().apply([CartLine("P1", 7)], [p], [promo])

    (item,) = result.line_items
    assert item.requested_quantity == 7
    assert item.effective_quantity == 5
    assert item.price_at_purchase == Decimal("10.00")
    assert result.subtotal == Decimal("50.00")
    assert [a.campaign_id for a in item.applied_campaigns] == ["b"]


def test_buy_x_get_y_below_threshold_keeps_quantity(make_product):
    p = make_product("P1", "10", 10)
    promo = campaign("b", "buy_x_get_y", buy_x=3, get_y=1)
    (item,) = DiscountEngine().apply([CartLine("P1", 2)], [p], [promo]).line_items
    assert item.effective_quantity == 2


def test_fixed_discount_is_clamped_at_zero(make_product):
    p = make_product("P1", "5", 10)
    result = DiscountEngine().apply([CartLine("P1", 1)], [p], [campaign("f", "fixed", "10")])
    assert result.line_items[0].price_at_purchase == Decimal("0.00")
    assert result.subtotal == Decimal("0.00")


def test_excluded_product_and_other_category_are_not_discounted(make_product):
    excluded = make_product("P1", "100", 5)
    other = make_product("P2", "50", 5, categories=("c2",))
    promo = campaign("k1", "percentage", "50", excluded_product_ids=frozenset({"P1"}))

    result = DiscountEngine().apply([CartLine("P1", 1), CartLine("P2", 1)], [excluded, other], [promo])

    assert [i.price_at_purchase for i in result.line_items] == [Decimal("100.00"), Decimal("50.00")]
    assert all(i.applied_campaigns == () for i in result.line_items)


def test_campaigns_stack_in_rank_order(make_product):
    """Directory order decides compounding: 10% then 5 off gives 85."""
    p = make_product("P1", "100", 5)
    directory = InMemoryCampaigns(
        [campaign("fixed", "fixed", "5", rank=2), campaign("pct", "percentage", "10", rank=1)]
    )
    ordered = asyncio.run(directory.get_active_campaigns())

    (item,) = DiscountEngine().apply([CartLine("P1", 1)], [p], ordered).line_items
    assert [a.campaign_id for a in item.applied_campaigns] == ["pct", "fixed"]
    assert item.price_at_purchase == Decimal("85.00")


def test_unknown_campaign_type_is_ignored(make_product, caplog):
    p = make_product("P1", "100", 5)
    with caplog.at_level(logging.WARNING, logger="checkout.discounts"):
        result = DiscountEngine().apply([CartLine("P1", 1)], [p], [campaign("x", "mystery", "99")])
    assert result.line_items[0].price_at_purchase == Decimal("100.00")
    assert result.line_items[0].applied_campaigns == ()
    assert "unknown campaign type" in caplog.text


def test_non_finite_price_falls_back_to_catalog_price(make_product):
    p = make_product("P1", "40", 5)
    result = DiscountEngine().apply([CartLine("P1", 2)], [p], [campaign("nan", "percentage", "NaN")])
    (item,) = result.line_items
    assert item.price_at_purchase == Decimal("40.00")
    assert result.subtotal == Decimal("80.00")


def test_insufficient_stock_line_is_unavailable(make_product):
    """3 requested, 1 in stock, only line: nothing priced."""
    p = make_product("P1", "10", 1)
    result = DiscountEngine().apply([CartLine("P1", 3)], [p], [])

    assert result.line_items == ()
    assert result.subtotal == Decimal("0")
    (line,) = result.unavailable
    assert line.product_id == "P1"
    assert line.reason is UnavailableReason.INSUFFICIENT_STOCK
    assert line.available == 1


def test_missing_product_is_unavailable_and_others_priced(make_product):
    p = make_product("P1", "10", 5)
    result = DiscountEngine().apply([CartLine("GONE", 1), CartLine("P1", 1)], [p], [])
    assert [u.reason for u in result.unavailable] == [UnavailableReason.NOT_FOUND]
    assert [i.product_id for i in result.line_items] == ["P1"]
    assert result.subtotal == Decimal("10.00")


def test_empty_cart_returns_empty_result():
    result = DiscountEngine().apply([], [], [campaign("k1", "percentage", "10")])
    assert result.line_items == ()
    assert result.unavailable == ()
    assert result.subtotal == Decimal("0")


def test_campaign_minimum_is_flagged_not_reversed(make_product):
    p = make_product("P1", "100", 5)
    promo = campaign("k1", "percentage", "10", min_purchase_amount=Decimal("500"))
    result = DiscountEngine().apply([CartLine("P1", 2)], [p], [promo])

    assert result.line_items[0].price_at_purchase == Decimal("90.00")
    assert [c.id for c in result.below_minimum] == ["k1"]


def test_excluded_campaign_ids_are_skipped(make_product):
    p = make_product("P1", "100", 5)
    result = DiscountEngine().apply(
        [CartLine("P1", 1)], [p], [campaign("k1", "percentage", "10")], exclude=["k1"]
    )
    assert result.line_items[0].price_at_purchase == Decimal("100.00")
