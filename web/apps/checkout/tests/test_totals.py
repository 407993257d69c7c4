import asyncio
from decimal import Decimal

import pytest

from apps.checkout.adapters import StaticTaxLookup
from apps.checkout.domain import Address
from apps.checkout.errors import ValidationError
from apps.checkout.totals import TotalsCalculator

US_CA = Address(street="1 Infinite Loop", city="Cupertino", state="CA", country="US")
US_IL = Address(street="1 Main St", city="Springfield", state="IL", country="US")


def calculator():
    return TotalsCalculator(StaticTaxLookup({"US": "0.07", "US:CA": "0.0725"}, default="0"))


def test_total_is_taxable_plus_tax_plus_shipping():
    totals = asyncio.run(calculator().compute(Decimal("180.00"), Decimal("20.00"), US_IL, Decimal("5.99")))
    assert totals.tax == Decimal("11.20")
    assert totals.total == Decimal("160.00") + Decimal("11.20") + Decimal("5.99")


def test_state_rate_wins_over_country_rate():
    totals = asyncio.run(calculator().compute(Decimal("100.00"), Decimal("0"), US_CA, Decimal("0")))
    assert totals.tax == Decimal("7.25")


def test_unknown_jurisdiction_uses_default_rate():
    totals = asyncio.run(
        calculator().compute(Decimal("50.00"), Decimal("0"), Address(street="x", city="y", country="FR"), Decimal("3"))
    )
    assert totals.tax == Decimal("0.00")
    assert totals.total == Decimal("53.00")


def test_discount_above_subtotal_is_rejected():
    with pytest.raises(ValidationError) as e:
        asyncio.run(calculator().compute(Decimal("10"), Decimal("11"), US_IL, Decimal("0")))
    assert e.value.code == "DISCOUNT_EXCEEDS_SUBTOTAL"


def test_negative_shipping_is_rejected():
    with pytest.raises(ValidationError):
        asyncio.run(calculator().compute(Decimal("10"), Decimal("0"), US_IL, Decimal("-1")))
