from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from apps.checkout.domain import ShippingMethod
from apps.checkout.errors import ValidationError
from apps.checkout.shipping import ShippingCalculator

PLACED = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def test_default_method_is_standard():
    quote = ShippingCalculator().quote(None, PLACED)
    assert quote.method is ShippingMethod.STANDARD
    assert quote.cost == Decimal("5.99")
    assert quote.estimated_delivery == date(2026, 3, 7)


def test_configured_rates_are_used():
    calc = ShippingCalculator({"overnight": {"cost": "42", "days": 1}})
    quote = calc.quote("overnight", PLACED)
    assert quote.cost == Decimal("42.00")
    assert quote.estimated_delivery == date(2026, 3, 3)


@pytest.mark.parametrize("method", ["teleport", "express"])
def test_unknown_or_unconfigured_method(method):
    with pytest.raises(ValidationError):
        ShippingCalculator({"standard": {"cost": "1", "days": 1}}).quote(method, PLACED)
