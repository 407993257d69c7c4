"""Shipping quotes per delivery method."""

from datetime import datetime, timedelta
from typing import Optional

from .domain import ShippingMethod, ShippingQuote, money, utcnow
from .errors import ValidationError

DEFAULT_RATES = {
    "standard": {"cost": "5.99", "days": 5},
    "express": {"cost": "14.99", "days": 2},
    "overnight": {"cost": "29.99", "days": 1},
}


class ShippingCalculator:
    """Flat-rate shipping by method.

    Args:
        rates: ``{method: {"cost": amount, "days": transit_days}}``.
    """

    def __init__(self, rates: Optional[dict] = None):
        self.rates = rates or DEFAULT_RATES

    def quote(self, method=ShippingMethod.STANDARD, placed_at: Optional[datetime] = None) -> ShippingQuote:
        """Cost and estimated delivery date for ``method``.

        Raises:
            ValidationError: Unknown or unconfigured shipping method.
        """
        try:
            kind = ShippingMethod(method or ShippingMethod.STANDARD)
            rate = self.rates[kind.value]
        except (ValueError, KeyError) as e:
            raise ValidationError(f"Unknown shipping method {method}", fields=["shipping_method"]) from e

        placed_at = placed_at or utcnow()
        return ShippingQuote(
            method=kind,
            cost=money(rate["cost"]),
            estimated_delivery=(placed_at + timedelta(days=int(rate["days"]))).date(),
        )
