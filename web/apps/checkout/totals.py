"""Totals calculator: tax and grand total from the priced order."""

from decimal import Decimal

from .domain import ZERO, Address, Totals, money
from .errors import ValidationError
from .ports import TaxLookupPort


class TotalsCalculator:
    def __init__(self, tax_lookup: TaxLookupPort):
        self.tax_lookup = tax_lookup

    async def compute(
        self,
        subtotal: Decimal,
        discount: Decimal,
        shipping_address: Address,
        shipping_cost: Decimal,
    ) -> Totals:
        """Derive tax and total.

        ``tax = (subtotal - discount) * rate`` and
        ``total = (subtotal - discount) + tax + shipping_cost``.

        Raises:
            ValidationError: If the discount exceeds the subtotal or shipping is
                negative; a negative taxable amount would otherwise turn into a
                negative tax.
        """
        taxable = subtotal - discount
        if taxable < ZERO:
            raise ValidationError("Discount exceeds subtotal", code="DISCOUNT_EXCEEDS_SUBTOTAL", fields=["discount"])
        if shipping_cost < ZERO:
            raise ValidationError("Shipping cost cannot be negative", fields=["shipping_cost"])

        rate = Decimal(str(await self.tax_lookup.rate_for(shipping_address)))
        tax = money(taxable * rate)
        return Totals(tax=tax, total=taxable + tax + shipping_cost)
