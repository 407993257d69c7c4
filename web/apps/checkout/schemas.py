"""Pydantic schemas for checkout input.

This module exposes the validation schemas used at the pipeline boundary:
the order draft accepted by the order store and the checkout request accepted
by the service. Pydantic errors are translated into the pipeline's own
``ValidationError`` by ``parse``.
"""

from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .domain import PaymentMethod, ShippingMethod
from .errors import ValidationError


CURRENCIES = {"USD", "EUR", "GBP", "JPY", "CAD", "AUD"}
MISSING_TYPES = {"missing", "string_too_short", "too_short"}


class ShippingAddressIn(BaseModel):
    """Destination address.

    Attributes:
        street: First address line.
        city: City name.
        state: State, province or region (may be empty).
        postal_code: Postal/ZIP code.
        country: Country code, normalized to uppercase.
    """

    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = ""
    postal_code: str = ""
    country: str = Field(min_length=2)
    recipient_name: str = ""
    line2: str = ""

    @field_validator("country", "state")
    @classmethod
    def upper(cls, v: str) -> str:
        return v.strip().upper()


class OrderDraftIn(BaseModel):
    """Order data accepted by the order store.

    ``items`` holds already priced line items (``OrderLineItem`` or plain
    dicts); the store checks their consistency itself. Any ``total`` supplied
    by the caller is ignored: the stored total is always derived.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    customer_id: str = Field(min_length=1)
    items: List[Any] = Field(min_length=1)
    payment_method: PaymentMethod
    shipping_address: ShippingAddressIn
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    subtotal: Decimal = Field(gt=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "USD"
    promotion: Optional[dict] = None
    estimated_delivery: Optional[date] = None
    total: Optional[Decimal] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Normalize and check the currency code.

        Raises:
            ValueError: When the currency is not supported by the payment ledger.
        """
        v2 = v.upper()
        if v2 not in CURRENCIES:
            raise ValueError("Unsupported currency")
        return v2


class CheckoutRequestIn(BaseModel):
    """What a customer submits to place an order from their cart."""

    customer_id: str = Field(min_length=1)
    payment_method: PaymentMethod
    shipping_address: ShippingAddressIn
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    promotion_code: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = Field(default=None, max_length=200)
    billing_address: Optional[ShippingAddressIn] = None
    idempotency_key: Optional[str] = Field(default=None, max_length=200)

    @field_validator("promotion_code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v2 = v.strip().upper()
        return v2 or None


def parse(schema, data):
    """Validate ``data`` against ``schema``.

    Args:
        schema: Pydantic model class.
        data: Mapping (or model instance) to validate.

    Returns:
        The validated model instance.

    Raises:
        ValidationError: Listing the offending fields. Missing or empty required
            fields produce a "Missing required fields" message.
    """
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors()
        fields = [".".join(str(p) for p in err["loc"]) for err in errors]
        missing = [f for f, err in zip(fields, errors) if err["type"] in MISSING_TYPES and "." not in f]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", code="MISSING_FIELDS", fields=fields
            ) from e
        raise ValidationError(f"Invalid fields: {', '.join(fields)}", fields=fields) from e
