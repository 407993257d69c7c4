"""Ports describing the collaborators the checkout pipeline depends on.

Every method is a coroutine: each call is a potential suspension point and
implementers are free to reach a database or a remote service. Concrete
implementations live in ``repository`` (Django ORM), ``http_adapters``
(remote payment service) and ``adapters`` (in-process).
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from .domain import (
    Address,
    Campaign,
    CartLine,
    FinalizeOutcome,
    Order,
    PaymentContext,
    PaymentRecord,
    PaymentResult,
    ProductSnapshot,
    PromotionCode,
)


class CatalogPort(Protocol):
    """Read-only product lookup."""

    async def get_products_by_ids(self, ids: Iterable[str]) -> List[ProductSnapshot]:
        """Return snapshots for the ids that exist.

        Args:
            ids: Product identifiers.

        Returns:
            List of snapshots; missing ids are simply absent.
        """
        raise NotImplementedError()


class CampaignDirectoryPort(Protocol):
    async def get_active_campaigns(self, now: Optional[datetime] = None) -> List[Campaign]:
        """Return active, in-window campaigns in stacking order."""
        raise NotImplementedError()


class PromotionCodePort(Protocol):
    async def get_promotion(self, code: str) -> Optional[PromotionCode]:
        raise NotImplementedError()


class StockPort(Protocol):
    """Stock reads and the compare-and-decrement primitive."""

    async def read_stock(self, ids: Iterable[str]) -> dict:
        """Return ``{product_id: (name, stock_quantity)}`` for existing products."""
        raise NotImplementedError()

    async def decrement(self, lines: List[tuple]) -> List[bool]:
        """Conditionally decrement stock for ``(product_id, quantity)`` pairs.

        Each decrement only applies when the current stock is at least the
        quantity. Implementations must perform the comparison and the write as
        one atomic operation.

        Returns:
            One boolean per input pair, True when that decrement was applied.
        """
        raise NotImplementedError()


class TaxLookupPort(Protocol):
    async def rate_for(self, shipping_address: Address):
        """Return the decimal tax rate for the destination jurisdiction."""
        raise NotImplementedError()


class PaymentCapabilityPort(Protocol):
    """External payment processor behind a narrow contract."""

    async def process(self, order: Order, context: PaymentContext) -> PaymentResult:
        """Charge ``order.total`` once.

        Returns:
            PaymentResult with ``success`` False and ``error`` set on decline.

        Raises:
            CollaboratorError: When the processor cannot be reached.
        """
        raise NotImplementedError()


class CustomerStorePort(Protocol):
    async def get_cart(self, customer_id: str) -> List[CartLine]:
        raise NotImplementedError()

    async def clear_cart(self, customer_id: str) -> None:
        raise NotImplementedError()

    async def append_order(self, customer_id: str, order_id: str) -> None:
        """Link the order to the customer; linking twice is a no-op."""
        raise NotImplementedError()


class OrderRepositoryPort(Protocol):
    async def insert(self, order: Order) -> None:
        raise NotImplementedError()

    async def update(self, order: Order) -> None:
        raise NotImplementedError()

    async def get(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError()

    async def has_used_promotion(self, customer_id: str, code: str) -> bool:
        """True when a non-cancelled, non-failed order of the customer used ``code``."""
        raise NotImplementedError()

    async def list_pending_before(self, cutoff: datetime) -> List[Order]:
        raise NotImplementedError()


class PaymentLedgerPort(Protocol):
    async def record(self, entry: PaymentRecord) -> None:
        """Store a payment entry; recording the same payment id twice is a no-op."""
        raise NotImplementedError()


class FinalizeOutcomePort(Protocol):
    async def get(self, order_id: str) -> Optional[FinalizeOutcome]:
        raise NotImplementedError()

    async def save(self, outcome: FinalizeOutcome) -> None:
        raise NotImplementedError()

    async def list_unreconciled(self) -> List[FinalizeOutcome]:
        raise NotImplementedError()
