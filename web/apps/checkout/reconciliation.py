"""Reconciliation of partially finalized and interrupted orders."""

import logging
from datetime import timedelta
from typing import List

from .domain import FinalizeOutcome, Order, PaymentStatus, utcnow
from .errors import CheckoutError, CollaboratorError, OrderStateError, ReconciliationRequired, ValidationError
from .finalizer import Finalizer
from .ports import FinalizeOutcomePort
from .store import OrderStore

logger = logging.getLogger("checkout.reconciliation")


def payment_result_from_order(order: Order) -> dict:
    """Rebuild the payment summary finalize needs from a paid order."""
    return {
        "success": True,
        "payment_id": order.payment_id,
        "transaction_id": order.transaction_id,
        "amount": order.total,
        "currency": order.currency,
        "status": "approved",
        "billing_address": order.shipping_address,
    }


class Reconciler:
    """Finishes finalize sagas and reports orders whose payment is unknown."""

    def __init__(self, store: OrderStore, finalizer: Finalizer, outcomes: FinalizeOutcomePort):
        self.store = store
        self.finalizer = finalizer
        self.outcomes = outcomes

    async def retry(self, order_id: str) -> FinalizeOutcome:
        """Re-run the unfinished finalize steps of one paid order.

        Raises:
            ValidationError: Unknown order.
            OrderStateError: The order has not been paid.
            ReconciliationRequired: Some steps still did not complete.
        """
        order = await self.store.get(order_id)
        if order is None:
            raise ValidationError(f"Order {order_id} not found", code="ORDER_NOT_FOUND")
        if order.payment_status != PaymentStatus.COMPLETED:
            raise OrderStateError(f"Order {order_id} payment is {order.payment_status.value}")

        promotion_code = (order.promotion or {}).get("code")
        return await self.finalizer.finalize(
            order,
            order.customer_id,
            order.items,
            payment_result_from_order(order),
            order.payment_method,
            promotion_code,
        )

    async def run(self) -> dict:
        """Retry every stored outcome that still needs reconciliation.

        A failure on one order is logged and reported; the pass continues
        with the next one.

        Returns:
            dict: ``{order_id: status}`` after this pass, or the error code
            when the order could not be retried.
        """
        report = {}
        for outcome in await self.outcomes.list_unreconciled():
            try:
                done = await self.retry(outcome.order_id)
                report[outcome.order_id] = done.status.value
            except ReconciliationRequired as e:
                logger.warning(
                    "order still needs reconciliation",
                    extra={"order_id": outcome.order_id, "reason": e.code},
                )
                report[outcome.order_id] = e.outcome.status.value if e.outcome else e.code
            except CheckoutError as e:
                logger.error(
                    "order could not be reconciled",
                    extra={"order_id": outcome.order_id, "reason": e.code, "error": e.message},
                )
                report[outcome.order_id] = e.code
            except Exception:
                logger.exception("order reconciliation crashed", extra={"order_id": outcome.order_id})
                report[outcome.order_id] = CollaboratorError.code
        logger.info("reconciliation pass finished", extra={"orders": len(report)})
        return report

    async def unknown_payments(self, older_than: timedelta) -> List[Order]:
        """List orders still ``pending`` after ``older_than``.

        Such orders were persisted but their payment attempt never reported
        back (caller cancelled or the process died). Their payment status is
        unknown: they are reported, not marked failed.
        """
        stale = await self.store.list_pending_before(utcnow() - older_than)
        for order in stale:
            logger.warning(
                "payment status unknown",
                extra={"order_id": order.id, "created_at": order.created_at.isoformat()},
            )
        return stale
