"""Finalizer: post-payment side effects as a recorded saga.

Runs only after a successful payment. The steps (clear cart, link order to the
customer, commit stock, record the payment entry) are independent writes with
no shared transaction. Progress is stored in a ``FinalizeOutcome`` per order so
that the reconciler can finish whatever did not complete. Nothing here rolls
back the payment.
"""

import logging
from typing import Optional, Sequence

from .domain import (
    FinalizeOutcome,
    FinalizeStatus,
    Order,
    OrderLineItem,
    PaymentRecord,
    money,
)
from .errors import FinalizeIncompleteError, PartialCommitError
from .ports import CustomerStorePort, FinalizeOutcomePort, PaymentLedgerPort
from .stock import StockReservationGuard

logger = logging.getLogger("checkout.finalizer")


def _billing_dict(address) -> Optional[dict]:
    if address is None:
        return None
    data = address if isinstance(address, dict) else address.as_dict()
    return {
        "recipient_name": data.get("recipient_name") or data.get("name") or "",
        "line1": data.get("line1") or data.get("street") or "",
        "line2": data.get("line2") or "",
        "city": data.get("city") or "",
        "state": data.get("state") or "",
        "postal_code": data.get("postal_code") or data.get("zip") or "",
        "country_code": data.get("country_code") or data.get("country") or "",
    }


def build_payment_record(order_id, customer_id, payment_result: dict, payment_method, promotion_code=None) -> PaymentRecord:
    """Summarize a successful payment for the ledger."""
    metadata = {
        "ip_address": payment_result.get("ip_address"),
        "user_agent": payment_result.get("user_agent"),
    }
    if promotion_code:
        metadata["promotion_code"] = promotion_code
    return PaymentRecord(
        order_id=order_id,
        customer_id=customer_id,
        payment_id=str(payment_result.get("payment_id") or payment_result.get("transaction_id")),
        payment_status="approved",
        payment_method=payment_method,
        total_amount=money(payment_result.get("amount")),
        currency=payment_result.get("currency") or "USD",
        description=f"Payment for order {order_id}",
        processor_response={
            "transaction_id": payment_result.get("transaction_id"),
            "status": payment_result.get("status") or "approved",
        },
        billing_address=_billing_dict(payment_result.get("billing_address")),
        metadata=metadata,
    )


class Finalizer:
    def __init__(
        self,
        customers: CustomerStorePort,
        guard: StockReservationGuard,
        ledger: PaymentLedgerPort,
        outcomes: FinalizeOutcomePort,
    ):
        self.customers = customers
        self.guard = guard
        self.ledger = ledger
        self.outcomes = outcomes

    async def finalize(
        self,
        order: Order,
        customer_id: str,
        line_items: Sequence[OrderLineItem],
        payment_result: dict,
        payment_method: str,
        promotion_code: Optional[str] = None,
    ) -> FinalizeOutcome:
        """Propagate the side effects of a confirmed payment.

        Every step is attempted even if an earlier one failed; each step is
        skipped when the stored outcome says it already happened, so running
        finalize again for the same order is safe.

        Returns:
            FinalizeOutcome: Stored with status ``completed``.

        Raises:
            PartialCommitError: Some stock decrements did not apply; the outcome
                is stored as ``needs_reconciliation`` with the shortages.
            FinalizeIncompleteError: A collaborator failed during a step.
        """
        if not payment_result.get("success"):
            raise FinalizeIncompleteError("Finalize requires a successful payment", order=order)

        outcome = await self.outcomes.get(order.id) or FinalizeOutcome(order_id=order.id, customer_id=customer_id)
        outcome.attempts += 1
        outcome.errors = []

        if not outcome.cart_cleared:
            try:
                await self.customers.clear_cart(customer_id)
                outcome.cart_cleared = True
            except Exception as e:
                self._step_failed(outcome, "clear_cart", e)

        if not outcome.order_linked:
            try:
                await self.customers.append_order(customer_id, order.id)
                outcome.order_linked = True
            except Exception as e:
                self._step_failed(outcome, "append_order", e)

        pending = outcome.pending_lines(line_items)
        if pending:
            try:
                result = await self.guard.commit(pending)
                outcome.committed_product_ids.extend(result.applied)
                outcome.shortages = list(result.skipped)
            except Exception as e:
                self._step_failed(outcome, "commit_stock", e)
        else:
            outcome.shortages = []

        if not outcome.payment_recorded:
            try:
                entry = build_payment_record(order.id, customer_id, payment_result, payment_method, promotion_code)
                await self.ledger.record(entry)
                outcome.payment_recorded = True
            except Exception as e:
                self._step_failed(outcome, "record_payment", e)

        status = outcome.refresh_status(line_items)
        await self.outcomes.save(outcome)

        if status is FinalizeStatus.COMPLETED:
            logger.info("order finalized", extra={"order_id": order.id, "attempts": outcome.attempts})
            return outcome

        if outcome.shortages:
            raise PartialCommitError(
                f"Stock commit applied {len(outcome.committed_product_ids)} of {len(line_items)} lines",
                order=order,
                outcome=outcome,
            )
        raise FinalizeIncompleteError(
            f"Finalize incomplete: {'; '.join(outcome.errors)}", order=order, outcome=outcome
        )

    def _step_failed(self, outcome: FinalizeOutcome, step: str, error: Exception) -> None:
        outcome.errors.append(f"{step}: {error}")
        logger.error(
            "finalize step failed",
            exc_info=error,
            extra={"order_id": outcome.order_id, "step": step},
        )
