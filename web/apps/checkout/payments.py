"""Payment orchestrator.

Drives the external payment capability for a pending order and moves the
order to ``processing/completed`` or ``failed/failed``. The state transition is
persisted before any error reaches the caller, so once this component returns
or raises the stored order reflects the last payment attempt.

Caller cancellation is not handled here: ``CancelledError`` is not
an ``Exception``, so an order cancelled mid-payment stays ``pending`` and is
reported as "payment status unknown" by the reconciler.
"""

import logging

from gateway.context import bind_order

from .domain import CheckoutResult, Order, PaymentContext, PaymentMethod, PaymentResult
from .errors import OrderStateError, PaymentError
from .ports import PaymentCapabilityPort
from .store import OrderStore

logger = logging.getLogger("checkout.payments")


def processor_for(payment_method: str) -> str:
    """Name of the processor recorded for a payment method."""
    if payment_method == PaymentMethod.CREDIT_CARD.value:
        return "stripe"
    return payment_method


class PaymentOrchestrator:
    def __init__(self, store: OrderStore, payments: PaymentCapabilityPort):
        self.store = store
        self.payments = payments

    async def create_and_process_order(self, order_data, payment_method: str, payment_context=None) -> CheckoutResult:
        """Create the order document and charge it.

        Args:
            order_data: Order draft accepted by ``OrderStore.create_order``.
            payment_method: Method the customer chose.
            payment_context: Optional ``PaymentContext`` (ip, user agent,
                billing address, idempotency key).

        Returns:
            CheckoutResult: The paid order and a payment summary.

        Raises:
            ValidationError: When the order data is rejected; nothing is stored.
            PaymentError: When the payment failed; the order is stored as
                ``failed/failed``.
        """
        order = await self.store.create_order(order_data)
        with bind_order(order.id):
            payment_result = await self.process_payment(order, payment_method, payment_context)
        return CheckoutResult(order=order, payment_result=payment_result)

    async def process_payment(self, order: Order, payment_method: str, payment_context=None) -> dict:
        """Invoke the payment capability exactly once for ``order``.

        There is no retry loop; repeating the call for the same order is only
        safe with an idempotency key in the context.

        Raises:
            OrderStateError: If the order is not awaiting payment.
            PaymentError: After the failed state has been persisted.
        """
        if not order.awaiting_payment:
            raise OrderStateError(
                f"Order {order.id} is {order.status.value}/{order.payment_status.value}, not awaiting payment"
            )

        context = (payment_context or PaymentContext()).with_billing_default(order.shipping_address)

        try:
            result: PaymentResult = await self.payments.process(order, context)
            if not result.success:
                raise PaymentError(
                    "Payment processing failed",
                    payment_method=payment_method,
                    amount=order.total,
                    original_error=result.error,
                    order=order,
                )

            order.mark_paid(result, processor_for(payment_method))
            await self.store.save(order)
        except Exception as e:
            original = e.original_error if isinstance(e, PaymentError) else e
            order.mark_payment_failed(str(e), processor_error=str(original) if original else None)
            await self.store.save(order)

            logger.error(
                "order payment failed",
                extra={
                    "order_id": order.id,
                    "error": str(e),
                    "payment_method": payment_method,
                    "amount": str(order.total),
                },
            )

            if isinstance(e, PaymentError):
                raise
            raise PaymentError(
                str(e), payment_method=payment_method, amount=order.total, original_error=e, order=order
            ) from e

        logger.info(
            "order payment completed",
            extra={"order_id": order.id, "transaction_id": result.transaction_id, "amount": str(order.total)},
        )
        return {
            "success": True,
            "payment_id": result.payment_id,
            "transaction_id": result.transaction_id,
            "amount": order.total,
            "currency": result.currency or order.currency,
            "status": result.status or "approved",
            "billing_address": result.billing_address or context.billing_address,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
        }
