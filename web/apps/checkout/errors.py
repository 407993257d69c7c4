"""Error taxonomy of the checkout pipeline.

Every error carries a short upper-snake ``code`` so callers can map it to a
response without parsing messages. The classes tell apart "nothing happened"
(``ValidationError``), "payment attempted and failed" (``PaymentError``) and
"payment succeeded but finalize needs reconciliation"
(``ReconciliationRequired``).
"""


class CheckoutError(Exception):
    code = "CHECKOUT_ERROR"

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message or self.code)
        if code:
            self.code = code
        self.message = message or self.code


class ValidationError(CheckoutError):
    """Fatal input problem detected before any side effect.

    Attributes:
        fields: Names of the offending fields, when known.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "", code: str | None = None, fields=()):
        super().__init__(message, code)
        self.fields = list(fields)


class PromotionError(ValidationError):
    code = "INVALID_PROMOTION"


class CampaignMinimumError(ValidationError):
    code = "CAMPAIGN_MINIMUM_NOT_MET"

    def __init__(self, campaigns, subtotal):
        names = ", ".join(c.name for c in campaigns)
        super().__init__(f"Subtotal {subtotal} below campaign minimum: {names}")
        self.campaigns = list(campaigns)
        self.subtotal = subtotal


class OrderStateError(ValidationError):
    code = "INVALID_ORDER_STATE"


class AvailabilityError(CheckoutError):
    """Some cart lines cannot be fulfilled.

    Attributes:
        unavailable: The ``UnavailableLine``/``StockShortage`` entries.
    """

    code = "INSUFFICIENT_STOCK"

    def __init__(self, unavailable, message: str = "Some items are out of stock"):
        super().__init__(message)
        self.unavailable = list(unavailable)


class PaymentError(CheckoutError):
    """Payment failed; the order is already stored as failed/failed.

    Attributes:
        payment_method: Method the customer chose.
        amount: Order total that was charged.
        original_error: Processor message or the exception that aborted the attempt.
        order: The failed order, when available.
    """

    code = "PAYMENT_FAILED"

    def __init__(self, message, payment_method=None, amount=None, original_error=None, order=None):
        super().__init__(message)
        self.payment_method = payment_method
        self.amount = amount
        self.original_error = original_error
        self.order = order


class ReconciliationRequired(CheckoutError):
    """Payment succeeded but finalize did not complete every step.

    Attributes:
        order: The paid order.
        outcome: The persisted ``FinalizeOutcome``.
    """

    code = "RECONCILIATION_REQUIRED"

    def __init__(self, message, order=None, outcome=None):
        super().__init__(message)
        self.order = order
        self.outcome = outcome


class PartialCommitError(ReconciliationRequired):
    code = "PARTIAL_STOCK_COMMIT"

    @property
    def shortages(self):
        return list(self.outcome.shortages) if self.outcome else []


class FinalizeIncompleteError(ReconciliationRequired):
    code = "FINALIZE_INCOMPLETE"


class CollaboratorError(CheckoutError):
    """An external dependency failed (unreachable, circuit open, bad answer)."""

    code = "UPSTREAM_UNAVAILABLE"
