"""HTTP payment gateway with a circuit breaker and context headers.

This module implements ``PaymentCapabilityPort`` against a remote payments
service using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar in
    ``gateway.context``.
- A circuit breaker for the payments service to avoid hammering an unhealthy
    dependency, with HALF_OPEN probing after a timeout.
- Idempotency: the caller's ``Idempotency-Key`` is forwarded so the processor
    can deduplicate a repeated charge.

There is no retry loop: a charge is attempted exactly once per call.
"""

import threading
import time
from decimal import Decimal
from typing import Optional

import httpx
from django.conf import settings

from gateway.context import REQUEST_ID_CTX

from .domain import Order, PaymentContext, PaymentResult
from .errors import CollaboratorError


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe opens the circuit again.

    State changes happen under an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Admit or refuse a call.

        Returns:
            str: The state at call time.

        Raises:
            CollaboratorError: If the circuit is OPEN or a HALF_OPEN probe is
                already running.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CollaboratorError(f"{self.name} circuit open", code="CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise CollaboratorError(f"{self.name} circuit probing", code="CIRCUIT_HALF_OPEN_BUSY")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


_payments_cb = CircuitBreaker(
    "payments",
    getattr(settings, "PAYMENTS_CB_FAIL_THRESHOLD", 5),
    getattr(settings, "PAYMENTS_CB_RESET_SECS", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers with ``X-Request-ID`` when a request id is bound."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _body(resp) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# ---------------- Payments Adapter ---------------- #

class HttpPaymentGateway:
    """HTTP client for the payments service.

    Business mappings:
    - 200 → approved charge
    - 402 or 409 → declined; not counted as a circuit failure
    - anything else or a transport error → ``CollaboratorError``
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.breaker = breaker or _payments_cb

    async def process(self, order: Order, context: PaymentContext) -> PaymentResult:
        """Charge ``order.total`` once.

        Args:
            order: Pending order to charge.
            context: Client ip, user agent, billing address and idempotency key.

        Returns:
            PaymentResult: ``success`` False with ``error`` on a decline.

        Raises:
            CollaboratorError: Circuit open, transport error or unexpected status.
        """
        payload = {
            "order_id": order.id,
            "customer_id": order.customer_id,
            "amount": str(order.total),
            "currency": order.currency,
            "payment_method": order.payment_method,
            "billing_address": context.billing_address.as_dict() if context.billing_address else None,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
        }
        extras = {}
        if context.idempotency_key:
            extras["Idempotency-Key"] = context.idempotency_key

        state = self.breaker.before_call()
        extras["X-Circuit-State"] = state
        headers = _request_headers(extras)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                try:
                    resp = await client.post(f"{self.base_url}/charge", json=payload, headers=headers)
                except httpx.RequestError as e:
                    self.breaker.on_failure()
                    raise CollaboratorError(f"Payments service unreachable: {e}") from e

            if resp.status_code == 200:
                self.breaker.on_success()
                data = _body(resp)
                tx = data.get("transaction_id")
                return PaymentResult(
                    success=True,
                    payment_id=data.get("payment_id") or tx,
                    transaction_id=tx,
                    amount=Decimal(str(data.get("amount", order.total))),
                    currency=data.get("currency") or order.currency,
                    billing_address=context.billing_address,
                    status=data.get("status") or "approved",
                )
            if resp.status_code in (402, 409):
                self.breaker.on_success()  # business outcome, not a circuit failure
                data = _body(resp)
                return PaymentResult(
                    success=False,
                    status="declined",
                    error=data.get("error") or data.get("detail") or f"Payment declined ({resp.status_code})",
                )

            self.breaker.on_failure()
            raise CollaboratorError(f"Payments service answered {resp.status_code}")
        finally:
            self.breaker.on_finish()
