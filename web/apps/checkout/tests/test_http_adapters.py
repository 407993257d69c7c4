"""Unit tests for the HTTP payment gateway.

These tests verify that the gateway maps processor answers and network
errors correctly by monkeypatching ``httpx.AsyncClient.post`` and asserting
the adapter behavior.
"""
import asyncio
from decimal import Decimal

import httpx
import pytest

from apps.checkout.domain import Address, Order, OrderLineItem, PaymentContext
from apps.checkout.errors import CollaboratorError
from apps.checkout.http_adapters import CircuitBreaker, HttpPaymentGateway
from gateway.context import bind_request


class DummyResp:
    """Minimal httpx-like response stub for adapter tests.

    Args:
        status_code (int): HTTP status code to simulate.
        json_data (dict | None): JSON body to return from ``json()``.
    """
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data
    def json(self):
        if self._json is None:
            raise ValueError("no body")
        return self._json


def make_order():
    price = Decimal("25.00")
    return Order(
        id="6f1c1b55-8a53-4c55-9c2b-1f2d3e4a5b6c",
        customer_id="cust-1",
        items=[OrderLineItem("P1", "Widget", 2, 2, price, price, price * 2)],
        payment_method="credit_card",
        shipping_address=Address(street="1 Main St", country="US"),
        subtotal=Decimal("50.00"),
        discount=Decimal("0.00"),
        tax=Decimal("5.00"),
        shipping_cost=Decimal("5.99"),
        total=Decimal("60.99"),
    )


def gateway(breaker=None):
    return HttpPaymentGateway(base_url="http://payments:9002", breaker=breaker or CircuitBreaker("test", 3, 60))


def charge(gw, context=None):
    order = make_order()
    return asyncio.run(gw.process(order, context or PaymentContext(billing_address=order.shipping_address)))


def test_payment_approved(monkeypatch):
    """200 maps to a successful result carrying the processor ids."""
    seen = {}
    async def fake_post(self, url, json=None, headers=None, **kw):
        seen["url"], seen["json"] = url, json
        return DummyResp(200, {"payment_id": "pay_1", "transaction_id": "tx_1", "amount": "60.99"})
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    result = charge(gateway())
    assert result.success is True
    assert (result.payment_id, result.transaction_id) == ("pay_1", "tx_1")
    assert result.amount == Decimal("60.99")
    assert seen["url"] == "http://payments:9002/charge"
    assert seen["json"]["amount"] == "60.99"
    assert seen["json"]["billing_address"]["country"] == "US"


@pytest.mark.parametrize("status", [402, 409])
def test_payment_declined(monkeypatch, status):
    """402 and 409 are declines, not collaborator failures."""
    async def fake_post(self, url, json=None, headers=None, **kw):
        return DummyResp(status, {"error": "Card declined"})
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    breaker = CircuitBreaker("test", 1, 60)
    result = charge(gateway(breaker))
    assert result.success is False
    assert result.error == "Card declined"
    assert breaker.state == "CLOSED"


def test_decline_without_body(monkeypatch):
    async def fake_post(self, url, json=None, headers=None, **kw):
        return DummyResp(402)
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)
    assert charge(gateway()).error == "Payment declined (402)"


def test_unexpected_status_raises(monkeypatch):
    async def fake_post(self, url, json=None, headers=None, **kw):
        return DummyResp(500)
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    with pytest.raises(CollaboratorError) as e:
        charge(gateway())
    assert e.value.code == "UPSTREAM_UNAVAILABLE"


def test_network_error_raises(monkeypatch):
    """Transport errors surface as CollaboratorError with the cause chained."""
    async def fake_post(self, url, json=None, headers=None, **kw):
        raise httpx.ConnectError("boom")
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    with pytest.raises(CollaboratorError) as e:
        charge(gateway())
    assert isinstance(e.value.__cause__, httpx.ConnectError)


def test_correlation_and_idempotency_headers(monkeypatch):
    seen = {}
    async def fake_post(self, url, json=None, headers=None, **kw):
        seen.update(headers)
        return DummyResp(200, {"transaction_id": "tx_1"})
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    with bind_request("req-42"):
        result = charge(gateway(), PaymentContext(idempotency_key="idem-1"))

    assert seen["X-Request-ID"] == "req-42"
    assert seen["Idempotency-Key"] == "idem-1"
    assert seen["X-Circuit-State"] == "CLOSED"
    assert result.payment_id == "tx_1"


def test_no_idempotency_header_without_key(monkeypatch):
    seen = {}
    async def fake_post(self, url, json=None, headers=None, **kw):
        seen.update(headers)
        return DummyResp(200, {"transaction_id": "tx_1"})
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    charge(gateway())
    assert "Idempotency-Key" not in seen
    assert "X-Request-ID" not in seen


def test_circuit_opens_after_threshold(monkeypatch):
    """Once open, the gateway refuses without calling the processor."""
    calls = {"n": 0}
    async def fake_post(self, url, json=None, headers=None, **kw):
        calls["n"] += 1
        return DummyResp(503)
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    gw = gateway(CircuitBreaker("test", 2, 60))
    for _ in range(2):
        with pytest.raises(CollaboratorError):
            charge(gw)

    with pytest.raises(CollaboratorError) as e:
        charge(gw)
    assert e.value.code == "CIRCUIT_OPEN"
    assert calls["n"] == 2


def test_half_open_probe_closes_or_reopens(monkeypatch):
    answers = [DummyResp(500), DummyResp(500), DummyResp(200, {"transaction_id": "tx_1"})]
    async def fake_post(self, url, json=None, headers=None, **kw):
        return answers.pop(0)
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    breaker = CircuitBreaker("test", 1, 0.0)
    gw = gateway(breaker)
    with pytest.raises(CollaboratorError):
        charge(gw)
    assert breaker.state == "HALF_OPEN"

    with pytest.raises(CollaboratorError):
        charge(gw)
    assert breaker.state == "HALF_OPEN"

    assert charge(gw).success is True
    assert breaker.state == "CLOSED"


def test_half_open_allows_a_single_probe():
    breaker = CircuitBreaker("test", 1, 0.0)
    breaker.on_failure()
    assert breaker.before_call() == "HALF_OPEN"
    with pytest.raises(CollaboratorError) as e:
        breaker.before_call()
    assert e.value.code == "CIRCUIT_HALF_OPEN_BUSY"
