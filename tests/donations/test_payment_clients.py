import hashlib
import hmac
import json
import time

import httpx
import pytest
import stripe

from application.dtos.donations import CreateCheckout
from application.ports.payment_gateway import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
    UnsupportedCorridorError,
)
from core.settings import PaymentSettings
from domain.donation.entity import PaymentMethod
from infrastructure.external.payments.paypal_client import PayPalClient, format_amount
from infrastructure.external.payments.stripe_client import StripeClient


WEBHOOK_SECRET = "whsec_test"


def _settings(**overrides):
    fields = dict(
        retry={"max": 0, "base_backoff": 0.0},
        stripe={"secret_key": "sk_test_123", "webhook_secret": WEBHOOK_SECRET},
        paypal={"client_id": "client", "client_secret": "secret", "webhook_id": "WH-ID"},
    )
    fields.update(overrides)
    return PaymentSettings(**fields)


def _checkout(destination, **overrides):
    fields = dict(
        donation_id="don-1",
        amount=500,
        payout_destination=destination,
        metadata={"donation_id": "don-1", "donor_id": "donor-1", "recipient_id": "recipient-1"},
        idempotency_key="donation-don-1",
    )
    fields.update(overrides)
    return CreateCheckout(**fields)


# --- Stripe ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_stripe_checkout_creates_destination_charge(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return {"id": "pi_123", "client_secret": "pi_123_secret_abc", "status": "requires_payment_method"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    client = StripeClient(_settings())

    result = await client.create_checkout(_checkout("acct_123"))

    assert result.processor is PaymentMethod.STRIPE
    assert result.identifier == "pi_123"
    assert result.client_artifact == "pi_123_secret_abc"
    assert result.status == "pending"
    assert captured["amount"] == 500
    assert captured["currency"] == "usd"
    assert captured["transfer_data"] == {"destination": "acct_123"}
    assert captured["metadata"]["donation_id"] == "don-1"
    assert captured["idempotency_key"] == "donation-don-1"


@pytest.mark.asyncio
async def test_stripe_corridor_error_is_unsupported_corridor(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.InvalidRequestError(
            "Funds can't be sent to accounts located in XX",
            "transfer_data[destination]",
            code="transfers_not_allowed",
        )

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    with pytest.raises(UnsupportedCorridorError) as exc:
        await StripeClient(_settings()).create_checkout(_checkout("acct_xx"))
    assert exc.value.provider_code == "transfers_not_allowed"


@pytest.mark.asyncio
async def test_stripe_decline_is_provider_error(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.InvalidRequestError("No such destination", "transfer_data[destination]", code="resource_missing")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    with pytest.raises(PaymentProviderError) as exc:
        await StripeClient(_settings()).create_checkout(_checkout("acct_gone"))
    assert not isinstance(exc.value, UnsupportedCorridorError)
    assert exc.value.provider_code == "resource_missing"


@pytest.mark.asyncio
async def test_stripe_connection_error_is_recoverable(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.APIConnectionError("connection reset")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    with pytest.raises(PaymentRecoverableError):
        await StripeClient(_settings()).create_checkout(_checkout("acct_123"))


def test_stripe_client_requires_secret_key():
    with pytest.raises(RuntimeError):
        StripeClient(_settings(stripe={}))


def _stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    ts = int(timestamp if timestamp is not None else time.time())
    digest = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


@pytest.mark.asyncio
async def test_stripe_webhook_signature_is_verified():
    payload = json.dumps({
        "id": "evt_1",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_123"}},
    })
    client = StripeClient(_settings())

    event = await client.parse_webhook({"stripe-signature": _stripe_signature(payload)}, payload.encode())

    assert event.id == "evt_1"
    assert event.type == "payment_intent.succeeded"
    assert event.data["object"]["id"] == "pi_123"


@pytest.mark.asyncio
async def test_stripe_webhook_rejects_bad_signatures():
    payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded", "data": {}})
    client = StripeClient(_settings())

    with pytest.raises(PaymentSignatureError):
        await client.parse_webhook({"Stripe-Signature": _stripe_signature(payload, secret="whsec_other")}, payload.encode())
    with pytest.raises(PaymentSignatureError):
        stale = _stripe_signature(payload, timestamp=time.time() - 3600)
        await client.parse_webhook({"Stripe-Signature": stale}, payload.encode())
    with pytest.raises(PaymentSignatureError):
        await client.parse_webhook({}, payload.encode())


# --- PayPal ---------------------------------------------------------------


def _captured_order(capture_status):
    return {
        "id": "ORDER-1",
        "status": "COMPLETED",
        "purchase_units": [
            {"payments": {"captures": [{"id": "CAPTURE-9", "status": capture_status}]}},
        ],
    }


class PayPalStub:
    """Routes requests to canned PayPal responses and records them."""

    def __init__(self, order_response=None, verification_status="SUCCESS", capture_response=None, order_status="COMPLETED"):
        self.requests: list[httpx.Request] = []
        self.capture_response = capture_response or httpx.Response(201, json=_captured_order("COMPLETED"))
        self.order_status = order_status
        self.order_response = order_response or httpx.Response(
            201,
            json={
                "id": "ORDER-1",
                "status": "CREATED",
                "links": [
                    {"rel": "self", "href": "https://api-m.sandbox.paypal.com/v2/checkout/orders/ORDER-1"},
                    {"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1"},
                ],
            },
        )
        self.verification_status = verification_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token", "expires_in": 32400})
        if request.url.path == "/v2/checkout/orders":
            return self.order_response
        if request.url.path == "/v2/checkout/orders/ORDER-1/capture" and request.method == "POST":
            return self.capture_response
        if request.url.path == "/v2/checkout/orders/ORDER-1" and request.method == "GET":
            return httpx.Response(200, json=_captured_order(self.order_status))
        if request.url.path == "/v1/notifications/verify-webhook-signature":
            return httpx.Response(200, json={"verification_status": self.verification_status})
        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

    def paths(self):
        return [r.url.path for r in self.requests]


def _paypal(stub):
    return PayPalClient(_settings(), transport=httpx.MockTransport(stub))


def test_format_amount():
    assert format_amount(500) == "5.00"
    assert format_amount(1) == "0.01"
    assert format_amount(123456) == "1234.56"


@pytest.mark.asyncio
async def test_paypal_checkout_creates_order_for_payee():
    stub = PayPalStub()
    client = _paypal(stub)

    result = await client.create_checkout(_checkout("bob@example.com"))

    assert result.processor is PaymentMethod.PAYPAL
    assert result.identifier == "ORDER-1"
    assert result.client_artifact == "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1"

    order_request = stub.requests[-1]
    assert order_request.headers["Authorization"] == "Bearer A21-token"
    assert order_request.headers["PayPal-Request-Id"] == "donation-don-1"
    body = json.loads(order_request.content)
    assert body["intent"] == "CAPTURE"
    unit = body["purchase_units"][0]
    assert unit["amount"] == {"currency_code": "USD", "value": "5.00"}
    assert unit["payee"] == {"email_address": "bob@example.com"}
    assert unit["custom_id"] == "don-1"
    await client.aclose()


@pytest.mark.asyncio
async def test_paypal_access_token_is_cached():
    stub = PayPalStub()
    client = _paypal(stub)

    await client.create_checkout(_checkout("MERCHANT123"))
    await client.create_checkout(_checkout("MERCHANT123"))

    assert stub.paths().count("/v1/oauth2/token") == 1
    assert stub.paths().count("/v2/checkout/orders") == 2
    assert json.loads(stub.requests[-1].content)["purchase_units"][0]["payee"] == {"merchant_id": "MERCHANT123"}
    await client.aclose()


@pytest.mark.asyncio
async def test_paypal_restricted_payee_is_unsupported_corridor():
    stub = PayPalStub(order_response=httpx.Response(
        422,
        json={
            "name": "UNPROCESSABLE_ENTITY",
            "message": "The requested action could not be performed.",
            "debug_id": "abc123",
            "details": [{"issue": "PAYEE_ACCOUNT_RESTRICTED"}],
        },
    ))

    with pytest.raises(UnsupportedCorridorError) as exc:
        await _paypal(stub).create_checkout(_checkout("bob@example.com"))
    assert exc.value.provider_code == "PAYEE_ACCOUNT_RESTRICTED"


@pytest.mark.asyncio
async def test_paypal_other_failure_is_provider_error():
    stub = PayPalStub(order_response=httpx.Response(
        400,
        json={"name": "INVALID_REQUEST", "details": [{"issue": "INVALID_PARAMETER_VALUE"}]},
    ))

    with pytest.raises(PaymentProviderError) as exc:
        await _paypal(stub).create_checkout(_checkout("bob@example.com"))
    assert not isinstance(exc.value, UnsupportedCorridorError)
    assert exc.value.provider_code == "INVALID_PARAMETER_VALUE"


@pytest.mark.asyncio
async def test_paypal_timeout_is_recoverable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = PayPalClient(_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(PaymentRecoverableError):
        await client.create_checkout(_checkout("bob@example.com"))


def _paypal_webhook_headers():
    return {
        "PAYPAL-AUTH-ALGO": "SHA256withRSA",
        "PAYPAL-CERT-URL": "https://api.sandbox.paypal.com/v1/notifications/certs/CERT-1",
        "PAYPAL-TRANSMISSION-ID": "tx-1",
        "PAYPAL-TRANSMISSION-SIG": "sig",
        "PAYPAL-TRANSMISSION-TIME": "2026-10-18T09:00:00Z",
    }


@pytest.mark.asyncio
async def test_paypal_webhook_is_verified_remotely():
    stub = PayPalStub()
    body = json.dumps({
        "id": "WH-EVT-1",
        "event_type": "PAYMENT.CAPTURE.COMPLETED",
        "resource": {"id": "CAPTURE-1", "supplementary_data": {"related_ids": {"order_id": "ORDER-1"}}},
    }).encode()

    event = await _paypal(stub).parse_webhook(_paypal_webhook_headers(), body)

    assert event.id == "WH-EVT-1"
    assert event.type == "PAYMENT.CAPTURE.COMPLETED"
    assert event.data["resource"]["id"] == "CAPTURE-1"
    verify = json.loads(stub.requests[-1].content)
    assert verify["webhook_id"] == "WH-ID"
    assert verify["transmission_id"] == "tx-1"


@pytest.mark.asyncio
async def test_paypal_webhook_rejects_failed_verification():
    stub = PayPalStub(verification_status="FAILURE")
    body = json.dumps({"id": "WH-EVT-1", "event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": {}}).encode()

    with pytest.raises(PaymentSignatureError):
        await _paypal(stub).parse_webhook(_paypal_webhook_headers(), body)
    with pytest.raises(PaymentSignatureError):
        await _paypal(PayPalStub()).parse_webhook({}, body)


@pytest.mark.asyncio
async def test_paypal_capture_completes_order():
    stub = PayPalStub()

    result = await _paypal(stub).capture_checkout("ORDER-1", idempotency_key="capture-don-1")

    assert result.processor is PaymentMethod.PAYPAL
    assert result.identifier == "ORDER-1"
    assert result.status == "succeeded"
    assert result.capture_id == "CAPTURE-9"
    capture_request = stub.requests[-1]
    assert capture_request.url.path == "/v2/checkout/orders/ORDER-1/capture"
    assert capture_request.headers["PayPal-Request-Id"] == "capture-don-1"


@pytest.mark.asyncio
async def test_paypal_capture_of_captured_order_reads_it_back():
    stub = PayPalStub(
        capture_response=httpx.Response(
            422,
            json={
                "name": "UNPROCESSABLE_ENTITY",
                "details": [{"issue": "ORDER_ALREADY_CAPTURED"}],
                "debug_id": "dbg-2",
            },
        ),
    )

    result = await _paypal(stub).capture_checkout("ORDER-1")

    assert result.status == "succeeded"
    assert result.capture_id == "CAPTURE-9"
    assert stub.paths()[-2:] == ["/v2/checkout/orders/ORDER-1/capture", "/v2/checkout/orders/ORDER-1"]


@pytest.mark.asyncio
async def test_paypal_capture_status_follows_the_capture():
    declined = await _paypal(
        PayPalStub(capture_response=httpx.Response(201, json=_captured_order("DECLINED")))
    ).capture_checkout("ORDER-1")
    held = await _paypal(
        PayPalStub(capture_response=httpx.Response(201, json=_captured_order("PENDING")))
    ).capture_checkout("ORDER-1")

    assert declined.status == "failed"
    assert held.status == "pending"


@pytest.mark.asyncio
async def test_paypal_capture_failure_is_provider_error():
    stub = PayPalStub(
        capture_response=httpx.Response(
            422,
            json={"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "INSTRUMENT_DECLINED"}]},
        ),
    )

    with pytest.raises(PaymentProviderError) as exc_info:
        await _paypal(stub).capture_checkout("ORDER-1")

    assert exc_info.value.provider_code == "INSTRUMENT_DECLINED"

def test_provider_status_mapping():
    from infrastructure.external.payments.base import BasePaymentClient

    class _MapClient(BasePaymentClient):
        provider = "stripe"

    c = _MapClient()
    assert c._map_status("succeeded") == "collected"
    assert c._map_status("processing") == "pending"
    assert c._map_status("canceled") == "failed"
    assert c._map_status("something_new") == "pending"
