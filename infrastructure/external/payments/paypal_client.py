"""
PayPal Orders v2 adapter over httpx.

Authentication is OAuth2 client-credentials; the access token is cached until
shortly before it expires. Orders are created with the recipient as payee and
the donation id as ``custom_id``; the donor is redirected to the ``approve``
link and the approved order is captured once they return. Webhooks are
verified through PayPal's verify-webhook-signature API.
"""
from __future__ import annotations

import json
import time
from typing import Any, Optional

import httpx

from application.dtos.donations import CaptureResult, CheckoutResult, CreateCheckout, WebhookEvent
from application.ports.payment_gateway import (
    PaymentProviderError,
    PaymentSignatureError,
    UnsupportedCorridorError,
)
from core.settings import PaymentSettings, payment_settings
from core.logging_config import get_logger
from domain.donation.entity import PaymentMethod
from infrastructure.external.payments.base import BasePaymentClient
from shared.codes.payment_codes import PAYPAL_ORDER_ALREADY_CAPTURED, PAYPAL_UNSUPPORTED_CORRIDOR_ISSUES


logger = get_logger(__name__)

# Refresh the cached token this many seconds before PayPal says it expires
_TOKEN_REFRESH_MARGIN = 60

_WEBHOOK_HEADERS = {
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "cert_url": "PAYPAL-CERT-URL",
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
}


def format_amount(amount: int) -> str:
    """Minor units to the decimal string PayPal expects (500 -> "5.00")."""
    return f"{amount // 100}.{amount % 100:02d}"


class PayPalClient(BasePaymentClient):
    provider = "paypal"
    processor = PaymentMethod.PAYPAL

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings or payment_settings
        super().__init__(
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            base_url=cfg.paypal.gateway.rstrip("/"),
            transport=transport,
        )
        if not cfg.paypal.client_id or not cfg.paypal.client_secret:
            raise RuntimeError("PAYMENT__PAYPAL__CLIENT_ID / CLIENT_SECRET not configured")
        self._cfg = cfg.paypal
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        async def _fetch() -> httpx.Response:
            async with self.client() as c:
                return await c.post(
                    "/v1/oauth2/token",
                    auth=(self._cfg.client_id, self._cfg.client_secret),
                    data={"grant_type": "client_credentials"},
                    headers={"Accept": "application/json"},
                )

        resp = await self._bounded("oauth_token", _fetch)
        if resp.status_code != 200:
            logger.error("paypal_auth_failed", status_code=resp.status_code)
            raise PaymentProviderError(
                "Failed to authenticate with PayPal",
                provider=self.provider,
                provider_code=str(resp.status_code),
            )
        data = resp.json()
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in", 0))
        self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_REFRESH_MARGIN, 0)
        return self._access_token

    async def _post_json(self, operation: str, path: str, payload: dict[str, Any], *, request_id: Optional[str] = None) -> httpx.Response:
        token = await self._get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if request_id:
            # PayPal's idempotency header
            headers["PayPal-Request-Id"] = request_id

        async def _send() -> httpx.Response:
            async with self.client() as c:
                return await c.post(path, json=payload, headers=headers)

        return await self._bounded(operation, _send)

    def _translate_error(self, resp: httpx.Response) -> PaymentProviderError:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        details = body.get("details") or []
        issues = [d.get("issue") for d in details if isinstance(d, dict) and d.get("issue")]
        debug_id = body.get("debug_id")
        message = body.get("message") or f"PayPal request failed with HTTP {resp.status_code}"
        for issue in issues:
            if issue in PAYPAL_UNSUPPORTED_CORRIDOR_ISSUES:
                return UnsupportedCorridorError(
                    message,
                    provider=self.provider,
                    provider_code=issue,
                    details={"debug_id": debug_id},
                )
        return PaymentProviderError(
            message,
            provider=self.provider,
            provider_code=issues[0] if issues else body.get("name"),
            details={"debug_id": debug_id, "http_status": resp.status_code},
        )

    @staticmethod
    def _payee(payout_destination: str) -> dict[str, str]:
        if "@" in payout_destination:
            return {"email_address": payout_destination}
        return {"merchant_id": payout_destination}

    async def create_order(
        self,
        payout_destination: str,
        amount: int,
        metadata: dict[str, str],
        *,
        currency: str = "USD",
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, str]:
        """Create a CAPTURE order paying ``payout_destination``; returns order_id and redirect_url."""
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {"currency_code": currency.upper(), "value": format_amount(amount)},
                    "payee": self._payee(payout_destination),
                    "custom_id": metadata.get("donation_id", ""),
                    "description": description or "Donation",
                }
            ],
            "application_context": {
                "brand_name": self._cfg.brand_name,
                "user_action": "PAY_NOW",
                "shipping_preference": "NO_SHIPPING",
                "return_url": self._cfg.return_url,
                "cancel_url": self._cfg.cancel_url,
            },
        }
        resp = await self._post_json("create_order", "/v2/checkout/orders", payload, request_id=idempotency_key)
        if resp.status_code not in (200, 201):
            err = self._translate_error(resp)
            logger.warning(
                "paypal_create_order_failed",
                error_type=type(err).__name__,
                provider_code=err.provider_code,
                donation_id=metadata.get("donation_id"),
            )
            raise err

        data = resp.json()
        approve = next(
            (link.get("href") for link in data.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        if not data.get("id") or not approve:
            raise PaymentProviderError("PayPal order response missing id or approve link", provider=self.provider)
        self._log("paypal_order_created", order_id=data["id"], amount=amount)
        return {
            "order_id": str(data["id"]),
            "redirect_url": str(approve),
            "status": self._map_status(str(data.get("status") or "")),
        }

    async def create_checkout(self, req: CreateCheckout) -> CheckoutResult:
        order = await self.create_order(
            req.payout_destination,
            req.amount,
            req.metadata,
            currency=req.currency,
            description=req.description,
            idempotency_key=req.idempotency_key,
        )
        return CheckoutResult(
            processor=self.processor,
            identifier=order["order_id"],
            client_artifact=order["redirect_url"],
            status=order["status"],
        )

    async def _get_json(self, operation: str, path: str) -> httpx.Response:
        token = await self._get_access_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

        async def _send() -> httpx.Response:
            async with self.client() as c:
                return await c.get(path, headers=headers)

        return await self._bounded(operation, _send)

    @staticmethod
    def _first_capture(data: dict[str, Any]) -> dict[str, Any]:
        for unit in data.get("purchase_units") or []:
            captures = (unit.get("payments") or {}).get("captures") or []
            if captures:
                return captures[0]
        return {}

    def _capture_status(self, data: dict[str, Any]) -> str:
        # The capture status is authoritative; an order can be COMPLETED with a PENDING capture
        capture = self._first_capture(data)
        return self._map_status(str(capture.get("status") or data.get("status") or ""))

    async def get_order(self, order_id: str) -> dict[str, Any]:
        """Current order state: order_id, status (ledger label), capture_id."""
        resp = await self._get_json("get_order", f"/v2/checkout/orders/{order_id}")
        if resp.status_code != 200:
            raise self._translate_error(resp)
        data = resp.json()
        return {
            "order_id": str(data.get("id") or order_id),
            "status": self._capture_status(data),
            "capture_id": self._first_capture(data).get("id"),
        }

    async def capture_order(self, order_id: str, *, idempotency_key: Optional[str] = None) -> dict[str, Any]:
        """Capture an approved order; an already captured order is read back instead."""
        resp = await self._post_json(
            "capture_order",
            f"/v2/checkout/orders/{order_id}/capture",
            {},
            request_id=idempotency_key,
        )
        if resp.status_code not in (200, 201):
            err = self._translate_error(resp)
            if err.provider_code == PAYPAL_ORDER_ALREADY_CAPTURED:
                self._log("paypal_order_already_captured", order_id=order_id)
                return await self.get_order(order_id)
            logger.warning(
                "paypal_capture_order_failed",
                error_type=type(err).__name__,
                provider_code=err.provider_code,
                order_id=order_id,
            )
            raise err

        data = resp.json()
        result = {
            "order_id": str(data.get("id") or order_id),
            "status": self._capture_status(data),
            "capture_id": self._first_capture(data).get("id"),
        }
        self._log("paypal_order_captured", order_id=order_id, status=result["status"], capture_id=result["capture_id"])
        return result

    async def capture_checkout(self, identifier: str, *, idempotency_key: Optional[str] = None) -> CaptureResult:
        captured = await self.capture_order(identifier, idempotency_key=idempotency_key)
        return CaptureResult(
            processor=self.processor,
            identifier=captured["order_id"],
            status=captured["status"],
            capture_id=captured["capture_id"],
        )

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        if not self._cfg.webhook_id:
            raise PaymentSignatureError("Missing PAYMENT__PAYPAL__WEBHOOK_ID", provider=self.provider)
        try:
            event = json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise PaymentSignatureError("Invalid webhook payload", provider=self.provider) from exc

        verification = {"webhook_id": self._cfg.webhook_id, "webhook_event": event}
        for field, header in _WEBHOOK_HEADERS.items():
            value = self._header(headers, header)
            if not value:
                raise PaymentSignatureError(f"Missing {header} header", provider=self.provider)
            verification[field] = value

        resp = await self._post_json(
            "verify_webhook",
            "/v1/notifications/verify-webhook-signature",
            verification,
        )
        if resp.status_code != 200 or resp.json().get("verification_status") != "SUCCESS":
            logger.warning("paypal_webhook_verification_failed", status_code=resp.status_code)
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)

        return WebhookEvent(
            id=str(event.get("id")),
            type=str(event.get("event_type")),
            provider=self.provider,
            data={"resource": event.get("resource") or {}},
            raw_headers=headers,
            raw_body=body,
        )
