"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Charges are destination charges: the PaymentIntent carries
``transfer_data.destination`` so funds settle on the recipient's connected
account. The SDK is synchronous, so calls run in a worker thread under the
configured total deadline. Webhook verification uses the ``Stripe-Signature``
header.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import stripe

from application.dtos.donations import CheckoutResult, CreateCheckout, WebhookEvent
from application.ports.payment_gateway import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
    UnsupportedCorridorError,
)
from core.settings import PaymentSettings, payment_settings
from core.logging_config import get_logger
from domain.donation.entity import PaymentMethod
from infrastructure.external.payments.base import BasePaymentClient
from shared.codes.payment_codes import STRIPE_UNSUPPORTED_CORRIDOR_CODES


logger = get_logger(__name__)


class StripeClient(BasePaymentClient):
    provider = "stripe"
    processor = PaymentMethod.STRIPE

    def __init__(self, settings: Optional[PaymentSettings] = None):
        cfg = settings or payment_settings
        super().__init__(
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
        )
        if not cfg.stripe.secret_key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        self._webhook_secret = cfg.stripe.webhook_secret
        self._tolerance = cfg.webhook.tolerance_seconds
        stripe.api_key = cfg.stripe.secret_key
        if cfg.stripe.api_version:
            stripe.api_version = cfg.stripe.api_version
        # Safe with idempotency keys: the SDK replays the same request
        stripe.max_network_retries = cfg.retry.max

    def _translate(self, exc: Exception) -> Exception:
        if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError)):
            return PaymentRecoverableError(
                str(exc) or "Stripe temporarily unavailable",
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
            )
        code = getattr(exc, "code", None)
        message = getattr(exc, "user_message", None) or str(exc)
        if code in STRIPE_UNSUPPORTED_CORRIDOR_CODES:
            return UnsupportedCorridorError(message, provider=self.provider, provider_code=code)
        return PaymentProviderError(message, provider=self.provider, provider_code=code)

    async def create_charge(
        self,
        amount: int,
        payout_destination: str,
        metadata: dict[str, str],
        *,
        currency: str = "usd",
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """Create a destination PaymentIntent; returns charge_id, client_secret, status."""

        def _create():
            return stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                transfer_data={"destination": payout_destination},
                metadata=metadata,
                description=description,
                idempotency_key=idempotency_key,
            )

        try:
            pi = await self._bounded("create_charge", lambda: asyncio.to_thread(_create))
        except stripe.StripeError as exc:
            translated = self._translate(exc)
            logger.warning(
                "stripe_create_charge_failed",
                error_type=type(translated).__name__,
                provider_code=getattr(exc, "code", None),
                donation_id=metadata.get("donation_id"),
            )
            raise translated from exc

        client_secret = pi.get("client_secret")
        if not client_secret:
            raise PaymentProviderError("Stripe returned no client secret", provider=self.provider)
        self._log("stripe_charge_created", charge_id=pi["id"], amount=amount)
        return {
            "charge_id": str(pi["id"]),
            "client_secret": str(client_secret),
            "status": self._map_status(str(pi.get("status") or "")),
        }

    async def create_checkout(self, req: CreateCheckout) -> CheckoutResult:
        charge = await self.create_charge(
            req.amount,
            req.payout_destination,
            req.metadata,
            currency=req.currency,
            description=req.description,
            idempotency_key=req.idempotency_key,
        )
        return CheckoutResult(
            processor=self.processor,
            identifier=charge["charge_id"],
            client_artifact=charge["client_secret"],
            status=charge["status"],
        )

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        if not self._webhook_secret:
            raise PaymentSignatureError("Missing PAYMENT__STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = self._header(headers, "Stripe-Signature")
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        payload = body.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(payload, sig, self._webhook_secret, self._tolerance)
            event = json.loads(payload)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc
        return WebhookEvent(
            id=str(event.get("id")),
            type=str(event.get("type")),
            provider=self.provider,
            data=event.get("data", {}) or {},
            raw_headers=headers,
            raw_body=body,
        )
