"""
Processor webhook intake.

Verified events move pending donations with the same conditional update the
reconcilers use. A miss on the external id falls back to the donation id sent
with the checkout (Stripe metadata, PayPal custom_id). Webhooks never create
donations: an event for an unknown charge or order is acknowledged and logged
only.
"""
from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from application.dtos.donations import WebhookAck, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.services.notification_service import DonationNotificationDispatcher
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.donation.entity import Donation, DonationStatus, PaymentMethod
from domain.donation.repository import DonationRepository
from shared.codes import BusinessCode


logger = get_logger(__name__)

STRIPE_EVENTS = {
    "payment_intent.succeeded": DonationStatus.COLLECTED,
    "payment_intent.payment_failed": DonationStatus.FAILED,
}

PAYPAL_EVENTS = {
    "PAYMENT.CAPTURE.COMPLETED": DonationStatus.SUCCEEDED,
    "PAYMENT.CAPTURE.DENIED": DonationStatus.FAILED,
}


def paypal_order_id(resource: dict[str, Any]) -> Optional[str]:
    """Order id of a capture resource (related_ids first, legacy parent_payment second)."""
    related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
    return related.get("order_id") or resource.get("parent_payment")


class PaymentWebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateways: Mapping[PaymentMethod, PaymentGateway],
        dispatcher: DonationNotificationDispatcher,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateways
        self._dispatcher = dispatcher

    async def handle(self, provider: str, headers: dict[str, Any], body: bytes) -> WebhookAck:
        method = PaymentMethod.parse(provider)
        gateway = self._gateways.get(method) if method else None
        if gateway is None:
            raise BusinessException(
                code=BusinessCode.NOT_FOUND,
                message=f"Unsupported payment provider: {provider}",
                error_type="NotFound",
            )

        event = await gateway.parse_webhook(headers, body)
        logger.info("payment_webhook_parsed", provider=event.provider, event_type=event.type, event_id=event.id)

        if method is PaymentMethod.STRIPE:
            obj = event.data.get("object") or {}
            target = STRIPE_EVENTS.get(event.type)
            external_id = obj.get("id")
            donation_hint = (obj.get("metadata") or {}).get("donation_id")
        else:
            resource = event.data.get("resource") or {}
            target = PAYPAL_EVENTS.get(event.type)
            external_id = paypal_order_id(resource)
            donation_hint = resource.get("custom_id")

        if target is None or not external_id:
            logger.info("payment_webhook_ignored", provider=event.provider, event_type=event.type, event_id=event.id)
            return WebhookAck(event_id=event.id, event_type=event.type, handled=False)

        return await self._apply(event, method, external_id, target, donation_hint)

    async def _apply(
        self,
        event: WebhookEvent,
        method: PaymentMethod,
        external_id: str,
        target: DonationStatus,
        donation_hint: Optional[str] = None,
    ) -> WebhookAck:
        transitioned = None
        async with self._uow_factory() as uow:
            repo = uow.donation_repository
            if method is PaymentMethod.STRIPE:
                donation = await repo.get_by_stripe_payment_intent_id(external_id)
            else:
                donation = await repo.get_by_paypal_order_id(external_id)
            if donation is None and donation_hint:
                donation = await self._correlate(repo, method, external_id, donation_hint)

            if donation is None:
                logger.info(
                    "payment_webhook_donation_unknown",
                    provider=event.provider,
                    event_type=event.type,
                    external_id=external_id,
                )
                return WebhookAck(event_id=event.id, event_type=event.type, handled=True)

            if not donation.is_terminal:
                transitioned = await repo.transition_from_pending(donation.id, target)
            current = transitioned or await repo.get_by_id(donation.id) or donation

        if transitioned is not None and transitioned.status.is_success:
            await self._dispatcher.dispatch(transitioned)

        logger.info(
            "payment_webhook_applied",
            provider=event.provider,
            event_type=event.type,
            donation_id=current.id,
            status=current.status.value,
            transitioned=transitioned is not None,
        )
        return WebhookAck(
            event_id=event.id,
            event_type=event.type,
            handled=True,
            donation_id=current.id,
            status=current.status,
        )

    @staticmethod
    async def _correlate(
        repo: DonationRepository,
        method: PaymentMethod,
        external_id: str,
        donation_id: str,
    ) -> Optional[Donation]:
        """Find the donation through the id sent with the checkout and record its external id.

        Covers initiations whose outcome was unknown (timeout) and whose row
        never received the processor identifier.
        """
        candidate = await repo.get_by_id(donation_id)
        if candidate is None or candidate.payment_method is not method:
            return None
        if candidate.external_id is not None and candidate.external_id != external_id:
            logger.warning(
                "payment_webhook_correlation_mismatch",
                donation_id=donation_id,
                stored_external_id=candidate.external_id,
                external_id=external_id,
            )
            return None
        if candidate.external_id is None:
            candidate = await repo.attach_external_id(candidate.id, external_id)
            logger.info("payment_webhook_external_id_recovered", donation_id=donation_id, external_id=external_id)
        return candidate
