"""
Donation initiation use-case.

Depends only on the PaymentGateway port; adapters are injected from the
composition root (api/dependencies.py).
"""
from __future__ import annotations

from typing import Callable, Mapping

from application.dtos.donations import CreateCheckout, InitiateDonation, InitiationResult
from application.ports.payment_gateway import (
    PaymentGateway,
    PaymentProviderError,
    PaymentRecoverableError,
    ProcessorRejectedException,
    UnsupportedCorridorError,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DonationsDisabledException,
    ProcessorUnavailableException,
    RecipientNotConfiguredException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.donation.entity import Donation, DonationStatus, PaymentMethod
from domain.donation.service import alternate_processor, select_processor
from shared.codes import BusinessCode


logger = get_logger(__name__)


class DonationService:
    """Creates the pending ledger row and the processor-side checkout."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateways: Mapping[PaymentMethod, PaymentGateway],
        *,
        donations_enabled: bool,
        currency: str = "USD",
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateways
        self._donations_enabled = donations_enabled
        self._currency = currency

    async def initiate(self, req: InitiateDonation, donor_id: str) -> InitiationResult:
        if not self._donations_enabled:
            raise DonationsDisabledException()

        async with self._uow_factory(readonly=True) as uow:
            settings = await uow.user_repository.get_donation_settings(req.recipient_id)
        if settings is None:
            raise RecipientNotConfiguredException(req.recipient_id)

        method = select_processor(settings, req.preferred_processor)
        gateway = self._gateways.get(method)
        if gateway is None:
            logger.error("payment_gateway_missing", processor=method.value)
            raise ProcessorUnavailableException(method.value)

        donation = Donation.start(
            donor_id=donor_id,
            recipient_id=req.recipient_id,
            amount=req.amount,
            payment_method=method,
            message=req.message,
            story_id=req.story_id,
            currency=self._currency,
        )
        # Committed before the outbound call so no transaction spans the network
        async with self._uow_factory() as uow:
            donation = await uow.donation_repository.create(donation)

        metadata = {
            "donation_id": donation.id,
            "donor_id": donor_id,
            "recipient_id": req.recipient_id,
        }
        if req.story_id:
            metadata["story_id"] = req.story_id
        checkout_req = CreateCheckout(
            donation_id=donation.id,
            amount=donation.amount,
            currency=donation.currency,
            payout_destination=settings.payout_destination(method),
            description=f"Donation to {settings.display_name or 'creator'}",
            metadata=metadata,
            idempotency_key=f"donation-{donation.id}",
        )

        logger.info(
            "donation_initiate_request",
            donation_id=donation.id,
            processor=method.value,
            amount=donation.amount,
        )
        try:
            checkout = await gateway.create_checkout(checkout_req)
        except UnsupportedCorridorError as exc:
            await self._mark_failed(donation.id)
            alternate = alternate_processor(settings, method)
            if alternate is None:
                raise ProcessorRejectedException(
                    exc.message,
                    processor=method,
                    donation_id=donation.id,
                    provider_code=exc.provider_code,
                ) from exc
            logger.info(
                "donation_fallback_suggested",
                donation_id=donation.id,
                processor=method.value,
                alternate=alternate.value,
                provider_code=exc.provider_code,
            )
            return InitiationResult(
                processor_type=method,
                donation_id=donation.id,
                fallback_to_alternate=True,
                alternate_processor=alternate,
                alternate_destination=settings.payout_destination(alternate),
                error=exc.message,
            )
        except PaymentRecoverableError:
            # Outcome unknown at the processor: keep the row pending for later reconciliation
            logger.warning("donation_initiate_outcome_unknown", donation_id=donation.id, processor=method.value)
            raise
        except PaymentProviderError as exc:
            await self._mark_failed(donation.id)
            raise ProcessorRejectedException(
                exc.message,
                processor=method,
                donation_id=donation.id,
                provider_code=exc.provider_code,
            ) from exc

        try:
            async with self._uow_factory() as uow:
                await uow.donation_repository.attach_external_id(donation.id, checkout.identifier)
        except Exception as exc:
            # The processor-side checkout exists but the row does not point at it
            logger.error(
                "donation_external_id_attach_failed",
                donation_id=donation.id,
                processor=method.value,
                external_id=checkout.identifier,
                exc_info=True,
            )
            raise BusinessException(
                code=BusinessCode.SERVICE_UNAVAILABLE,
                message="Donation could not be started; please retry later",
                error_type="ServiceUnavailable",
                details={"donation_id": donation.id},
            ) from exc

        logger.info(
            "donation_initiate_response",
            donation_id=donation.id,
            processor=method.value,
            external_id=checkout.identifier,
        )
        return InitiationResult(
            processor_type=method,
            donation_id=donation.id,
            client_artifact=checkout.client_artifact,
        )

    async def _mark_failed(self, donation_id: str) -> None:
        async with self._uow_factory() as uow:
            await uow.donation_repository.transition_from_pending(donation_id, DonationStatus.FAILED)
        logger.info("donation_initiate_failed", donation_id=donation_id)
