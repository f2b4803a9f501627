"""
Reconciliation of processor confirmations into the donation ledger.

Stripe and PayPal confirmations follow different rules (Stripe may self-heal a
missing row, PayPal never does; PayPal enforces donor ownership, Stripe only
logs a mismatch; PayPal orders are captured before they settle), so each
processor has its own reconciler. Both settle a pending donation with the
conditional ``transition_from_pending`` update, which makes duplicate and
concurrent confirmations harmless.
"""
from __future__ import annotations

from typing import Callable, Optional, Tuple

from application.dtos.donations import (
    ConfirmCharge,
    ConfirmRedirectOrder,
    ConfirmationResult,
    DonationPayload,
)
from application.ports.payment_gateway import (
    CapturingGateway,
    PaymentProviderError,
    ProcessorRejectedException,
)
from application.services.notification_service import DonationNotificationDispatcher
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DonationNotFoundException,
    DonationStateConflictException,
    DonationsDisabledException,
    ProcessorUnavailableException,
    RecipientNotConfiguredException,
    ReconciliationDeferredException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.donation.entity import Donation, DonationStatus, PaymentMethod
from domain.donation.repository import DonationRepository


logger = get_logger(__name__)


class _Reconciler:
    processor: PaymentMethod

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        dispatcher: DonationNotificationDispatcher,
    ) -> None:
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher

    async def _ensure_recipient_accepts(
        self,
        uow: AbstractUnitOfWork,
        req: DonationPayload,
        external_id: str,
    ) -> None:
        settings = await uow.user_repository.get_donation_settings(req.recipient_id)
        if settings is None or not settings.donations_enabled:
            # The donor may already have been charged; someone has to look at this
            logger.error(
                "donation_reconciliation_manual_review",
                processor=self.processor.value,
                external_id=external_id,
                recipient_id=req.recipient_id,
                amount=req.amount,
                reason="recipient_missing" if settings is None else "donations_disabled",
            )
            raise RecipientNotConfiguredException(req.recipient_id)

    async def _settle(self, repo: DonationRepository, donation: Donation) -> Tuple[Donation, bool]:
        """Move a pending donation to its success state; returns (donation, replayed)."""
        if donation.is_terminal:
            logger.info(
                "donation_confirmation_replayed",
                donation_id=donation.id,
                status=donation.status.value,
            )
            return donation, True

        updated = await repo.transition_from_pending(donation.id, donation.success_status)
        if updated is None:
            # A concurrent confirmation won the conditional update
            current = await repo.get_by_id(donation.id)
            return current or donation, True
        return updated, False

    async def _finish(self, donation: Donation, replayed: bool) -> ConfirmationResult:
        if donation.status.is_success:
            await self._dispatcher.dispatch(donation)
        logger.info(
            "donation_confirmed",
            donation_id=donation.id,
            processor=self.processor.value,
            status=donation.status.value,
            replayed=replayed,
        )
        return ConfirmationResult(
            success=donation.status.is_success,
            donation_id=donation.id,
            status=donation.status,
            replayed=replayed,
        )


class StripeChargeReconciler(_Reconciler):
    """Records a client-confirmed Stripe charge."""

    processor = PaymentMethod.STRIPE

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        dispatcher: DonationNotificationDispatcher,
        *,
        donations_enabled: bool,
    ) -> None:
        super().__init__(uow_factory, dispatcher)
        self._donations_enabled = donations_enabled

    async def confirm(self, req: ConfirmCharge, user_id: str) -> ConfirmationResult:
        if not self._donations_enabled:
            raise DonationsDisabledException()

        try:
            async with self._uow_factory() as uow:
                await self._ensure_recipient_accepts(uow, req, req.charge_id)
                repo = uow.donation_repository
                existing = await repo.get_by_stripe_payment_intent_id(req.charge_id)
                if existing is None:
                    donation, replayed = await self._self_heal(repo, req, user_id)
                else:
                    self._check_consistency(existing, req, user_id)
                    if existing.status is DonationStatus.FAILED:
                        self._reject_failed(existing, req)
                    donation, replayed = await self._settle(repo, existing)
        except BusinessException:
            raise
        except Exception as exc:
            logger.error(
                "donation_reconciliation_failed",
                processor=self.processor.value,
                external_id=req.charge_id,
                exc_info=True,
            )
            raise ReconciliationDeferredException(req.charge_id) from exc

        return await self._finish(donation, replayed)

    async def _self_heal(
        self,
        repo: DonationRepository,
        req: ConfirmCharge,
        user_id: str,
    ) -> Tuple[Donation, bool]:
        """No row for this charge: record it straight into the success state."""
        candidate = Donation.confirmed(
            donor_id=user_id,
            recipient_id=req.recipient_id,
            amount=req.amount,
            payment_method=PaymentMethod.STRIPE,
            external_id=req.charge_id,
            message=req.message,
            story_id=req.story_id,
        )
        created = await repo.create_terminal(candidate)
        if created is not None:
            logger.info("donation_self_healed", donation_id=created.id, charge_id=req.charge_id)
            return created, False

        # Unique charge id already taken by a concurrent writer
        winner = await repo.get_by_stripe_payment_intent_id(req.charge_id)
        if winner is None:
            raise ReconciliationDeferredException(req.charge_id)
        if winner.status is DonationStatus.FAILED:
            self._reject_failed(winner, req)
        return winner, True

    @staticmethod
    def _check_consistency(donation: Donation, req: ConfirmCharge, user_id: str) -> None:
        if donation.donor_id != user_id:
            logger.warning(
                "donation_donor_mismatch",
                donation_id=donation.id,
                donor_id=donation.donor_id,
                caller_id=user_id,
            )
        if donation.amount != req.amount or donation.recipient_id != req.recipient_id:
            # Stored values are authoritative; the payload is only logged
            logger.warning(
                "donation_payload_mismatch",
                donation_id=donation.id,
                stored_amount=donation.amount,
                payload_amount=req.amount,
            )

    def _reject_failed(self, donation: Donation, req: ConfirmCharge) -> None:
        """A client-confirmed charge on a failed row: funds may have moved, the ledger says otherwise."""
        logger.error(
            "donation_reconciliation_manual_review",
            processor=self.processor.value,
            external_id=req.charge_id,
            donation_id=donation.id,
            recipient_id=donation.recipient_id,
            amount=donation.amount,
            reason="donation_failed",
        )
        raise DonationStateConflictException(
            donation.id,
            donation.status.value,
            donation.success_status.value,
        )


class PayPalOrderReconciler(_Reconciler):
    """Captures and records a PayPal order the donor returned from approving.

    Approval alone moves no money: a pending order is captured through the
    gateway first, outside any transaction, and only a completed capture
    settles the donation.
    """

    processor = PaymentMethod.PAYPAL

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        dispatcher: DonationNotificationDispatcher,
        gateway: Optional[CapturingGateway] = None,
    ) -> None:
        super().__init__(uow_factory, dispatcher)
        self._gateway = gateway

    async def confirm(self, req: ConfirmRedirectOrder, user_id: str) -> ConfirmationResult:
        try:
            async with self._uow_factory(readonly=True) as uow:
                await self._ensure_recipient_accepts(uow, req, req.order_id)
                existing = await uow.donation_repository.get_by_paypal_order_id(req.order_id)
            existing = self._check_ownership(existing, req, user_id)

            if not existing.is_terminal:
                await self._capture(existing)

            async with self._uow_factory() as uow:
                repo = uow.donation_repository
                current = await repo.get_by_id(existing.id) or existing
                donation, replayed = await self._settle(repo, current)
        except BusinessException:
            raise
        except Exception as exc:
            logger.error(
                "donation_reconciliation_failed",
                processor=self.processor.value,
                external_id=req.order_id,
                exc_info=True,
            )
            raise ReconciliationDeferredException(req.order_id) from exc

        return await self._finish(donation, replayed)

    @staticmethod
    def _check_ownership(existing: Optional[Donation], req: ConfirmRedirectOrder, user_id: str) -> Donation:
        if existing is None or existing.status is DonationStatus.FAILED:
            logger.warning(
                "donation_order_not_found",
                order_id=req.order_id,
                found_status=existing.status.value if existing else None,
            )
            raise DonationNotFoundException(req.order_id)
        if existing.donor_id != user_id:
            logger.warning(
                "donation_donor_mismatch",
                donation_id=existing.id,
                donor_id=existing.donor_id,
                caller_id=user_id,
            )
            raise UnauthorizedException("Donation belongs to another user")
        return existing

    async def _capture(self, donation: Donation) -> None:
        """Capture the approved order; returns only when the capture completed."""
        if self._gateway is None:
            raise ProcessorUnavailableException(self.processor.value)

        try:
            capture = await self._gateway.capture_checkout(
                donation.paypal_order_id,
                idempotency_key=f"capture-{donation.id}",
            )
        except PaymentProviderError as exc:
            # Order stays pending: the donor may approve again with another funding source
            raise ProcessorRejectedException(
                exc.message,
                processor=self.processor,
                donation_id=donation.id,
                provider_code=exc.provider_code,
            ) from exc

        status = DonationStatus(capture.status)
        if status is DonationStatus.FAILED:
            async with self._uow_factory() as uow:
                await uow.donation_repository.transition_from_pending(donation.id, DonationStatus.FAILED)
            logger.warning(
                "donation_capture_declined",
                donation_id=donation.id,
                order_id=donation.paypal_order_id,
                capture_id=capture.capture_id,
            )
            raise ProcessorRejectedException(
                "PayPal declined the payment",
                processor=self.processor,
                donation_id=donation.id,
            )
        if status is not donation.success_status:
            # Capture held by PayPal (e.g. eCheck); the capture webhook settles it later
            logger.info(
                "donation_capture_pending",
                donation_id=donation.id,
                order_id=donation.paypal_order_id,
                capture_id=capture.capture_id,
            )
            raise ReconciliationDeferredException(donation.paypal_order_id)

        logger.info(
            "donation_order_captured",
            donation_id=donation.id,
            order_id=donation.paypal_order_id,
            capture_id=capture.capture_id,
        )
