"""
Donation notification dispatcher.

Best effort: a failure here must never undo or fail a confirmed donation.
"""
from __future__ import annotations

from typing import Callable

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.donation.entity import Donation
from domain.notification.entity import Notification


logger = get_logger(__name__)


class DonationNotificationDispatcher:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def dispatch(self, donation: Donation) -> bool:
        """Notify the recipient about a successful donation.

        Returns True when a notification was written, False when it already
        existed, the donation is not a success, or dispatch failed.
        """
        if not donation.status.is_success:
            return False
        try:
            async with self._uow_factory() as uow:
                repo = uow.notification_repository
                existing = await repo.get_donation_notification(donation.recipient_id, donation.id)
                if existing is not None:
                    logger.info("donation_notification_exists", donation_id=donation.id)
                    return False

                actor_name = await uow.user_repository.get_display_name(donation.donor_id) or "Someone"
                notification = Notification.for_donation(
                    recipient_id=donation.recipient_id,
                    actor_id=donation.donor_id,
                    actor_name=actor_name,
                    donation_id=donation.id,
                    amount=donation.amount,
                    message=donation.message,
                    story_id=donation.story_id,
                )
                created = await repo.create(notification)
        except Exception as exc:
            logger.error(
                "donation_notification_failed",
                donation_id=donation.id,
                recipient_id=donation.recipient_id,
                error=str(exc),
                exc_info=True,
            )
            return False

        if created is None:
            # Lost the insert race to a concurrent confirmation
            return False
        logger.info(
            "donation_notification_sent",
            donation_id=donation.id,
            recipient_id=donation.recipient_id,
            notification_id=created.id,
        )
        return True
