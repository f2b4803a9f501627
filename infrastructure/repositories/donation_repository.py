"""
Donation repository - SQLAlchemy implementation of the donation ledger.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import DomainValidationException
from domain.donation.entity import Donation, DonationStatus, PaymentMethod
from domain.donation.repository import DonationRepository
from infrastructure.models.donation import DonationModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyDonationRepository(DonationRepository):
    """Donation ledger backed by the donations table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DonationModel) -> Donation:
        return Donation(
            id=model.id,
            donor_id=model.donor_id,
            recipient_id=model.recipient_id,
            amount=model.amount,
            payment_method=PaymentMethod(model.payment_method),
            status=DonationStatus(model.status),
            currency=model.currency,
            message=model.message,
            story_id=model.story_id,
            stripe_payment_intent_id=model.stripe_payment_intent_id,
            paypal_order_id=model.paypal_order_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Donation) -> DonationModel:
        return DonationModel(
            id=entity.id,
            donor_id=entity.donor_id,
            recipient_id=entity.recipient_id,
            amount=entity.amount,
            currency=entity.currency,
            message=entity.message,
            story_id=entity.story_id,
            payment_method=entity.payment_method.value,
            status=entity.status.value,
            stripe_payment_intent_id=entity.stripe_payment_intent_id,
            paypal_order_id=entity.paypal_order_id,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def _fetch_one(self, *criteria) -> Optional[Donation]:
        result = await self.session.execute(
            select(DonationModel)
            .where(*criteria)
            .execution_options(populate_existing=True)
        )
        db_donation = result.scalar_one_or_none()
        return self._to_entity(db_donation) if db_donation else None

    async def create(self, donation: Donation) -> Donation:
        db_donation = self._to_model(donation)
        self.session.add(db_donation)
        await self.session.flush()
        await self.session.refresh(db_donation)
        logger.info(
            "donation_created",
            donation_id=db_donation.id,
            payment_method=db_donation.payment_method,
            amount=db_donation.amount,
            status=db_donation.status,
        )
        return self._to_entity(db_donation)

    async def get_by_id(self, donation_id: str) -> Optional[Donation]:
        return await self._fetch_one(DonationModel.id == donation_id)

    async def get_by_stripe_payment_intent_id(self, payment_intent_id: str) -> Optional[Donation]:
        return await self._fetch_one(DonationModel.stripe_payment_intent_id == payment_intent_id)

    async def get_by_paypal_order_id(self, order_id: str) -> Optional[Donation]:
        return await self._fetch_one(DonationModel.paypal_order_id == order_id)

    async def attach_external_id(self, donation_id: str, external_id: str) -> Donation:
        donation = await self.get_by_id(donation_id)
        if donation is None:
            raise ValueError(f"Donation with id {donation_id} not found")

        # Entity enforces set-once semantics before touching the row
        donation.attach_external_id(external_id)
        column = (
            DonationModel.stripe_payment_intent_id
            if donation.payment_method is PaymentMethod.STRIPE
            else DonationModel.paypal_order_id
        )
        result = await self.session.execute(
            update(DonationModel)
            .where(DonationModel.id == donation_id, column.is_(None))
            .values({column.key: external_id, "updated_at": datetime.now(timezone.utc)})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get_by_id(donation_id)
            if current is None or current.external_id != external_id:
                raise DomainValidationException(
                    "Processor identifier is already set",
                    field="external_id",
                    details={"donation_id": donation_id},
                )
            return current

        logger.info("donation_external_id_attached", donation_id=donation_id, external_id=external_id)
        return await self.get_by_id(donation_id)

    async def transition_from_pending(
        self,
        donation_id: str,
        target: DonationStatus,
    ) -> Optional[Donation]:
        if target is DonationStatus.PENDING:
            raise ValueError("target status must be terminal")

        # Conditional update: the WHERE status='pending' clause is the compare-and-set
        result = await self.session.execute(
            update(DonationModel)
            .where(
                DonationModel.id == donation_id,
                DonationModel.status == DonationStatus.PENDING.value,
            )
            .values(status=target.value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "donation_transition_skipped",
                donation_id=donation_id,
                target=target.value,
            )
            return None

        logger.info("donation_transitioned", donation_id=donation_id, status=target.value)
        return await self.get_by_id(donation_id)

    async def create_terminal(self, donation: Donation) -> Optional[Donation]:
        if not donation.is_terminal:
            raise ValueError("create_terminal expects a terminal donation")
        try:
            # Savepoint keeps the surrounding transaction usable on conflict
            async with self.session.begin_nested():
                db_donation = self._to_model(donation)
                self.session.add(db_donation)
                await self.session.flush()
        except IntegrityError:
            logger.warning(
                "donation_create_conflict",
                donation_id=donation.id,
                external_id=donation.external_id,
            )
            return None

        await self.session.refresh(db_donation)
        logger.info(
            "donation_created",
            donation_id=db_donation.id,
            payment_method=db_donation.payment_method,
            amount=db_donation.amount,
            status=db_donation.status,
        )
        return self._to_entity(db_donation)
