"""
User repository - read-only SQLAlchemy access to donation settings.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.donation.entity import PaymentMethod
from domain.user.entity import DonationSettings
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_settings(self, model: UserModel) -> DonationSettings:
        method = PaymentMethod.parse(model.donation_method)
        if model.donation_method and method is None:
            logger.warning(
                "unknown_donation_method",
                user_id=model.id,
                donation_method=model.donation_method,
            )
        return DonationSettings(
            user_id=model.id,
            donations_enabled=bool(model.donations_enabled),
            donation_method=method,
            stripe_account_id=model.stripe_account_id,
            paypal_link=model.paypal_link,
            display_name=model.username or model.name,
        )

    async def _get(self, user_id: str) -> Optional[UserModel]:
        result = await self.session.execute(select(UserModel).where(UserModel.id == user_id))
        return result.scalar_one_or_none()

    async def get_donation_settings(self, user_id: str) -> Optional[DonationSettings]:
        db_user = await self._get(user_id)
        return self._to_settings(db_user) if db_user else None

    async def get_display_name(self, user_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(UserModel.username, UserModel.name).where(UserModel.id == user_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return row.username or row.name
