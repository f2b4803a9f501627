"""
Notification repository - SQLAlchemy implementation.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.notification.entity import Notification, NotificationType
from domain.notification.repository import NotificationRepository
from infrastructure.models.notification import NotificationModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyNotificationRepository(NotificationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            user_id=model.user_id,
            type=NotificationType(model.type),
            title=model.title,
            message=model.message,
            content=model.extra_content or {},
            actor_id=model.actor_id,
            donation_id=model.donation_id,
            read=model.read,
            created_at=model.created_at,
        )

    def _to_model(self, entity: Notification) -> NotificationModel:
        return NotificationModel(
            id=entity.id,
            user_id=entity.user_id,
            type=entity.type.value,
            title=entity.title,
            message=entity.message,
            extra_content=entity.content,
            actor_id=entity.actor_id,
            donation_id=entity.donation_id,
            read=entity.read,
            created_at=entity.created_at,
        )

    async def get_donation_notification(self, recipient_id: str, donation_id: str) -> Optional[Notification]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.user_id == recipient_id,
                NotificationModel.type == NotificationType.DONATION.value,
                NotificationModel.donation_id == donation_id,
            )
        )
        db_notification = result.scalars().first()
        return self._to_entity(db_notification) if db_notification else None

    async def create(self, notification: Notification) -> Optional[Notification]:
        try:
            async with self.session.begin_nested():
                db_notification = self._to_model(notification)
                self.session.add(db_notification)
                await self.session.flush()
        except IntegrityError:
            logger.info(
                "notification_already_exists",
                user_id=notification.user_id,
                donation_id=notification.donation_id,
            )
            return None
        await self.session.refresh(db_notification)
        return self._to_entity(db_notification)
