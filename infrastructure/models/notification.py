"""
Notification ORM model.
"""
from sqlalchemy import (
    Boolean, Column, String, DateTime, Text, JSON, Index, ForeignKey, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True, comment="Recipient user ID")
    type = Column(String(30), nullable=False, comment="Notification type")
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)

    # Stored as "content"; extra_content avoids shadowing declarative attributes
    extra_content = Column("content", JSON, nullable=True, comment="Structured payload")

    actor_id = Column(String(36), ForeignKey("users.id"), nullable=True, comment="User who triggered it")
    donation_id = Column(String(36), ForeignKey("donations.id"), nullable=True, comment="Related donation")
    read = Column(Boolean, default=False, nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        # At most one notification of a type per donation and recipient
        UniqueConstraint("user_id", "type", "donation_id", name="uq_notifications_user_type_donation"),
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    def __repr__(self):
        return f"<NotificationModel(id='{self.id}', user_id='{self.user_id}', type='{self.type}')>"
