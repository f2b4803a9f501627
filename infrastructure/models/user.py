"""
User ORM model.

The users table is owned by the profile service; the donation gateway only
reads the donation-related columns.
"""
from sqlalchemy import Column, String, Boolean, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, comment="User ID")

    username = Column(String(50), unique=True, index=True, nullable=True, comment="Username")
    name = Column(String(100), nullable=True, comment="Display name")

    # Donation configuration
    donation_method = Column(String(20), nullable=True, comment="Preferred processor: STRIPE/PAYPAL")
    stripe_account_id = Column(String(100), nullable=True, comment="Stripe connected account id")
    paypal_link = Column(String(255), nullable=True, comment="PayPal payee email or paypal.me link")
    donations_enabled = Column(Boolean, default=False, nullable=False, comment="Accepts donations")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<UserModel(id='{self.id}', username='{self.username}')>"
