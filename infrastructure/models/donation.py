"""
Donation ORM model.
Note: infrastructure detail; business rules live in domain.donation.entity.Donation
"""
from sqlalchemy import (
    CheckConstraint, Column, Integer, String, DateTime, Text, Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class DonationModel(Base):
    """
    Donation ledger table.

    One row per transfer attempt. Rows are never deleted.
    """
    __tablename__ = "donations"

    id = Column(String(36), primary_key=True, comment="Donation ID (uuid4)")

    donor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True, comment="Donor user ID")
    recipient_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True, comment="Recipient user ID")

    # Minor units (cents); the exact amount the processor charged
    amount = Column(Integer, nullable=False, comment="Amount in cents")
    currency = Column(String(3), nullable=False, default="USD", comment="ISO-4217 currency")
    message = Column(Text, nullable=True, comment="Donor message")
    story_id = Column(String(36), nullable=True, index=True, comment="Story the donation is attached to")

    payment_method = Column(String(20), nullable=False, comment="STRIPE/PAYPAL")
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/collected/succeeded/failed",
    )

    # Processor identifiers; uniqueness is what makes confirmation idempotent
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=True, comment="Stripe PaymentIntent id")
    paypal_order_id = Column(String(255), unique=True, nullable=True, comment="PayPal order id")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_donations_amount_positive"),
        Index("ix_donations_recipient_status", "recipient_id", "status"),
        Index("ix_donations_donor_created", "donor_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<DonationModel(id='{self.id}', method='{self.payment_method}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
