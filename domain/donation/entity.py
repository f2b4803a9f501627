"""
Donation domain entity - the ledger record of one transfer attempt.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    DonationStateConflictException,
)


MESSAGE_MAX_LENGTH = 500


class DonationStatus(str, Enum):
    """Donation lifecycle: pending -> {collected | succeeded, failed}."""
    PENDING = "pending"
    COLLECTED = "collected"    # Stripe success label
    SUCCEEDED = "succeeded"    # PayPal success label
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DonationStatus.PENDING

    @property
    def is_success(self) -> bool:
        return self in (DonationStatus.COLLECTED, DonationStatus.SUCCEEDED)


class PaymentMethod(str, Enum):
    STRIPE = "STRIPE"
    PAYPAL = "PAYPAL"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["PaymentMethod"]:
        """Lenient parse: the users table historically stored lowercase values."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


# Terminal success label per processor; both mean "funds confirmed".
SUCCESS_STATUS = {
    PaymentMethod.STRIPE: DonationStatus.COLLECTED,
    PaymentMethod.PAYPAL: DonationStatus.SUCCEEDED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Donation:
    """
    Donation aggregate.

    Rules:
    1. amount is a positive integer in minor units and never changes
    2. at most one of stripe_payment_intent_id / paypal_order_id is set,
       and it never changes once set
    3. status only leaves pending, never returns to it
    """

    id: str
    donor_id: str
    recipient_id: str
    amount: int
    payment_method: PaymentMethod
    status: DonationStatus = DonationStatus.PENDING
    currency: str = "USD"
    message: Optional[str] = None
    story_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    paypal_order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self._validate_parties()
        self._validate_amount()
        self._validate_message()
        self._validate_external_ids()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def _validate_parties(self) -> None:
        if not self.donor_id:
            raise DomainValidationException("donor_id is required", field="donor_id")
        if not self.recipient_id:
            raise DomainValidationException("recipient_id is required", field="recipient_id")

    def _validate_amount(self) -> None:
        # bool is an int subclass; reject it explicitly
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise DomainValidationException(
                "Amount must be an integer (in cents)", field="amount"
            )
        if self.amount <= 0:
            raise DomainValidationException(
                f"Amount must be positive: {self.amount}", field="amount"
            )

    def _validate_message(self) -> None:
        if self.message is not None and len(self.message) > MESSAGE_MAX_LENGTH:
            raise DomainValidationException(
                f"Message must be at most {MESSAGE_MAX_LENGTH} characters",
                field="message",
            )

    def _validate_external_ids(self) -> None:
        if self.stripe_payment_intent_id and self.paypal_order_id:
            raise DomainValidationException(
                "Only one processor identifier may be set",
                field="external_id",
            )
        if self.payment_method is PaymentMethod.STRIPE and self.paypal_order_id:
            raise DomainValidationException("Stripe donation cannot carry a PayPal order id", field="paypal_order_id")
        if self.payment_method is PaymentMethod.PAYPAL and self.stripe_payment_intent_id:
            raise DomainValidationException("PayPal donation cannot carry a Stripe intent id", field="stripe_payment_intent_id")

    @classmethod
    def start(
        cls,
        *,
        donor_id: str,
        recipient_id: str,
        amount: int,
        payment_method: PaymentMethod,
        message: Optional[str] = None,
        story_id: Optional[str] = None,
        currency: str = "USD",
    ) -> "Donation":
        """New pending donation for one initiation attempt."""
        now = _utcnow()
        return cls(
            id=str(uuid.uuid4()),
            donor_id=donor_id,
            recipient_id=recipient_id,
            amount=amount,
            payment_method=payment_method,
            status=DonationStatus.PENDING,
            currency=currency.upper(),
            message=message or None,
            story_id=story_id or None,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def confirmed(
        cls,
        *,
        donor_id: str,
        recipient_id: str,
        amount: int,
        payment_method: PaymentMethod,
        external_id: str,
        message: Optional[str] = None,
        story_id: Optional[str] = None,
        currency: str = "USD",
    ) -> "Donation":
        """Donation recorded directly in its success state (charge already verified)."""
        donation = cls.start(
            donor_id=donor_id,
            recipient_id=recipient_id,
            amount=amount,
            payment_method=payment_method,
            message=message,
            story_id=story_id,
            currency=currency,
        )
        donation.attach_external_id(external_id)
        donation.status = SUCCESS_STATUS[payment_method]
        return donation

    @property
    def external_id(self) -> Optional[str]:
        if self.payment_method is PaymentMethod.STRIPE:
            return self.stripe_payment_intent_id
        return self.paypal_order_id

    @property
    def success_status(self) -> DonationStatus:
        return SUCCESS_STATUS[self.payment_method]

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def attach_external_id(self, external_id: str) -> None:
        """Set the processor identifier once; re-setting the same value is a no-op."""
        if not external_id:
            raise DomainValidationException("external id is required", field="external_id")
        current = self.external_id
        if current == external_id:
            return
        if current is not None:
            raise DomainValidationException(
                "Processor identifier is already set",
                field="external_id",
                details={"donation_id": self.id, "current": current},
            )
        if self.payment_method is PaymentMethod.STRIPE:
            self.stripe_payment_intent_id = external_id
        else:
            self.paypal_order_id = external_id

    def mark_succeeded(self) -> None:
        if self.status is not DonationStatus.PENDING:
            raise DonationStateConflictException(self.id, self.status.value, self.success_status.value)
        self.status = self.success_status
        self.updated_at = _utcnow()

    def mark_failed(self) -> None:
        if self.status is not DonationStatus.PENDING:
            raise DonationStateConflictException(self.id, self.status.value, DonationStatus.FAILED.value)
        self.status = DonationStatus.FAILED
        self.updated_at = _utcnow()
