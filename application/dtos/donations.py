"""
Donation DTOs (Pydantic v2) used at application boundaries.

Field names are snake_case in Python and camelCase on the wire.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator
from pydantic.alias_generators import to_camel

from domain.donation.entity import MESSAGE_MAX_LENGTH, DonationStatus, PaymentMethod


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DonationPayload(_WireModel):
    recipient_id: str = Field(min_length=1)
    amount: StrictInt = Field(gt=0, description="Amount in minor units (cents)")
    message: Optional[str] = Field(default=None, max_length=MESSAGE_MAX_LENGTH)
    story_id: Optional[str] = None

    @field_validator("message", "story_id")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class InitiateDonation(DonationPayload):
    preferred_processor: Optional[PaymentMethod] = None

    @field_validator("preferred_processor", mode="before")
    @classmethod
    def _upper_processor(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class ConfirmCharge(DonationPayload):
    charge_id: str = Field(min_length=1, description="Stripe PaymentIntent id")


class ConfirmRedirectOrder(DonationPayload):
    order_id: str = Field(min_length=1, description="PayPal order id")


class InitiationResult(_WireModel):
    processor_type: PaymentMethod
    donation_id: str
    client_artifact: Optional[str] = None
    fallback_to_alternate: bool = False
    alternate_processor: Optional[PaymentMethod] = None
    # Payout destination the client needs to continue with the alternate processor
    alternate_destination: Optional[str] = None
    error: Optional[str] = None


class ConfirmationResult(_WireModel):
    success: bool
    donation_id: str
    status: DonationStatus
    replayed: bool = False


class CreateCheckout(BaseModel):
    """Outbound request handed to a processor adapter."""
    donation_id: str
    amount: int = Field(gt=0)
    currency: str = "USD"
    payout_destination: str
    description: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None


class CheckoutResult(BaseModel):
    """Uniform adapter result: identifier plus client secret or redirect URL."""
    processor: PaymentMethod
    identifier: str
    client_artifact: str
    status: str = "pending"


class CaptureResult(BaseModel):
    """Outcome of capturing an approved redirect order."""
    processor: PaymentMethod
    identifier: str
    status: str = "pending"
    capture_id: Optional[str] = None


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class WebhookAck(_WireModel):
    event_id: str
    event_type: str
    handled: bool
    donation_id: Optional[str] = None
    status: Optional[DonationStatus] = None
