"""
Processor selection rules for donations.

Pure functions over the recipient's donation settings: no IO, no hidden state.
Fallback never retries a charge automatically; it only tells the caller which
alternate continuation is available.
"""
from typing import Optional

from domain.common.exceptions import RecipientNotConfiguredException
from domain.user.entity import DonationSettings
from .entity import PaymentMethod


def select_processor(
    settings: DonationSettings,
    preferred: Optional[PaymentMethod] = None,
) -> PaymentMethod:
    """Pick the processor for a new donation to this recipient.

    The recipient's configured method wins unless the caller asks for another
    processor the recipient can also receive through (the fallback re-prompt).
    """
    if not settings.donations_enabled:
        raise RecipientNotConfiguredException(settings.user_id)

    if preferred is not None and settings.accepts(preferred):
        return preferred

    method = settings.donation_method
    if method is None:
        raise RecipientNotConfiguredException(
            settings.user_id, "Recipient has no payment method configured"
        )
    if not settings.accepts(method):
        raise RecipientNotConfiguredException(
            settings.user_id, f"{method.value.title()} not properly configured for this recipient"
        )
    return method


def alternate_processor(
    settings: DonationSettings,
    failed: PaymentMethod,
) -> Optional[PaymentMethod]:
    """The other processor, if the recipient can receive through it."""
    for method in PaymentMethod:
        if method is not failed and settings.accepts(method):
            return method
    return None
