"""
User-side views used by the donation gateway.

Users themselves are managed elsewhere; this module only models the
read-only donation settings a recipient has configured.
"""
from dataclasses import dataclass
from typing import Optional

from domain.donation.entity import PaymentMethod


@dataclass(frozen=True)
class DonationSettings:
    """Recipient donation configuration (read at initiation and confirmation time)."""

    user_id: str
    donations_enabled: bool
    donation_method: Optional[PaymentMethod]
    stripe_account_id: Optional[str] = None
    paypal_link: Optional[str] = None
    display_name: Optional[str] = None

    def payout_destination(self, method: PaymentMethod) -> Optional[str]:
        """Stripe connected account id, or the PayPal payee (link/email)."""
        if method is PaymentMethod.STRIPE:
            return self.stripe_account_id or None
        return self.paypal_link or None

    def accepts(self, method: PaymentMethod) -> bool:
        return self.donations_enabled and bool(self.payout_destination(method))
