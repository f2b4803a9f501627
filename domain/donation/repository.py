"""
Donation repository interface - the narrow contract of the donation ledger.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Donation, DonationStatus


class DonationRepository(ABC):
    """Donation ledger. Donations are permanent records: there is no delete."""

    @abstractmethod
    async def create(self, donation: Donation) -> Donation:
        """Insert a new donation row."""
        pass

    @abstractmethod
    async def get_by_id(self, donation_id: str) -> Optional[Donation]:
        pass

    @abstractmethod
    async def get_by_stripe_payment_intent_id(self, payment_intent_id: str) -> Optional[Donation]:
        pass

    @abstractmethod
    async def get_by_paypal_order_id(self, order_id: str) -> Optional[Donation]:
        pass

    @abstractmethod
    async def attach_external_id(self, donation_id: str, external_id: str) -> Donation:
        """Populate the processor identifier column if it is still empty.

        Raises DomainValidationException if a different identifier is already set.
        """
        pass

    @abstractmethod
    async def transition_from_pending(
        self,
        donation_id: str,
        target: DonationStatus,
    ) -> Optional[Donation]:
        """Atomically move a pending donation to ``target``.

        Returns the updated donation, or None when the row was no longer
        pending (another writer got there first).
        """
        pass

    @abstractmethod
    async def create_terminal(self, donation: Donation) -> Optional[Donation]:
        """Insert an already-terminal donation.

        Returns None if the unique processor identifier already exists.
        """
        pass
