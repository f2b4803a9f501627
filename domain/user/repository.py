"""
User lookup interface for the donation gateway (read-only).
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import DonationSettings


class UserRepository(ABC):
    """Read access to the users table owned by the profile service."""

    @abstractmethod
    async def get_donation_settings(self, user_id: str) -> Optional[DonationSettings]:
        """Recipient's donation configuration, or None if the user does not exist."""
        pass

    @abstractmethod
    async def get_display_name(self, user_id: str) -> Optional[str]:
        """Username, falling back to the full name."""
        pass
