"""
Notification repository interface.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Notification


class NotificationRepository(ABC):

    @abstractmethod
    async def get_donation_notification(self, recipient_id: str, donation_id: str) -> Optional[Notification]:
        """Existing donation notification for this donation, if any."""
        pass

    @abstractmethod
    async def create(self, notification: Notification) -> Optional[Notification]:
        """Insert a notification.

        Returns None when the (user, type, donation) uniqueness constraint
        reports that an equivalent notification already exists.
        """
        pass
