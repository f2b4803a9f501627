"""Unit of Work abstraction."""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.donation.repository import DonationRepository
from domain.notification.repository import NotificationRepository
from domain.user.repository import UserRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary for application services."""

    donation_repository: DonationRepository
    notification_repository: NotificationRepository
    user_repository: UserRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.donation_repository = None  # type: ignore[assignment]
        self.notification_repository = None  # type: ignore[assignment]
        self.user_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # Auto-commit only for writable units that were not committed explicitly
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
