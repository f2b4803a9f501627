"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .donation import DonationModel
from .notification import NotificationModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "DonationModel",
    "NotificationModel",
]
