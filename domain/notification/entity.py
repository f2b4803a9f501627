"""
Notification entity (donation notifications only).
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class NotificationType(str, Enum):
    DONATION = "donation"


@dataclass
class Notification:
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    content: dict[str, Any] = field(default_factory=dict)
    actor_id: Optional[str] = None
    donation_id: Optional[str] = None
    read: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def for_donation(
        cls,
        *,
        recipient_id: str,
        actor_id: str,
        actor_name: str,
        donation_id: str,
        amount: int,
        message: Optional[str] = None,
        story_id: Optional[str] = None,
    ) -> "Notification":
        formatted = f"{amount / 100:.2f}"
        if story_id:
            text = f"{actor_name} donated ${formatted} to your story"
        else:
            text = f"{actor_name} donated ${formatted} to support your work"
        return cls(
            id=str(uuid.uuid4()),
            user_id=recipient_id,
            type=NotificationType.DONATION,
            title="New Donation Received!",
            message=text,
            content={
                "donationId": donation_id,
                "amount": amount,
                "message": message,
                "storyId": story_id,
            },
            actor_id=actor_id,
            donation_id=donation_id,
            created_at=datetime.now(timezone.utc),
        )
