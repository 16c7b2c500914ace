"""Message model for the Rendezvous engine."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from rendezvous.utils.database import utcnow


class MessageType(str, Enum):
    """Message type enumeration."""

    TEXT = "text"
    LOCATION = "location"


class Message(BaseModel):
    """
    Message model.

    Messages are immutable apart from `read_at`, which is set once when the
    recipient views the conversation.
    """

    id: str
    match_id: str
    sender_id: str
    content: str
    type: MessageType = MessageType.TEXT
    created_at: datetime = Field(default_factory=utcnow)
    read_at: Optional[datetime] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def is_unread_for(self, viewer_id: str) -> bool:
        """Check whether the message counts as unread for a viewer."""
        return self.sender_id != viewer_id and self.read_at is None

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        """Check whether the message is past its retention window."""
        return self.created_at < now - ttl

    def sort_key(self) -> tuple[datetime, str]:
        """Display order: creation time, id as tie-breaker."""
        return (self.created_at, self.id)
