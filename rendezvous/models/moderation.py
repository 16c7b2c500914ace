"""Block and report models for the Rendezvous engine."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from rendezvous.utils.database import utcnow


class ReportReason(str, Enum):
    """Reasons a profile can be reported for."""

    INAPPROPRIATE_CONTENT = "inappropriate_content"
    HARASSMENT = "harassment"
    SPAM = "spam"
    FAKE_PROFILE = "fake_profile"
    UNDERAGE = "underage"
    OTHER = "other"


class Block(BaseModel):
    """A one-directional block."""

    id: str
    blocker_id: str
    blocked_id: str
    created_at: datetime = Field(default_factory=utcnow)


class BlockStatus(BaseModel):
    """Block state between a viewer and another profile, in both directions."""

    blocked_by_me: bool = False
    blocked_by_them: bool = False

    @property
    def is_blocked(self) -> bool:
        return self.blocked_by_me or self.blocked_by_them


class Report(BaseModel):
    """A report filed against a profile."""

    id: str
    reporter_id: str
    reported_id: str
    reason: ReportReason
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
