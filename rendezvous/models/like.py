"""Like models for the Rendezvous engine."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rendezvous.models.match import Match
from rendezvous.utils.database import utcnow


class Like(BaseModel):
    """Represents a 'Like' from one profile to another."""

    id: str
    sender_id: str = Field(..., description="ID of the profile performing the like.")
    receiver_id: str = Field(..., description="ID of the profile being liked.")
    created_at: datetime = Field(default_factory=utcnow, description="Timestamp when the like occurred.")

    @model_validator(mode="before")
    @classmethod
    def check_self_like(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        sender_id = values.get("sender_id")
        receiver_id = values.get("receiver_id")
        if sender_id and receiver_id and sender_id == receiver_id:
            raise ValueError("Sender and receiver cannot be the same profile.")
        return values

    @field_validator("sender_id", "receiver_id")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Profile IDs cannot be empty")
        return v

    model_config = ConfigDict(frozen=True)


class LikeResult(BaseModel):
    """Outcome of sending a like."""

    matched: bool
    match: Optional[Match] = None


class LikeStatus(BaseModel):
    """Like and match state between a viewer and another profile."""

    liked: bool
    matched: bool
