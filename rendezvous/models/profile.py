"""Profile model for the Rendezvous engine."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from rendezvous.utils.database import utcnow


class Profile(BaseModel):
    """
    Profile model.

    The public identity of a person on the platform. Profiles are never
    deleted; they are deactivated through `is_active`.
    """

    id: str
    display_name: str
    avatar_url: Optional[str] = None
    city: Optional[str] = None
    is_premium: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
