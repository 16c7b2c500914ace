"""Match models for the Rendezvous engine."""

from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, Field

from rendezvous.models.message import Message
from rendezvous.models.profile import Profile
from rendezvous.utils.database import utcnow


def make_pair_key(profile_a: str, profile_b: str) -> str:
    """Key identifying an unordered pair of profiles."""
    first, second = sorted((profile_a, profile_b))
    return f"{first}:{second}"


class Match(BaseModel):
    """
    Match model.

    A symmetric relationship between two profiles that liked each other.
    `user1_id` is the profile whose like completed the pair; lookups must
    not depend on which side is which.
    """

    id: str
    user1_id: str
    user2_id: str
    pair_key: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    def model_post_init(self, __context: object) -> None:
        if not self.pair_key:
            self.pair_key = make_pair_key(self.user1_id, self.user2_id)

    @property
    def participants(self) -> Tuple[str, str]:
        return (self.user1_id, self.user2_id)

    def has_participant(self, profile_id: str) -> bool:
        """Check whether a profile is one of the two sides of the match."""
        return profile_id in self.participants

    def other_participant(self, profile_id: str) -> str:
        """
        Get the profile on the other side of the match.

        Args:
            profile_id (str): One of the participants.

        Returns:
            str: The other participant's profile ID.

        Raises:
            ValueError: If `profile_id` is not a participant.
        """
        if profile_id == self.user1_id:
            return self.user2_id
        if profile_id == self.user2_id:
            return self.user1_id
        raise ValueError(f"Profile {profile_id} is not part of match {self.id}")


class MatchSummary(BaseModel):
    """
    Match list entry.

    Read-side view of a match for one viewer: the other participant's
    profile, the latest message and the viewer's unread count.
    """

    match: Match
    other_profile: Profile
    last_message: Optional[Message] = None
    unread_count: int = 0
