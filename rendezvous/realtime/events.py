"""Change feed event and scope models."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from rendezvous.models.message import Message


class ChangeType(str, Enum):
    """Kind of change made to a message row."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """
    A change to one message.

    Delete events carry the row as it was before removal.
    """

    type: ChangeType
    match_id: str
    message: Message

    @property
    def message_id(self) -> str:
        return self.message.id


class FeedScope(BaseModel):
    """What a subscription listens to: one match, or every match of a viewer."""

    kind: Literal["match", "viewer"]
    id: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_match(cls, match_id: str) -> "FeedScope":
        return cls(kind="match", id=match_id)

    @classmethod
    def for_viewer(cls, profile_id: str) -> "FeedScope":
        return cls(kind="viewer", id=profile_id)

    @property
    def channel(self) -> str:
        return f"messages:{self.kind}:{self.id}"
