"""Models package for the Rendezvous engine."""

from rendezvous.models.like import Like, LikeResult, LikeStatus
from rendezvous.models.match import Match, MatchSummary, make_pair_key
from rendezvous.models.message import Message, MessageType
from rendezvous.models.moderation import Block, BlockStatus, Report, ReportReason
from rendezvous.models.profile import Profile

__all__ = [
    "Block",
    "BlockStatus",
    "Like",
    "LikeResult",
    "LikeStatus",
    "Match",
    "MatchSummary",
    "Message",
    "MessageType",
    "Profile",
    "Report",
    "ReportReason",
    "make_pair_key",
]
