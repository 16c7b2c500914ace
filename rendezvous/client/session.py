"""Per-viewer session state."""

from types import TracebackType
from typing import Optional, Type

from rendezvous.client.conversation import ConversationView
from rendezvous.client.unread import UnreadTracker
from rendezvous.models.like import LikeResult
from rendezvous.models.message import Message
from rendezvous.models.profile import Profile
from rendezvous.realtime import ChangeFeed, get_change_feed
from rendezvous.services import like_service
from rendezvous.services.profile_service import get_active_profile
from rendezvous.utils.errors import NotFoundError
from rendezvous.utils.logging import bind_viewer, get_logger, unbind_viewer

logger = get_logger(__name__)


class ViewerSession:
    """
    Everything one logged-in profile has open.

    A session owns the viewer's unread tracker for its whole life and at
    most one open conversation at a time.

    Example:
        async with await ViewerSession.login(profile_id) as session:
            view = await session.open_conversation(match_id)
            await view.send("Hello")
    """

    def __init__(self, profile: Profile, feed: ChangeFeed) -> None:
        self.profile = profile
        self.feed = feed
        self.tracker = UnreadTracker(profile.id, feed)
        self.conversation: Optional[ConversationView] = None
        self._closed = False

    @property
    def viewer_id(self) -> str:
        return self.profile.id

    @classmethod
    async def login(cls, profile_id: str, feed: Optional[ChangeFeed] = None) -> "ViewerSession":
        """
        Start a session: load the profile, then seed and start unread tracking.

        Raises:
            NotFoundError: If the profile is missing or deactivated.
        """
        profile = await get_active_profile(profile_id)
        session = cls(profile, feed or get_change_feed())

        bind_viewer(profile.id)
        await session.tracker.seed()
        await session.tracker.start()
        logger.info("Viewer logged in", unread=session.tracker.total())
        return session

    async def open_conversation(self, match_id: str) -> ConversationView:
        """Open a match, closing whatever conversation was open before."""
        await self.close_conversation()
        self.conversation = await ConversationView.open_for(match_id, self.viewer_id, self.feed, self.tracker)
        return self.conversation

    async def close_conversation(self) -> None:
        if self.conversation is None:
            return
        view, self.conversation = self.conversation, None
        await view.close()

    async def send_message(self, content: Optional[str] = None) -> Message:
        """
        Send in the open conversation.

        Raises:
            NotFoundError: If no conversation is open.
            BlockedError: If either side has blocked the other.
        """
        if self.conversation is None:
            raise NotFoundError("No conversation is open", details={"viewer_id": self.viewer_id})
        return await self.conversation.send(content)

    async def send_like(self, receiver_id: str) -> LikeResult:
        return await like_service.send_like(self.viewer_id, receiver_id)

    def unread_count(self, match_id: Optional[str] = None) -> int:
        if match_id is None:
            return self.tracker.total()
        return self.tracker.count(match_id)

    async def logout(self) -> None:
        """Close the open conversation and stop unread tracking."""
        if self._closed:
            return
        self._closed = True
        await self.close_conversation()
        await self.tracker.stop()
        logger.info("Viewer logged out")
        unbind_viewer()

    async def __aenter__(self) -> "ViewerSession":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.logout()
