"""Open conversation for one viewer and one match."""

from typing import Dict, List, Optional, Set

from rendezvous.client.unread import UnreadTracker
from rendezvous.models.match import Match
from rendezvous.models.message import Message
from rendezvous.models.profile import Profile
from rendezvous.realtime import ChangeEvent, ChangeFeed, ChangeType, FeedScope, Subscription
from rendezvous.services.match_service import get_match
from rendezvous.services.message_service import (
    get_messages,
    mark_messages_as_read,
    purge_expired,
    retention_window,
    send_message,
)
from rendezvous.services.moderation_service import get_block_status
from rendezvous.services.profile_service import get_profile
from rendezvous.utils.database import utcnow
from rendezvous.utils.errors import (
    BlockedError,
    InvalidParticipantError,
    NotFoundError,
    RendezvousError,
    SubscriptionError,
)
from rendezvous.utils.logging import get_logger, log_error

logger = get_logger(__name__)


class ConversationView:
    """
    The messages of one match as seen by one participant.

    Holds a match-scoped subscription while open. Messages are keyed by id,
    so repeated or out-of-order events settle to the same list. Deleted ids
    are kept as tombstones and a late insert or update for one is dropped.
    """

    def __init__(
        self,
        match: Match,
        viewer_id: str,
        feed: ChangeFeed,
        tracker: Optional[UnreadTracker] = None,
    ) -> None:
        if not match.has_participant(viewer_id):
            raise InvalidParticipantError(
                "Profile is not part of this match",
                details={"match_id": match.id, "profile_id": viewer_id},
            )
        self.match = match
        self.viewer_id = viewer_id
        self.other_id = match.other_participant(viewer_id)
        self.draft = ""
        self._feed = feed
        self._tracker = tracker
        self._messages: Dict[str, Message] = {}
        self._deleted: Set[str] = set()
        self._profiles: Dict[str, Profile] = {}
        self._subscription: Optional[Subscription] = None

    @classmethod
    async def open_for(
        cls,
        match_id: str,
        viewer_id: str,
        feed: ChangeFeed,
        tracker: Optional[UnreadTracker] = None,
    ) -> "ConversationView":
        """Load a match and open it for a viewer."""
        view = cls(await get_match(match_id), viewer_id, feed, tracker)
        await view.open()
        return view

    @property
    def match_id(self) -> str:
        return self.match.id

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    @property
    def other_profile(self) -> Optional[Profile]:
        """Profile of the other participant, loaded on open."""
        return self._profiles.get(self.other_id)

    def sender_of(self, message: Message) -> Optional[Profile]:
        return self._profiles.get(message.sender_id)

    @property
    def messages(self) -> List[Message]:
        """Unexpired messages in display order."""
        now = utcnow()
        ttl = retention_window()
        visible = [m for m in self._messages.values() if not m.is_expired(now, ttl)]
        return sorted(visible, key=Message.sort_key)

    async def open(self) -> None:
        """Subscribe to the match, then load and read its messages."""
        if self._subscription is None:
            self._subscription = self._feed.subscribe(
                FeedScope.for_match(self.match.id),
                self._on_event,
                on_error=self._on_error,
                viewer_id=self.viewer_id,
            )
            await self._subscription.start()

        await self._load_profiles()

        if self._tracker is not None:
            self._tracker.set_reading(self.match.id)

        await self.reload()
        logger.info("Conversation opened", match_id=self.match.id, viewer_id=self.viewer_id)

    async def _load_profiles(self) -> None:
        for profile_id in self.match.participants:
            try:
                self._profiles[profile_id] = await get_profile(profile_id)
            except NotFoundError:
                logger.warning(
                    "Conversation participant has no profile", match_id=self.match.id, profile_id=profile_id
                )

    async def reload(self) -> None:
        """Replace the local list with the stored conversation."""
        await purge_expired(self.match.id)
        messages = await get_messages(self.match.id)
        self._messages = {message.id: message for message in messages if message.id not in self._deleted}
        await self._mark_read()

    async def send(self, content: Optional[str] = None) -> Message:
        """
        Send a message, the current draft by default.

        The draft is cleared before sending and put back if sending fails.

        Raises:
            BlockedError: If either side has blocked the other.
            EmptyContentError: If the content is blank.
        """
        text = self.draft if content is None else content
        self.draft = ""

        try:
            status = await get_block_status(self.viewer_id, self.other_id)
            if status.is_blocked:
                raise BlockedError(
                    "Messaging is blocked between these profiles",
                    details={
                        "match_id": self.match.id,
                        "blocked_by_me": status.blocked_by_me,
                        "blocked_by_them": status.blocked_by_them,
                    },
                )
            message = await send_message(self.match.id, self.viewer_id, text)
        except RendezvousError as e:
            self.draft = text
            logger.warning("Message not sent", match_id=self.match.id, error=e.message)
            raise

        self._messages[message.id] = message
        return message

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        if self._tracker is not None:
            self._tracker.set_reading(None)
        logger.info("Conversation closed", match_id=self.match.id, viewer_id=self.viewer_id)

    async def _mark_read(self) -> None:
        for message in await mark_messages_as_read(self.match.id, self.viewer_id):
            self._messages[message.id] = message
        if self._tracker is not None:
            self._tracker.clear(self.match.id)

    async def _on_event(self, event: ChangeEvent) -> None:
        message = event.message

        if event.type == ChangeType.DELETE:
            self._deleted.add(message.id)
            self._messages.pop(message.id, None)
            return
        if message.id in self._deleted:
            return

        current = self._messages.get(message.id)
        if current is not None and current.read_at is not None and message.read_at is None:
            # A late insert must not undo a read
            message = message.model_copy(update={"read_at": current.read_at})
        self._messages[message.id] = message

        if event.type == ChangeType.INSERT and message.is_unread_for(self.viewer_id):
            await self._mark_read()

    async def _on_error(self, subscription: Subscription, error: Exception) -> None:
        try:
            await subscription.resubscribe()
        except SubscriptionError as e:
            log_error(logger, e, "Conversation could not resubscribe", extra={"match_id": self.match.id})
            return
        await self.reload()
