"""Live unread counts for one viewer."""

from collections import OrderedDict, defaultdict
from typing import Dict, Optional, Set

from rendezvous.realtime import ChangeEvent, ChangeFeed, ChangeType, FeedScope, Subscription
from rendezvous.services.message_service import get_unread_messages
from rendezvous.utils.errors import SubscriptionError
from rendezvous.utils.logging import get_logger, log_error

logger = get_logger(__name__)

# How many read or deleted message ids a tracker remembers
SETTLED_LIMIT = 1000


class UnreadTracker:
    """
    Per-match unread message sets for a viewer.

    Counts are kept as sets of message ids, so a message delivered twice by
    the feed is only counted once. Ids already seen as read or deleted are
    remembered, so an insert that arrives after its own read (another tab
    read it first) is not counted. `seed` resets everything to the stored
    state; live events adjust it between seeds.
    """

    def __init__(self, viewer_id: str, feed: ChangeFeed) -> None:
        self.viewer_id = viewer_id
        self._feed = feed
        self._unread: Dict[str, Set[str]] = defaultdict(set)
        self._reading: Optional[str] = None
        self._settled: "OrderedDict[str, None]" = OrderedDict()
        self._subscription: Optional[Subscription] = None

    async def seed(self) -> Dict[str, int]:
        """Replace the live counts with the stored ones."""
        messages = await get_unread_messages(self.viewer_id)

        self._unread = defaultdict(set)
        for message in messages:
            if message.match_id == self._reading:
                continue
            self._unread[message.match_id].add(message.id)

        counts = self.counts()
        logger.debug("Unread counts seeded", viewer_id=self.viewer_id, total=self.total())
        return counts

    def increment(self, match_id: str, message_id: str) -> None:
        self._unread[match_id].add(message_id)

    def discard(self, match_id: str, message_id: str) -> None:
        unread = self._unread.get(match_id)
        if unread is None:
            return
        unread.discard(message_id)
        if not unread:
            del self._unread[match_id]

    def settle(self, match_id: str, message_id: str) -> None:
        """Drop a message that was read or deleted and ignore any later insert of it."""
        self._settled[message_id] = None
        self._settled.move_to_end(message_id)
        while len(self._settled) > SETTLED_LIMIT:
            self._settled.popitem(last=False)
        self.discard(match_id, message_id)

    def clear(self, match_id: str) -> None:
        self._unread.pop(match_id, None)

    def count(self, match_id: str) -> int:
        return len(self._unread.get(match_id, ()))

    def total(self) -> int:
        return sum(len(unread) for unread in self._unread.values())

    def counts(self) -> Dict[str, int]:
        return {match_id: len(unread) for match_id, unread in self._unread.items() if unread}

    def set_reading(self, match_id: Optional[str]) -> None:
        """Mark the conversation currently on screen; its inserts are not counted."""
        self._reading = match_id
        if match_id is not None:
            self.clear(match_id)

    @property
    def is_listening(self) -> bool:
        return self._subscription is not None and self._subscription.is_active

    async def start(self) -> None:
        """Subscribe to the viewer's changes across all matches."""
        if self._subscription is not None:
            return
        self._subscription = self._feed.subscribe(
            FeedScope.for_viewer(self.viewer_id),
            self._on_event,
            on_error=self._on_error,
            viewer_id=self.viewer_id,
        )
        await self._subscription.start()
        logger.info("Unread tracker started", viewer_id=self.viewer_id)

    async def stop(self) -> None:
        if self._subscription is None:
            return
        await self._subscription.close()
        self._subscription = None
        logger.info("Unread tracker stopped", viewer_id=self.viewer_id)

    async def _on_event(self, event: ChangeEvent) -> None:
        message = event.message

        if event.type == ChangeType.INSERT:
            if message.sender_id == self.viewer_id or event.match_id == self._reading:
                return
            if message.id in self._settled:
                return
            if message.read_at is None:
                self.increment(event.match_id, message.id)
        elif event.type == ChangeType.UPDATE:
            if message.read_at is not None:
                self.settle(event.match_id, message.id)
        elif event.type == ChangeType.DELETE:
            self.settle(event.match_id, message.id)

    async def _on_error(self, subscription: Subscription, error: Exception) -> None:
        try:
            await subscription.resubscribe()
        except SubscriptionError as e:
            log_error(logger, e, "Unread tracker could not resubscribe", extra={"viewer_id": self.viewer_id})
            return
        # Events published while detached are gone
        await self.seed()
