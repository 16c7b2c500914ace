"""Change feed abstraction and subscription lifecycle."""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional

import sentry_sdk

from rendezvous.realtime.events import ChangeEvent, FeedScope
from rendezvous.utils.errors import SubscriptionError
from rendezvous.utils.logging import get_logger, log_error

logger = get_logger(__name__)

EventHandler = Callable[[ChangeEvent], Awaitable[None]]
ErrorHandler = Callable[["Subscription", Exception], Awaitable[None]]


class SubscriptionState(str, Enum):
    """Lifecycle of a subscription."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"
    CLOSED = "closed"


class Subscription:
    """
    A registration of one handler on one feed scope.

    The scope and viewer are fixed when the subscription is created, so a
    handler never sees ids that changed after it was registered. Events are
    only delivered while the subscription is ACTIVE. Nothing published while
    the subscription is not ACTIVE is replayed; consumers re-fetch instead.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        scope: FeedScope,
        handler: EventHandler,
        on_error: Optional[ErrorHandler] = None,
        viewer_id: Optional[str] = None,
    ) -> None:
        self._feed = feed
        self._scope = scope
        self._viewer_id = viewer_id
        self._handler = handler
        self._on_error = on_error
        self.state = SubscriptionState.UNSUBSCRIBED
        self.last_error: Optional[Exception] = None

    @property
    def scope(self) -> FeedScope:
        return self._scope

    @property
    def viewer_id(self) -> Optional[str]:
        return self._viewer_id

    @property
    def is_active(self) -> bool:
        return self.state == SubscriptionState.ACTIVE

    async def start(self) -> None:
        """
        Attach to the feed.

        Raises:
            SubscriptionError: If the subscription is not new or the feed refuses it.
        """
        if self.state != SubscriptionState.UNSUBSCRIBED:
            raise SubscriptionError(
                "Subscription already started", details={"channel": self._scope.channel, "state": self.state.value}
            )

        self.state = SubscriptionState.SUBSCRIBING
        try:
            await self._feed._attach(self)
        except Exception as e:
            self.state = SubscriptionState.ERROR
            self.last_error = e
            logger.warning("Subscription failed", channel=self._scope.channel, error=str(e))
            raise SubscriptionError("Failed to subscribe", details={"channel": self._scope.channel}) from e

        self.state = SubscriptionState.ACTIVE
        logger.debug("Subscription active", channel=self._scope.channel, viewer_id=self._viewer_id)

    async def resubscribe(self, attempts: int = 3, backoff: float = 0.5) -> None:
        """
        Attach again after an error or a close.

        Args:
            attempts (int): How many times to try before giving up.
            backoff (float): Seconds to wait after the first failure, doubled each retry.

        Raises:
            SubscriptionError: If every attempt failed.
        """
        if self.state not in (SubscriptionState.ERROR, SubscriptionState.CLOSED):
            raise SubscriptionError(
                "Only failed or closed subscriptions can resubscribe",
                details={"channel": self._scope.channel, "state": self.state.value},
            )

        delay = backoff
        for attempt in range(1, attempts + 1):
            await self._feed._detach(self)
            self.state = SubscriptionState.UNSUBSCRIBED
            try:
                await self.start()
                logger.info("Resubscribed", channel=self._scope.channel, attempt=attempt)
                return
            except SubscriptionError:
                if attempt == attempts:
                    raise
                await asyncio.sleep(delay)
                delay *= 2

    async def close(self) -> None:
        """Detach from the feed. Closing twice is a no-op."""
        if self.state == SubscriptionState.CLOSED:
            return
        await self._feed._detach(self)
        self.state = SubscriptionState.CLOSED
        logger.debug("Subscription closed", channel=self._scope.channel)

    async def deliver(self, event: ChangeEvent) -> None:
        """Hand an event to the handler. Handler failures are logged, not raised."""
        if self.state != SubscriptionState.ACTIVE:
            return
        try:
            await self._handler(event)
        except Exception as e:
            log_error(
                logger,
                e,
                "Change feed handler failed",
                extra={"channel": self._scope.channel, "message_id": event.message_id},
            )

    async def fail(self, error: Exception) -> None:
        """Move to ERROR after the transport dropped, and notify the consumer."""
        if self.state in (SubscriptionState.CLOSED, SubscriptionState.ERROR):
            return
        self.state = SubscriptionState.ERROR
        self.last_error = error
        logger.warning("Subscription lost", channel=self._scope.channel, error=str(error))
        await self._feed._detach(self)
        if self._on_error is not None:
            try:
                await self._on_error(self, error)
            except Exception as e:
                log_error(logger, e, "Subscription error handler failed", extra={"channel": self._scope.channel})


class ChangeFeed(ABC):
    """
    Publish/subscribe channel for message changes.

    Every event is published on its match scope and on the viewer scope of
    each participant. Delivery is at-least-once and unordered.
    """

    def subscribe(
        self,
        scope: FeedScope,
        handler: EventHandler,
        on_error: Optional[ErrorHandler] = None,
        viewer_id: Optional[str] = None,
    ) -> Subscription:
        """Create a subscription. It receives nothing until `start()` is awaited."""
        return Subscription(self, scope, handler, on_error=on_error, viewer_id=viewer_id)

    async def publish(self, event: ChangeEvent, participants: Iterable[str]) -> None:
        """
        Publish an event to its match and to each participant.

        Raises:
            TransportError: If the backend could not accept the event.
        """
        scopes: List[FeedScope] = [FeedScope.for_match(event.match_id)]
        scopes.extend(FeedScope.for_viewer(p) for p in participants)

        with sentry_sdk.start_span(op="feed.publish", name=event.type.value) as span:
            span.set_data("match_id", event.match_id)
            await self._publish(scopes, event)

    @abstractmethod
    async def _publish(self, scopes: List[FeedScope], event: ChangeEvent) -> None: ...

    @abstractmethod
    async def _attach(self, subscription: Subscription) -> None: ...

    @abstractmethod
    async def _detach(self, subscription: Subscription) -> None: ...

    @abstractmethod
    async def close(self) -> None:
        """Close every subscription and release the backend."""
