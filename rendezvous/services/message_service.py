"""Conversation store for the Rendezvous engine.

Messages belong to a match and are hard-deleted once they are older than
the retention window. Reads never return expired messages, even when no
purge has run yet. Every write is announced on the change feed.
"""

import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import sentry_sdk

from rendezvous.config import settings
from rendezvous.models.match import Match
from rendezvous.models.message import Message, MessageType
from rendezvous.realtime import ChangeEvent, ChangeType, get_change_feed
from rendezvous.services.match_service import get_match, get_match_ids
from rendezvous.utils.database import run_query, utcnow
from rendezvous.utils.errors import (
    EmptyContentError,
    InvalidParticipantError,
    NotFoundError,
    TransportError,
)
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)


def retention_window() -> timedelta:
    """How long a message lives after creation."""
    return timedelta(hours=settings.MESSAGE_TTL_HOURS)


def retention_cutoff(now: Optional[datetime] = None) -> datetime:
    """Messages created before this instant are expired."""
    return (now or utcnow()) - retention_window()


async def _publish(change_type: ChangeType, match: Match, message: Message) -> None:
    """Announce a change. The write already happened, so feed failures are only logged."""
    try:
        await get_change_feed().publish(
            ChangeEvent(type=change_type, match_id=match.id, message=message),
            match.participants,
        )
    except TransportError as e:
        logger.warning(
            "Change event not published",
            change_type=change_type.value,
            match_id=match.id,
            message_id=message.id,
            error=str(e),
        )


def _require_participant(match: Match, profile_id: str) -> None:
    if not match.has_participant(profile_id):
        logger.warning("Profile not part of match", match_id=match.id, profile_id=profile_id)
        raise InvalidParticipantError(
            "Profile is not part of this match",
            details={"match_id": match.id, "profile_id": profile_id},
        )


async def get_messages(match_id: str, now: Optional[datetime] = None) -> List[Message]:
    """Get the unexpired messages of a match in creation order.

    Args:
        match_id: Match ID
        now: Reference time for expiry (defaults to the current time)

    Returns:
        Messages ordered by creation time

    Raises:
        NotFoundError: If match not found
    """
    await get_match(match_id)

    result = await run_query(
        table="messages",
        query_type="select",
        filters={"match_id": match_id, "created_at__gte": retention_cutoff(now)},
        order_by="created_at asc, id asc",
    )
    return [Message.model_validate(row) for row in result.data]


async def get_latest_message(match_id: str, now: Optional[datetime] = None) -> Optional[Message]:
    """Get the newest unexpired message of a match, if any."""
    result = await run_query(
        table="messages",
        query_type="select",
        filters={"match_id": match_id, "created_at__gte": retention_cutoff(now)},
        order_by="created_at desc, id desc",
        limit=1,
    )
    if not result.data:
        return None
    return Message.model_validate(result.data[0])


async def send_message(
    match_id: str,
    sender_id: str,
    content: str,
    message_type: MessageType = MessageType.TEXT,
) -> Message:
    """Send a message in a match.

    Args:
        match_id: Match ID
        sender_id: Sending profile, one of the two participants
        content: Message text; stored trimmed
        message_type: Message type

    Returns:
        The stored message

    Raises:
        EmptyContentError: If content is blank after trimming
        NotFoundError: If match not found
        InvalidParticipantError: If the sender is not part of the match
    """
    text = (content or "").strip()
    if not text:
        raise EmptyContentError("Message content cannot be empty", details={"match_id": match_id})

    with sentry_sdk.start_span(op="message.send", name=match_id) as span:
        match = await get_match(match_id)
        _require_participant(match, sender_id)

        message = Message(
            id=str(uuid.uuid4()),
            match_id=match_id,
            sender_id=sender_id,
            content=text,
            type=message_type,
            created_at=utcnow(),
        )
        data = message.model_dump()
        data["type"] = message.type.value
        result = await run_query(table="messages", query_type="insert", data=data)
        stored = Message.model_validate(result.data[0])

        logger.info("Message sent", match_id=match_id, message_id=stored.id, sender_id=sender_id)
        span.set_data("message_id", stored.id)

        await _publish(ChangeType.INSERT, match, stored)
        return stored


async def mark_messages_as_read(match_id: str, viewer_id: str) -> List[Message]:
    """Mark every unexpired unread message from the other participant as read.

    Args:
        match_id: Match ID
        viewer_id: Profile reading the conversation

    Returns:
        The messages that changed; empty when everything was already read

    Raises:
        NotFoundError: If match not found
        InvalidParticipantError: If the viewer is not part of the match
    """
    match = await get_match(match_id)
    _require_participant(match, viewer_id)

    result = await run_query(
        table="messages",
        query_type="update",
        filters={
            "match_id": match_id,
            "sender_id__ne": viewer_id,
            "read_at": None,
            "created_at__gte": retention_cutoff(),
        },
        data={"read_at": utcnow()},
    )
    updated = [Message.model_validate(row) for row in result.data]

    if updated:
        logger.debug("Messages marked as read", match_id=match_id, viewer_id=viewer_id, count=len(updated))
    for message in updated:
        await _publish(ChangeType.UPDATE, match, message)
    return updated


async def purge_expired(match_id: str, now: Optional[datetime] = None) -> List[Message]:
    """Delete the expired messages of one match.

    Safe to call from several places at once; rows another caller already
    removed are simply not reported again.

    Args:
        match_id: Match ID
        now: Reference time for expiry (defaults to the current time)

    Returns:
        The messages this call deleted

    Raises:
        NotFoundError: If match not found
    """
    match = await get_match(match_id)

    result = await run_query(
        table="messages",
        query_type="delete",
        filters={"match_id": match_id, "created_at__lt": retention_cutoff(now)},
    )
    deleted = [Message.model_validate(row) for row in result.data]

    if deleted:
        logger.info("Expired messages purged", match_id=match_id, count=len(deleted))
    for message in deleted:
        await _publish(ChangeType.DELETE, match, message)
    return deleted


async def purge_all_expired(now: Optional[datetime] = None) -> int:
    """Delete expired messages across every match.

    Returns:
        Number of messages deleted
    """
    with sentry_sdk.start_span(op="message.purge_all", name="retention") as span:
        result = await run_query(
            table="messages",
            query_type="delete",
            filters={"created_at__lt": retention_cutoff(now)},
        )

        by_match: Dict[str, List[Message]] = defaultdict(list)
        for row in result.data:
            message = Message.model_validate(row)
            by_match[message.match_id].append(message)

        for match_id, messages in by_match.items():
            try:
                match = await get_match(match_id)
            except NotFoundError:
                logger.warning("Purged messages of unknown match", match_id=match_id, count=len(messages))
                continue
            for message in messages:
                await _publish(ChangeType.DELETE, match, message)

        span.set_data("deleted", len(result.data))
        span.set_data("matches", len(by_match))
        return len(result.data)


async def delete_message(message_id: str, sender_id: str) -> Message:
    """Delete one of the sender's own messages.

    Raises:
        NotFoundError: If the message does not exist
        InvalidParticipantError: If the profile did not send the message
    """
    result = await run_query(table="messages", query_type="select", filters={"id": message_id})
    if not result.data:
        raise NotFoundError(f"Message not found: {message_id}")

    message = Message.model_validate(result.data[0])
    if message.sender_id != sender_id:
        raise InvalidParticipantError(
            "Only the sender can delete a message",
            details={"message_id": message_id, "profile_id": sender_id},
        )

    deleted = await run_query(
        table="messages",
        query_type="delete",
        filters={"id": message_id, "sender_id": sender_id},
    )
    if not deleted.data:
        raise NotFoundError(f"Message not found: {message_id}")

    match = await get_match(message.match_id)
    await _publish(ChangeType.DELETE, match, message)
    logger.info("Message deleted", match_id=message.match_id, message_id=message_id)
    return message


async def count_unread(match_id: str, viewer_id: str, now: Optional[datetime] = None) -> int:
    """Count the unexpired messages of a match the viewer has not read."""
    result = await run_query(
        table="messages",
        query_type="count",
        filters={
            "match_id": match_id,
            "sender_id__ne": viewer_id,
            "read_at": None,
            "created_at__gte": retention_cutoff(now),
        },
    )
    return result.count


async def get_unread_messages(viewer_id: str, now: Optional[datetime] = None) -> List[Message]:
    """Get every unexpired unread message addressed to a viewer, across all matches."""
    match_ids = await get_match_ids(viewer_id)
    if not match_ids:
        return []

    result = await run_query(
        table="messages",
        query_type="select",
        filters={
            "match_id__in": match_ids,
            "sender_id__ne": viewer_id,
            "read_at": None,
            "created_at__gte": retention_cutoff(now),
        },
    )
    return [Message.model_validate(row) for row in result.data]


async def get_unread_per_match(viewer_id: str) -> Dict[str, int]:
    """Get the viewer's unread count for each match that has unread messages."""
    counts: Dict[str, int] = defaultdict(int)
    for message in await get_unread_messages(viewer_id):
        counts[message.match_id] += 1
    return dict(counts)


async def get_unread_count(viewer_id: str) -> int:
    """Get the viewer's unread count across all matches."""
    return len(await get_unread_messages(viewer_id))
