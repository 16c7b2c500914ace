"""Like ledger for the Rendezvous engine.

Likes are one-directional. The like that completes a mutual pair is the one
that creates the match; the first like of a pair never attempts it.
"""

import uuid
from typing import List

import sentry_sdk

from rendezvous.models.like import Like, LikeResult, LikeStatus
from rendezvous.services.match_service import ensure_match, find_match
from rendezvous.services.profile_service import get_active_profile
from rendezvous.utils.database import run_query
from rendezvous.utils.errors import AlreadyLikedError, ConflictError, ValidationError
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)


async def _has_liked(sender_id: str, receiver_id: str) -> bool:
    result = await run_query(
        table="likes",
        query_type="count",
        filters={"sender_id": sender_id, "receiver_id": receiver_id},
    )
    return result.count > 0


async def send_like(sender_id: str, receiver_id: str) -> LikeResult:
    """
    Like a profile, matching the pair if the like is reciprocated.

    Args:
        sender_id (str): Profile sending the like.
        receiver_id (str): Profile being liked.

    Returns:
        LikeResult: `matched` is True when this like completed a mutual pair.

    Raises:
        ValidationError: If a profile likes itself.
        NotFoundError: If the receiver is missing or deactivated.
        AlreadyLikedError: If the sender already likes the receiver.
    """
    if sender_id == receiver_id:
        raise ValidationError("Profiles cannot like themselves", details={"profile_id": sender_id})

    with sentry_sdk.start_span(op="like.send", name=f"{sender_id} -> {receiver_id}") as span:
        await get_active_profile(receiver_id)

        if await _has_liked(sender_id, receiver_id):
            span.set_data("result", "already_liked")
            raise AlreadyLikedError(
                "Profile already liked",
                details={"sender_id": sender_id, "receiver_id": receiver_id},
            )

        like = Like(id=str(uuid.uuid4()), sender_id=sender_id, receiver_id=receiver_id)
        try:
            await run_query(table="likes", query_type="insert", data=like.model_dump())
        except ConflictError as e:
            # Lost a race with an identical like from another session
            span.set_data("result", "already_liked")
            raise AlreadyLikedError(
                "Profile already liked",
                details={"sender_id": sender_id, "receiver_id": receiver_id},
            ) from e

        if not await _has_liked(receiver_id, sender_id):
            logger.info("Like recorded", sender_id=sender_id, receiver_id=receiver_id)
            span.set_data("result", "liked")
            return LikeResult(matched=False)

        match = await ensure_match(sender_id, receiver_id)
        logger.info("Like completed a match", sender_id=sender_id, receiver_id=receiver_id, match_id=match.id)
        span.set_data("result", "matched")
        return LikeResult(matched=True, match=match)


async def remove_like(sender_id: str, receiver_id: str) -> None:
    """
    Withdraw a like.

    Any match already created from the like is kept. Removing a like that
    does not exist is a no-op.
    """
    result = await run_query(
        table="likes",
        query_type="delete",
        filters={"sender_id": sender_id, "receiver_id": receiver_id},
    )
    logger.info("Like removed", sender_id=sender_id, receiver_id=receiver_id, removed=result.count)


async def check_like_status(viewer_id: str, other_id: str) -> LikeStatus:
    """Get whether the viewer likes the other profile and whether they have matched."""
    liked = await _has_liked(viewer_id, other_id)
    match = await find_match(viewer_id, other_id)
    return LikeStatus(liked=liked, matched=match is not None)


async def get_sent_likes(profile_id: str) -> List[Like]:
    """Get the likes a profile has sent, newest first."""
    result = await run_query(
        table="likes",
        query_type="select",
        filters={"sender_id": profile_id},
        order_by="created_at desc",
    )
    return [Like.model_validate(row) for row in result.data]


async def get_received_likes(profile_id: str) -> List[Like]:
    """Get the likes a profile has received, newest first."""
    result = await run_query(
        table="likes",
        query_type="select",
        filters={"receiver_id": profile_id},
        order_by="created_at desc",
    )
    return [Like.model_validate(row) for row in result.data]
