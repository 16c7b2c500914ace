"""Match registry for the Rendezvous engine.

A match is created once per unordered pair of profiles and never deleted.
The unique `pair_key` column arbitrates concurrent creation; callers that
only need the match to exist use `ensure_match`.
"""

import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk

from rendezvous.models.match import Match, MatchSummary
from rendezvous.services.profile_service import get_profile
from rendezvous.utils.cache import get_cache_model, set_cache
from rendezvous.utils.database import run_query
from rendezvous.utils.errors import ConflictError, DuplicateMatchError, NotFoundError, ValidationError
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)

# Cache keys
MATCH_CACHE_KEY = "match:{match_id}"


def _pair_filter(profile_a: str, profile_b: str) -> Dict[str, Any]:
    return {
        "$or": [
            {"user1_id": profile_a, "user2_id": profile_b},
            {"user1_id": profile_b, "user2_id": profile_a},
        ]
    }


async def create_match(profile_a: str, profile_b: str) -> Match:
    """
    Create a match between two profiles.

    Only called once both directional likes exist. `profile_a` is recorded
    as `user1_id`, the side whose like completed the pair.

    Args:
        profile_a (str): Profile whose like completed the pair.
        profile_b (str): The other profile.

    Returns:
        Match: The created match.

    Raises:
        ValidationError: If both IDs are the same profile.
        DuplicateMatchError: If the pair already has a match.
    """
    if profile_a == profile_b:
        raise ValidationError("A profile cannot match itself", details={"profile_id": profile_a})

    with sentry_sdk.start_span(op="match.create", name=f"{profile_a} <-> {profile_b}") as span:
        match = Match(id=str(uuid.uuid4()), user1_id=profile_a, user2_id=profile_b)

        try:
            await run_query(table="matches", query_type="insert", data=match.model_dump())
        except ConflictError as e:
            span.set_data("action", "duplicate")
            logger.info("Match already exists for pair", user1_id=profile_a, user2_id=profile_b)
            raise DuplicateMatchError(
                "Match already exists",
                details={"user1_id": profile_a, "user2_id": profile_b, "pair_key": match.pair_key},
            ) from e

        await set_cache(MATCH_CACHE_KEY.format(match_id=match.id), match, expiration=86400)  # 24 hours

        logger.info("Match created", match_id=match.id, user1_id=profile_a, user2_id=profile_b)
        span.set_data("action", "created")
        return match


async def ensure_match(profile_a: str, profile_b: str) -> Match:
    """
    Make sure a match exists for a pair, creating it if needed.

    A `DuplicateMatchError` means another session completed the pair first;
    the existing match is returned.

    Args:
        profile_a (str): Profile whose like completed the pair.
        profile_b (str): The other profile.

    Returns:
        Match: The new or existing match.
    """
    try:
        return await create_match(profile_a, profile_b)
    except DuplicateMatchError as e:
        existing = await find_match(profile_a, profile_b)
        if existing is None:
            # The constraint fired but the row is not visible yet
            raise
        logger.debug("Reusing existing match", match_id=existing.id, details=e.details)
        return existing


async def find_match(profile_a: str, profile_b: str) -> Optional[Match]:
    """
    Find the match between two profiles, whichever side created it.

    Args:
        profile_a (str): One profile.
        profile_b (str): The other profile.

    Returns:
        Optional[Match]: The match, or None if the pair has not matched.
    """
    result = await run_query(table="matches", query_type="select", filters=_pair_filter(profile_a, profile_b), limit=1)
    if not result.data:
        return None
    return Match.model_validate(result.data[0])


async def get_match(match_id: str) -> Match:
    """
    Get a match by ID.

    Match rows never change after creation, so cached copies stay valid.

    Raises:
        NotFoundError: If the match is not found.
    """
    cache_key = MATCH_CACHE_KEY.format(match_id=match_id)
    cached_match = await get_cache_model(cache_key, Match)
    if cached_match:
        logger.debug("Match retrieved from cache", match_id=match_id)
        return cached_match

    result = await run_query(table="matches", query_type="select", filters={"id": match_id})

    if not result.data:
        logger.warning("Match not found", match_id=match_id)
        raise NotFoundError(f"Match not found: {match_id}")

    match = Match.model_validate(result.data[0])
    await set_cache(cache_key, match, expiration=86400)  # 24 hours
    return match


async def get_profile_matches(profile_id: str) -> List[Match]:
    """Get every match a profile belongs to, newest first."""
    result = await run_query(
        table="matches",
        query_type="select",
        filters={"$or": [{"user1_id": profile_id}, {"user2_id": profile_id}]},
        order_by="created_at desc",
    )
    return [Match.model_validate(row) for row in result.data]


async def get_match_ids(profile_id: str) -> List[str]:
    """Get the IDs of every match a profile belongs to."""
    return [match.id for match in await get_profile_matches(profile_id)]


async def list_matches(profile_id: str) -> List[MatchSummary]:
    """
    Get a profile's matches for display, newest first.

    Each entry carries the other participant's profile, the latest message
    still within retention and the profile's unread count. Matches whose
    other participant is missing or deactivated are left out.

    Args:
        profile_id (str): The viewing profile.

    Returns:
        List[MatchSummary]: One summary per visible match.
    """
    from rendezvous.services.message_service import count_unread, get_latest_message

    with sentry_sdk.start_span(op="match.list", name=profile_id) as span:
        summaries = []
        for match in await get_profile_matches(profile_id):
            other_id = match.other_participant(profile_id)
            try:
                other_profile = await get_profile(other_id)
            except NotFoundError:
                logger.warning("Skipping match with missing profile", match_id=match.id, profile_id=other_id)
                continue

            if not other_profile.is_active:
                continue

            summaries.append(
                MatchSummary(
                    match=match,
                    other_profile=other_profile,
                    last_message=await get_latest_message(match.id),
                    unread_count=await count_unread(match.id, profile_id),
                )
            )

        span.set_data("count", len(summaries))
        logger.debug("Match list built", profile_id=profile_id, count=len(summaries))
        return summaries


async def reconcile_mutual_likes() -> int:
    """
    Create matches for mutual likes that have none.

    Two likes committed at the same moment can each miss the other and
    leave the pair unmatched; this closes that gap. The profile whose like
    came last is recorded as `user1_id`.

    Returns:
        int: Number of matches created.
    """
    with sentry_sdk.start_span(op="match.reconcile", name="mutual_likes") as span:
        result = await run_query(table="likes", query_type="select")
        likes = {(row["sender_id"], row["receiver_id"]): row["created_at"] for row in result.data}

        created = 0
        for (sender_id, receiver_id), created_at in likes.items():
            if sender_id > receiver_id or (receiver_id, sender_id) not in likes:
                continue
            if await find_match(sender_id, receiver_id) is not None:
                continue

            reverse_created_at = likes[(receiver_id, sender_id)]
            if created_at >= reverse_created_at:
                completer, other = sender_id, receiver_id
            else:
                completer, other = receiver_id, sender_id

            try:
                await create_match(completer, other)
                created += 1
            except DuplicateMatchError:
                continue

        span.set_data("created", created)
        if created:
            logger.info("Reconciled missing matches", created=created)
        return created
