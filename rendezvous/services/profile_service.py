"""Profile directory for the Rendezvous engine."""

import sentry_sdk

from rendezvous.models.profile import Profile
from rendezvous.utils.cache import delete_cache, get_cache_model, set_cache
from rendezvous.utils.database import run_query, utcnow
from rendezvous.utils.errors import ConflictError, NotFoundError, ValidationError
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)

# Cache keys
PROFILE_CACHE_KEY = "profile:{profile_id}"


async def get_profile(profile_id: str) -> Profile:
    """Get a profile by ID.

    Args:
        profile_id: Profile ID

    Returns:
        Profile object

    Raises:
        NotFoundError: If profile not found
    """
    with sentry_sdk.start_span(op="profile.get", name=profile_id) as span:
        cache_key = PROFILE_CACHE_KEY.format(profile_id=profile_id)
        cached_profile = await get_cache_model(cache_key, Profile, extend_ttl=3600)
        if cached_profile:
            logger.debug("Profile retrieved from cache", profile_id=profile_id)
            span.set_data("source", "cache")
            return cached_profile

        result = await run_query(
            table="profiles",
            query_type="select",
            filters={"id": profile_id},
        )

        if not result.data:
            logger.warning("Profile not found", profile_id=profile_id)
            span.set_status("not_found")
            raise NotFoundError(f"Profile not found: {profile_id}")

        profile = Profile.model_validate(result.data[0])
        await set_cache(cache_key, profile, expiration=3600)  # 1 hour

        span.set_data("source", "database")
        return profile


async def get_active_profile(profile_id: str) -> Profile:
    """Get a profile that has not been deactivated.

    Raises:
        NotFoundError: If the profile is missing or inactive
    """
    profile = await get_profile(profile_id)
    if not profile.is_active:
        logger.info("Profile is inactive", profile_id=profile_id)
        raise NotFoundError(f"Profile not found: {profile_id}", details={"reason": "inactive"})
    return profile


async def create_profile(profile: Profile) -> Profile:
    """Create a new profile.

    Raises:
        ValidationError: If a profile with the same ID already exists
    """
    try:
        result = await run_query(
            table="profiles",
            query_type="insert",
            data=profile.model_dump(),
        )
    except ConflictError as e:
        raise ValidationError(f"Profile already exists: {profile.id}", details=e.details) from e

    logger.info("Profile created", profile_id=profile.id)
    return Profile.model_validate(result.data[0])


async def deactivate_profile(profile_id: str) -> Profile:
    """Soft-delete a profile.

    Raises:
        NotFoundError: If profile not found
    """
    result = await run_query(
        table="profiles",
        query_type="update",
        filters={"id": profile_id},
        data={"is_active": False, "updated_at": utcnow()},
    )

    if not result.data:
        raise NotFoundError(f"Profile not found: {profile_id}")

    await delete_cache(PROFILE_CACHE_KEY.format(profile_id=profile_id))
    logger.info("Profile deactivated", profile_id=profile_id)
    return Profile.model_validate(result.data[0])
