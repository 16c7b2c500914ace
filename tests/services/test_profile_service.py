from unittest.mock import AsyncMock, patch

import pytest

from rendezvous.models.profile import Profile
from rendezvous.services import profile_service
from rendezvous.services.profile_service import (
    create_profile,
    deactivate_profile,
    get_active_profile,
    get_profile,
)
from rendezvous.utils.errors import NotFoundError, ValidationError


@pytest.mark.asyncio
async def test_create_and_get_profile():
    created = await create_profile(Profile(id="erin", display_name="Erin", city="Lisbon"))

    fetched = await get_profile("erin")

    assert fetched.id == created.id
    assert fetched.city == "Lisbon"
    assert fetched.is_active is True


@pytest.mark.asyncio
async def test_create_duplicate_profile_rejected(alice):
    with pytest.raises(ValidationError):
        await create_profile(Profile(id="alice", display_name="Other Alice"))


@pytest.mark.asyncio
async def test_get_missing_profile():
    with pytest.raises(NotFoundError):
        await get_profile("nobody")


@pytest.mark.asyncio
async def test_get_profile_uses_cache():
    cached = Profile(id="cached", display_name="Cached")

    with patch.object(profile_service, "get_cache_model", AsyncMock(return_value=cached)) as mock_get_cache:
        profile = await get_profile("cached")

    assert profile == cached
    mock_get_cache.assert_awaited_once_with("profile:cached", Profile, extend_ttl=3600)


@pytest.mark.asyncio
async def test_deactivate_profile(alice):
    with patch.object(profile_service, "delete_cache", AsyncMock()) as mock_delete:
        profile = await deactivate_profile("alice")

    assert profile.is_active is False
    mock_delete.assert_awaited_once_with("profile:alice")

    with pytest.raises(NotFoundError):
        await get_active_profile("alice")


@pytest.mark.asyncio
async def test_deactivate_missing_profile():
    with pytest.raises(NotFoundError):
        await deactivate_profile("nobody")
