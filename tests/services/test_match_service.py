import asyncio
from datetime import timedelta

import pytest

from rendezvous.services.match_service import (
    create_match,
    ensure_match,
    find_match,
    get_match,
    get_match_ids,
    get_profile_matches,
    list_matches,
    reconcile_mutual_likes,
)
from rendezvous.services.profile_service import deactivate_profile
from rendezvous.utils.database import utcnow
from rendezvous.utils.errors import DuplicateMatchError, NotFoundError, ValidationError


@pytest.mark.asyncio
async def test_create_match(alice, bob):
    match = await create_match("alice", "bob")

    assert match.user1_id == "alice"
    assert match.user2_id == "bob"
    assert match.pair_key == "alice:bob"
    assert (await get_match(match.id)).id == match.id


@pytest.mark.asyncio
async def test_create_match_twice_raises_duplicate(alice, bob):
    await create_match("alice", "bob")

    with pytest.raises(DuplicateMatchError):
        await create_match("bob", "alice")


@pytest.mark.asyncio
async def test_concurrent_create_match_leaves_one_row(alice, bob):
    results = await asyncio.gather(
        create_match("alice", "bob"),
        create_match("bob", "alice"),
        return_exceptions=True,
    )

    created = [r for r in results if not isinstance(r, Exception)]
    duplicates = [r for r in results if isinstance(r, DuplicateMatchError)]
    assert len(created) == 1
    assert len(duplicates) == 1
    assert [m.id for m in await get_profile_matches("alice")] == [created[0].id]


@pytest.mark.asyncio
async def test_concurrent_ensure_match_agrees_on_one_match(alice, bob):
    first, second = await asyncio.gather(ensure_match("alice", "bob"), ensure_match("bob", "alice"))

    assert first.id == second.id
    assert len(await get_profile_matches("bob")) == 1

@pytest.mark.asyncio
async def test_create_match_with_self_rejected(alice):
    with pytest.raises(ValidationError):
        await create_match("alice", "alice")


@pytest.mark.asyncio
async def test_ensure_match_returns_existing(alice, bob):
    """Both sides completing the pair end up with the same match."""
    first = await ensure_match("alice", "bob")
    second = await ensure_match("bob", "alice")

    assert first.id == second.id
    assert await get_match_ids("alice") == [first.id]


@pytest.mark.asyncio
async def test_find_match_is_symmetric(alice, bob, carol, matched):
    assert (await find_match("alice", "bob")).id == matched.id
    assert (await find_match("bob", "alice")).id == matched.id
    assert await find_match("alice", "carol") is None


@pytest.mark.asyncio
async def test_get_match_not_found():
    with pytest.raises(NotFoundError):
        await get_match("missing")


@pytest.mark.asyncio
async def test_list_matches_includes_latest_message_and_unread(alice, bob, matched, insert_message):
    insert_message(matched.id, "bob", "first", age=timedelta(minutes=5))
    insert_message(matched.id, "bob", "second", age=timedelta(minutes=1))
    insert_message(matched.id, "alice", "mine", age=timedelta(minutes=3))

    summaries = await list_matches("alice")

    assert len(summaries) == 1
    summary = summaries[0]
    assert summary.match.id == matched.id
    assert summary.other_profile.id == "bob"
    assert summary.last_message.content == "second"
    assert summary.unread_count == 2


@pytest.mark.asyncio
async def test_list_matches_ignores_expired_messages(alice, bob, matched, insert_message):
    insert_message(matched.id, "bob", "old", age=timedelta(hours=25))

    summary = (await list_matches("alice"))[0]

    assert summary.last_message is None
    assert summary.unread_count == 0


@pytest.mark.asyncio
async def test_list_matches_skips_inactive_profiles(alice, bob, carol, make_match):
    make_match("alice", "bob")
    make_match("carol", "alice")
    await deactivate_profile("bob")

    summaries = await list_matches("alice")

    assert [s.other_profile.id for s in summaries] == ["carol"]


@pytest.mark.asyncio
async def test_reconcile_creates_missing_match(alice, bob, insert_like):
    """Two likes that raced past each other leave no match until reconciled."""
    now = utcnow()
    insert_like("alice", "bob", created_at=now - timedelta(seconds=1))
    insert_like("bob", "alice", created_at=now)

    assert await reconcile_mutual_likes() == 1

    match = await find_match("alice", "bob")
    assert match.user1_id == "bob"
    assert match.user2_id == "alice"

    assert await reconcile_mutual_likes() == 0
    assert len(await get_match_ids("alice")) == 1


@pytest.mark.asyncio
async def test_reconcile_ignores_one_sided_likes(alice, bob, carol, insert_like, make_match):
    insert_like("alice", "bob")
    insert_like("carol", "alice")
    insert_like("alice", "carol")
    make_match("alice", "carol")

    assert await reconcile_mutual_likes() == 0
    assert await find_match("alice", "bob") is None
