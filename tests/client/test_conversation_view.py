from datetime import timedelta

import pytest
import pytest_asyncio

from rendezvous.client.conversation import ConversationView
from rendezvous.client.unread import UnreadTracker
from rendezvous.realtime import ChangeEvent, ChangeType, FeedScope
from rendezvous.services.match_service import get_match
from rendezvous.services.message_service import delete_message, get_messages, send_message
from rendezvous.services.moderation_service import block_user
from rendezvous.utils.errors import BlockedError, EmptyContentError, InvalidParticipantError


@pytest.fixture
def tracker(feed):
    return UnreadTracker("alice", feed)


@pytest_asyncio.fixture
async def view(feed, tracker, matched):
    conversation = await ConversationView.open_for(matched.id, "alice", feed, tracker)
    yield conversation
    await conversation.close()


@pytest.mark.asyncio
async def test_open_loads_purges_and_marks_read(feed, tracker, matched, insert_message):
    insert_message(matched.id, "bob", "expired", age=timedelta(hours=25))
    unread = insert_message(matched.id, "bob", "hello", age=timedelta(minutes=2))
    tracker.increment(matched.id, unread.id)

    view = await ConversationView.open_for(matched.id, "alice", feed, tracker)

    assert [m.content for m in view.messages] == ["hello"]
    assert view.messages[0].read_at is not None
    assert tracker.count(matched.id) == 0
    assert feed.subscriber_count(FeedScope.for_match(matched.id)) == 1
    # Expired row is gone from storage, not only hidden
    assert len(await get_messages(matched.id, now=None)) == 1

    await view.close()
    assert feed.subscriber_count() == 0


@pytest.mark.asyncio
async def test_outsider_cannot_open(feed, matched, carol):
    with pytest.raises(InvalidParticipantError):
        ConversationView(await get_match(matched.id), "carol", feed)


@pytest.mark.asyncio
async def test_incoming_message_appears_and_is_read(view, matched, tracker):
    message = await send_message(matched.id, "bob", "Hi Alice")

    assert [m.id for m in view.messages] == [message.id]
    assert view.messages[0].read_at is not None
    assert tracker.total() == 0


@pytest.mark.asyncio
async def test_duplicate_insert_shows_once(view, feed, matched):
    message = await send_message(matched.id, "bob", "Hi")
    stale = ChangeEvent(type=ChangeType.INSERT, match_id=matched.id, message=message)

    await feed.publish(stale, matched.participants)

    assert [m.id for m in view.messages] == [message.id]
    # The repeated insert still carries read_at=None; the view keeps the read
    assert view.messages[0].read_at is not None


@pytest.mark.asyncio
async def test_send_uses_and_clears_draft(view, matched):
    view.draft = "  Hello Bob  "

    message = await view.send()

    assert message.content == "Hello Bob"
    assert view.draft == ""
    assert [m.id for m in view.messages] == [message.id]


@pytest.mark.asyncio
async def test_failed_send_restores_draft(view):
    view.draft = "   "

    with pytest.raises(EmptyContentError):
        await view.send()

    assert view.draft == "   "


@pytest.mark.asyncio
async def test_send_blocked(view, matched):
    await block_user("bob", "alice")
    view.draft = "Are you there?"

    with pytest.raises(BlockedError) as exc_info:
        await view.send()

    assert exc_info.value.details["blocked_by_them"] is True
    assert view.draft == "Are you there?"
    assert await get_messages(matched.id) == []


@pytest.mark.asyncio
async def test_delete_event_removes_message(view, matched):
    message = await send_message(matched.id, "bob", "oops")

    await delete_message(message.id, "bob")

    assert view.messages == []


@pytest.mark.asyncio
async def test_late_insert_after_delete_stays_deleted(view, feed, matched):
    message = await send_message(matched.id, "bob", "oops")
    await delete_message(message.id, "bob")

    for change_type in (ChangeType.INSERT, ChangeType.UPDATE):
        await feed.publish(ChangeEvent(type=change_type, match_id=matched.id, message=message), matched.participants)

    assert view.messages == []


@pytest.mark.asyncio
async def test_open_loads_participant_profiles(view):
    assert view.other_profile is not None
    assert view.other_profile.id == "bob"

    message = await view.send("Hi")
    assert view.sender_of(message).display_name == "Alice"

@pytest.mark.asyncio
async def test_messages_stay_in_creation_order(view, feed, matched, insert_message):
    later = insert_message(matched.id, "alice", "later", age=timedelta(seconds=1))
    earlier = insert_message(matched.id, "alice", "earlier", age=timedelta(seconds=2))

    # Delivered newest first
    for message in (later, earlier):
        await feed.publish(ChangeEvent(type=ChangeType.INSERT, match_id=matched.id, message=message), [])

    assert [m.content for m in view.messages] == ["earlier", "later"]


@pytest.mark.asyncio
async def test_error_resubscribes_and_reloads(view, feed, matched, insert_message):
    await feed.interrupt(FeedScope.for_match(matched.id))
    assert view.is_open

    # Written while disconnected
    missed = insert_message(matched.id, "bob", "missed")
    await feed.interrupt(FeedScope.for_match(matched.id))

    assert [m.id for m in view.messages] == [missed.id]
    assert view.messages[0].read_at is not None
