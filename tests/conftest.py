"""pytest configuration and fixtures."""

import os

# Settings are read on import, so the environment has to be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("SENTRY_DSN", None)

import uuid  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from typing import Callable, Optional  # noqa: E402

import pytest  # noqa: E402

from rendezvous.models.match import Match  # noqa: E402
from rendezvous.models.message import Message  # noqa: E402
from rendezvous.models.profile import Profile  # noqa: E402
from rendezvous.realtime import LocalChangeFeed, set_change_feed  # noqa: E402
from rendezvous.utils.cache import RedisClient  # noqa: E402
from rendezvous.utils.database import Database, execute_query, utcnow  # noqa: E402


@pytest.fixture(autouse=True)
def database():
    """Fresh in-memory database for every test."""
    Database.reset()
    Database.create_tables()
    yield
    Database.reset()


@pytest.fixture(autouse=True)
def no_cache():
    """Run without Redis so every read goes to the database."""
    RedisClient.reset()
    yield
    RedisClient.reset()


@pytest.fixture(autouse=True)
def feed():
    """In-process change feed installed as the process-wide feed."""
    local_feed = LocalChangeFeed()
    set_change_feed(local_feed)
    yield local_feed
    set_change_feed(None)


@pytest.fixture
def make_profile() -> Callable[..., Profile]:
    def _make(profile_id: str, display_name: Optional[str] = None, is_active: bool = True) -> Profile:
        profile = Profile(id=profile_id, display_name=display_name or profile_id.title(), is_active=is_active)
        execute_query(table="profiles", query_type="insert", data=profile.model_dump())
        return profile

    return _make


@pytest.fixture
def alice(make_profile) -> Profile:
    return make_profile("alice")


@pytest.fixture
def bob(make_profile) -> Profile:
    return make_profile("bob")


@pytest.fixture
def carol(make_profile) -> Profile:
    return make_profile("carol")


@pytest.fixture
def insert_like() -> Callable[..., None]:
    """Insert a like row directly, bypassing the matching logic."""

    def _insert(sender_id: str, receiver_id: str, created_at: Optional[datetime] = None) -> None:
        execute_query(
            table="likes",
            query_type="insert",
            data={
                "id": str(uuid.uuid4()),
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "created_at": created_at or utcnow(),
            },
        )

    return _insert


@pytest.fixture
def make_match() -> Callable[[str, str], Match]:
    """Insert a match row directly."""

    def _make(user1_id: str, user2_id: str) -> Match:
        match = Match(id=str(uuid.uuid4()), user1_id=user1_id, user2_id=user2_id)
        execute_query(table="matches", query_type="insert", data=match.model_dump())
        return match

    return _make


@pytest.fixture
def matched(alice, bob, make_match) -> Match:
    return make_match("alice", "bob")


@pytest.fixture
def insert_message() -> Callable[..., Message]:
    """Insert a message row with a chosen creation time."""

    def _insert(
        match_id: str,
        sender_id: str,
        content: str = "hi",
        age: timedelta = timedelta(0),
        created_at: Optional[datetime] = None,
        message_id: Optional[str] = None,
        read_at: Optional[datetime] = None,
    ) -> Message:
        message = Message(
            id=message_id or str(uuid.uuid4()),
            match_id=match_id,
            sender_id=sender_id,
            content=content,
            created_at=created_at or utcnow() - age,
            read_at=read_at,
        )
        data = message.model_dump()
        data["type"] = message.type.value
        execute_query(table="messages", query_type="insert", data=data)
        return message

    return _insert
