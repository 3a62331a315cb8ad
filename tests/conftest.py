"""
Pytest configuration and shared fixtures for debate room tests.

- Database fixtures (in-memory SQLite shared across threads)
- Directory fixture seeded with a topic, three users and their opinions
- Callers for participants, an outsider and a moderator
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.authorization import Caller
from core.room_manager import RoomManager
from database import Base, build_engine
from models import UserRole
from services.directory import InMemoryDirectory


# ============ Database ============

@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ============ Collaborators ============

@pytest.fixture
def directory():
    """
    alice 發表了意見 op-alice（作者），bob 對同一主題有意見，carol 沒有
    """
    directory = InMemoryDirectory()
    directory.add_topic("topic-1", "Universal basic income", "Should every adult receive a basic income?")
    directory.add_user("alice", "Alice")
    directory.add_user("bob", "Bob")
    directory.add_user("carol", "Carol")
    directory.add_opinion("op-alice", author_id="alice", topic_id="topic-1", stance="support")
    directory.add_opinion("op-bob", author_id="bob", topic_id="topic-1", stance="oppose")
    directory.set_political_scores("alice", 10, 20)
    directory.set_political_scores("bob", -20, -20)
    return directory


@pytest.fixture
def alice():
    return Caller("alice")


@pytest.fixture
def bob():
    return Caller("bob")


@pytest.fixture
def carol():
    return Caller("carol")


@pytest.fixture
def moderator():
    return Caller("mod-1", UserRole.MODERATOR)


@pytest.fixture
def t0():
    return datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def room(db, directory, bob):
    """bob 挑戰 alice 的意見：alice 先發言"""
    return RoomManager.create_room(db, directory, "op-alice", bob)


def exchange(db, room_id, first, second, rounds):
    """first / second 輪流發言 rounds 次"""
    for i in range(rounds):
        RoomManager.send_message(db, room_id, first, f"{first.user_id} point {i + 1}")
        RoomManager.send_message(db, room_id, second, f"{second.user_id} reply {i + 1}")
