"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from cuerank.db.models import Base, Player
from cuerank.db.session import create_session_factory
from cuerank.services.matches import get_slot, schedule_match, start_slot

LEAGUE_ID = 1
ALICE, BOB, CAROL = 1, 2, 3

# Any instant works for matches without a scheduled date
NOON_UTC = datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_engine():
    """
    In-memory SQLite engine with the full schema.

    StaticPool keeps one connection, so every session in a test sees the
    same database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def db_session(session_factory):
    """A session for one test; whatever it did is rolled back afterwards."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def players(session_factory):
    """Three committed players: alice (1), bob (2) and carol (3)."""
    session = session_factory()
    session.add_all([
        Player(id=ALICE, display_name="Alice"),
        Player(id=BOB, display_name="Bob"),
        Player(id=CAROL, display_name="Carol"),
    ])
    session.commit()
    session.close()
    return {"alice": ALICE, "bob": BOB, "carol": CAROL}


@pytest.fixture
def now():
    return NOON_UTC


@pytest.fixture
def match(db_session, players):
    """An unscheduled (never locked) league match: alice vs bob."""
    return schedule_match(db_session, LEAGUE_ID, ALICE, BOB)


@pytest.fixture
def started_8ball(db_session, match):
    """The match's 8-ball slot, started."""
    start_slot(db_session, match.id, "8ball", now=NOON_UTC)
    return get_slot(db_session, match.id, "8ball")

