"""
Database module for CueRank.

Provides SQLAlchemy ORM models and explicit engine/session factories.

Usage:
    from cuerank.db import create_db_engine, create_session_factory, unit_of_work

    factory = create_session_factory(create_db_engine())
    with unit_of_work(factory) as session:
        match = session.get(Match, match_id)
"""

from cuerank.db.models import (
    Base,
    Game,
    Match,
    MatchSlot,
    OperatorUser,
    Player,
    PlayerRatingRecord,
    RatingAudit,
    RatingParameterSet,
    Submission,
)
from cuerank.db.session import create_db_engine, create_session_factory, unit_of_work

__all__ = [
    # Base
    "Base",
    # Models
    "Game",
    "Match",
    "MatchSlot",
    "OperatorUser",
    "Player",
    "PlayerRatingRecord",
    "RatingAudit",
    "RatingParameterSet",
    "Submission",
    # Session
    "create_db_engine",
    "create_session_factory",
    "unit_of_work",
]
