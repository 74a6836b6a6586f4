"""
Database engine and session management for CueRank.

Nothing here is created at import time. Callers build an engine and a
session factory once (the web app on startup, a script in ``main()``, a test
fixture) and pass the factory to whatever needs it.

Usage:
    from cuerank.db import create_db_engine, create_session_factory, unit_of_work

    engine = create_db_engine()
    SessionFactory = create_session_factory(engine)

    with unit_of_work(SessionFactory) as session:
        submit_scorecard(session, match_id, "8ball", player_id, card)
        # Commits on exit, rolls back on exception
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from cuerank.config import settings


def create_db_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """
    Create a SQLAlchemy engine.

    Server databases get the configured connection pool and pre-ping
    (handles stale connections). SQLite URLs skip the pool options, which
    its pool classes do not accept.

    Args:
        database_url: Connection URL. Defaults to settings.database_url.
        **kwargs: Extra arguments passed through to create_engine.
    """
    url = database_url or settings.database_url
    options: dict = {"echo": settings.log_level == "DEBUG"}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    options.update(kwargs)
    return create_engine(url, **options)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to ``engine``. Commits are always explicit."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def unit_of_work(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    One transaction: commit on success, roll back on any exception.

    Finalization relies on this being the only commit point, so the games,
    rating records, audit row and slot status of a finalize land together or
    not at all.

    Raises:
        Any exception from the wrapped block (after rollback)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
