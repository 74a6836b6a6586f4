"""
FastAPI JSON API for CueRank.

Every request runs in its own unit of work: the session factory is built
once per app (or injected, in tests) and each route commits on success and
rolls back on any domain error before the error is turned into a response.

Operator-only routes (dispute resolution, forfeits, resets, manual unlock) take HTTP
Basic credentials checked against active operator accounts.

Run with:
    python -m cuerank.web.main
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from cuerank import __version__
from cuerank.config import settings
from cuerank.db.session import create_db_engine, create_session_factory, unit_of_work
from cuerank.errors import (
    CueRankError,
    InvalidScorecard,
    InvariantViolation,
    Locked,
    MatchNotFound,
    NotAParticipant,
    PreconditionError,
    SlotNotFound,
)
from cuerank.rating.calculator import RatingCalculator
from cuerank.rating.constants import DEFAULT_RATING
from cuerank.rating.race import breakpoint_level, compute_race_targets, tier_for_rating
from cuerank.services import matches as match_service
from cuerank.web.operator_auth import authenticate_operator, mark_operator_login

logger = logging.getLogger(__name__)

security = HTTPBasic()


# =============================================================================
# Request bodies
# =============================================================================

class ScheduleMatchRequest(BaseModel):
    league_id: int
    player1_id: int
    player2_id: int
    scheduled_date: Optional[date] = None
    timezone: Optional[str] = None
    event_type: Literal["league", "playoffs", "tournament"] = "league"


class StartSlotRequest(BaseModel):
    race_length: Optional[Literal["short", "long"]] = None


class SubmitScorecardRequest(BaseModel):
    submitter_id: int
    scorecard: dict[str, Any]


class ResolveDisputeRequest(BaseModel):
    scorecard: dict[str, Any]


class UnlockRequest(BaseModel):
    unlocked: bool = Field(default=True)


class ForfeitRequest(BaseModel):
    forfeited_by: int


# =============================================================================
# Dependencies
# =============================================================================

def get_session_factory(request: Request) -> sessionmaker:
    """Session factory of the running app, created on first use."""
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        factory = create_session_factory(create_db_engine())
        request.app.state.session_factory = factory
    return factory


def require_operator(
    credentials: HTTPBasicCredentials = Depends(security),
    factory: sessionmaker = Depends(get_session_factory),
) -> str:
    """Username of the authenticated operator, or 401."""
    with unit_of_work(factory) as session:
        operator = authenticate_operator(session, credentials.username, credentials.password)
        if operator is None:
            logger.warning("Rejected operator credentials for %r", credentials.username)
            raise HTTPException(
                status_code=401,
                detail="Invalid operator credentials",
                headers={"WWW-Authenticate": "Basic"},
            )
        mark_operator_login(session, operator)
        return operator.username


# =============================================================================
# Error mapping
# =============================================================================

def _status_for(exc: CueRankError) -> int:
    if isinstance(exc, (SlotNotFound, MatchNotFound)):
        return 404
    if isinstance(exc, NotAParticipant):
        return 403
    if isinstance(exc, Locked):
        return 423
    if isinstance(exc, InvalidScorecard):
        return 422
    return 409


async def domain_error_handler(request: Request, exc: CueRankError) -> JSONResponse:
    if isinstance(exc, InvariantViolation) and not isinstance(exc, PreconditionError):
        logger.error("Invariant violation on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=_status_for(exc),
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# =============================================================================
# App
# =============================================================================

def create_app(session_factory: Optional[sessionmaker] = None) -> FastAPI:
    """
    Build the API.

    Args:
        session_factory: Factory to open sessions from. When omitted one is
                         created from settings.database_url on first request.
    """
    app = FastAPI(title="CueRank", version=__version__)
    app.state.session_factory = session_factory
    app.add_exception_handler(CueRankError, domain_error_handler)

    @app.post("/api/matches", status_code=201)
    def create_match(
        payload: ScheduleMatchRequest,
        factory: sessionmaker = Depends(get_session_factory),
    ):
        with unit_of_work(factory) as session:
            match = match_service.schedule_match(
                session,
                league_id=payload.league_id,
                player1_id=payload.player1_id,
                player2_id=payload.player2_id,
                scheduled_date=payload.scheduled_date,
                timezone=payload.timezone,
                event_type=payload.event_type,
            )
            return match_service.match_state(session, match.id)

    @app.get("/api/matches/{match_id}")
    def get_match(match_id: int, factory: sessionmaker = Depends(get_session_factory)):
        with unit_of_work(factory) as session:
            return match_service.match_state(session, match_id)

    @app.post("/api/matches/{match_id}/slots/{discipline}/start")
    def start_slot(
        match_id: int,
        discipline: str,
        payload: Optional[StartSlotRequest] = None,
        factory: sessionmaker = Depends(get_session_factory),
    ):
        race_length = payload.race_length if payload else None
        with unit_of_work(factory) as session:
            targets = match_service.start_slot(session, match_id, discipline, race_length)
            return targets.to_dict()

    @app.post("/api/matches/{match_id}/slots/{discipline}/submissions")
    def submit_scorecard(
        match_id: int,
        discipline: str,
        payload: SubmitScorecardRequest,
        factory: sessionmaker = Depends(get_session_factory),
    ):
        with unit_of_work(factory) as session:
            state = match_service.submit_scorecard(
                session, match_id, discipline, payload.submitter_id, payload.scorecard
            )
            return state.to_dict()

    @app.post("/api/matches/{match_id}/slots/{discipline}/resolve")
    def resolve_dispute(
        match_id: int,
        discipline: str,
        payload: ResolveDisputeRequest,
        operator: str = Depends(require_operator),
        factory: sessionmaker = Depends(get_session_factory),
    ):
        with unit_of_work(factory) as session:
            result = match_service.resolve_dispute(
                session, match_id, discipline, payload.scorecard, operator=operator
            )
            return result.to_dict()

    @app.post("/api/matches/{match_id}/slots/{discipline}/reset")
    def reset_slot(
        match_id: int,
        discipline: str,
        operator: str = Depends(require_operator),
        factory: sessionmaker = Depends(get_session_factory),
    ):
        with unit_of_work(factory) as session:
            baseline = match_service.reset_slot(session, match_id, discipline, operator=operator)
            return baseline.to_dict()

    @app.post("/api/matches/{match_id}/slots/{discipline}/forfeit")
    def forfeit_slot(
        match_id: int,
        discipline: str,
        payload: ForfeitRequest,
        operator: str = Depends(require_operator),
        factory: sessionmaker = Depends(get_session_factory),
    ):
        with unit_of_work(factory) as session:
            result = match_service.forfeit_slot(
                session, match_id, discipline, payload.forfeited_by, operator=operator
            )
            return result.to_dict()

    @app.post("/api/matches/{match_id}/unlock")
    def unlock_match(
        match_id: int,
        payload: Optional[UnlockRequest] = None,
        operator: str = Depends(require_operator),
        factory: sessionmaker = Depends(get_session_factory),
    ):
        unlocked = payload.unlocked if payload else True
        with unit_of_work(factory) as session:
            match_service.set_manual_unlock(session, match_id, unlocked, operator=operator)
            return match_service.match_state(session, match_id)

    @app.get("/api/matches/{match_id}/slots/{discipline}/audits")
    def slot_audits(
        match_id: int,
        discipline: str,
        factory: sessionmaker = Depends(get_session_factory),
    ):
        with unit_of_work(factory) as session:
            return {"audits": match_service.list_audits(session, match_id, discipline)}

    @app.get("/api/leagues/{league_id}/players/{player_id}/rating")
    def player_rating(
        league_id: int,
        player_id: int,
        factory: sessionmaker = Depends(get_session_factory),
    ):
        with unit_of_work(factory) as session:
            return match_service.rating_record(session, league_id, player_id)

    @app.get("/api/race")
    def race_chart(
        rating_a: Optional[Decimal] = Query(None),
        rating_b: Optional[Decimal] = Query(None),
    ):
        targets = compute_race_targets(rating_a, rating_b)
        win_a = RatingCalculator().get_win_probability(
            rating_a or DEFAULT_RATING, rating_b or DEFAULT_RATING
        )
        return {
            "tier_a": tier_for_rating(rating_a),
            "tier_b": tier_for_rating(rating_b),
            "level_a": breakpoint_level(rating_a),
            "level_b": breakpoint_level(rating_b),
            "win_probability_a": str(win_a),
            "win_probability_b": str(1 - win_a),
            **{
                length: {"target_a": pair[0], "target_b": pair[1]}
                for length, pair in targets.items()
            },
        }

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    logger.info("Starting API on %s:%s (reload=%s)", settings.api_host, settings.api_port, settings.api_reload)
    uvicorn.run(
        "cuerank.web.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    run()
