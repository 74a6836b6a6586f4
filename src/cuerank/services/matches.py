"""
Boundary operations on matches and slots.

These are the functions the web layer (and scripts) call. Each takes the
session it works in as its first argument and never commits: wrap calls in
``cuerank.db.unit_of_work`` so a failure anywhere rolls everything back.

Operations:
- schedule_match: create a match with both slots scheduled
- start_slot: freeze ratings, fix race targets, open the slot for play
- submit_scorecard: record a participant's scorecard and reconcile
- resolve_dispute: operator supplies the authoritative scorecard
- forfeit_slot: operator records a forfeit; the opponent wins without play
- reset_slot: operator reverses a finalized slot
- set_manual_unlock: operator bypass of the play window

Read models:
- match_state, slot_state, rating_record, list_audits
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from cuerank.availability import LockVerdict, UNLOCKED, is_locked
from cuerank.config import settings
from cuerank.db.models import (
    EVENT_TYPES,
    Match,
    MatchSlot,
    Player,
    PlayerRatingRecord,
    RatingAudit,
    utcnow,
)
from cuerank.errors import (
    Locked,
    MatchNotFound,
    NotAParticipant,
    PreconditionError,
    SlotForfeited,
    SlotNotFound,
)
from cuerank.rating.constants import DISCIPLINE_RACE_LENGTH, RACE_CHARTS
from cuerank.rating.race import breakpoint_level, race_targets
from cuerank.scorecards import DISCIPLINES, parse_scorecard
from cuerank.services.finalization import (
    FinalizationCoordinator,
    FinalizedResult,
    ScheduledBaseline,
)
from cuerank.services.ledger import SubmissionLedger
from cuerank.services.transitions import claim_transition
from cuerank.services.verification import Reconciliation, VerificationProtocol
from cuerank.slot_statuses import IN_PROGRESS, SCHEDULED, require_transition

logger = logging.getLogger(__name__)


@dataclass
class RaceTargets:
    match_id: int
    discipline: str
    race_length: str
    race_target_p1: int
    race_target_p2: int
    frozen_rating_p1: Decimal
    frozen_rating_p2: Decimal
    reused: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["frozen_rating_p1"] = str(self.frozen_rating_p1)
        data["frozen_rating_p2"] = str(self.frozen_rating_p2)
        return data


@dataclass
class SlotState:
    match_id: int
    discipline: str
    status: str
    race_length: Optional[str] = None
    race_target_p1: Optional[int] = None
    race_target_p2: Optional[int] = None
    score_p1: Optional[int] = None
    score_p2: Optional[int] = None
    winner_id: Optional[int] = None
    verified_p1: bool = False
    verified_p2: bool = False
    is_forfeit: bool = False
    forfeited_by: Optional[int] = None
    submitted: list[str] = field(default_factory=list)
    reconciliation: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Lookups
# =============================================================================

def _now(now: Optional[datetime]) -> datetime:
    return now or utcnow()


def get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if match is None:
        raise MatchNotFound(match_id)
    return match


def get_slot(session: Session, match_id: int, discipline: str, for_update: bool = False) -> MatchSlot:
    """Load a slot, optionally row-locked for the rest of the transaction."""
    query = session.query(MatchSlot).filter(
        MatchSlot.match_id == match_id,
        MatchSlot.discipline == discipline,
    )
    if for_update:
        query = query.with_for_update()
    slot = query.one_or_none()
    if slot is None:
        raise SlotNotFound(match_id, discipline)
    return slot


def _check_window(match: Match, now: datetime) -> LockVerdict:
    if match.is_manually_unlocked:
        return UNLOCKED
    return is_locked(match.scheduled_date, match.timezone, now)


def _require_unlocked(match: Match, now: datetime) -> None:
    verdict = _check_window(match, now)
    if verdict.locked:
        raise Locked(verdict.reason)


def _current_rating(session: Session, league_id: int, player_id: int) -> tuple[Decimal, int]:
    record = (
        session.query(PlayerRatingRecord)
        .filter(
            PlayerRatingRecord.league_id == league_id,
            PlayerRatingRecord.player_id == player_id,
        )
        .first()
    )
    if record is None:
        logger.warning(
            "No rating record for player %s in league %s; using default %s",
            player_id, league_id, settings.default_rating,
        )
        return Decimal(settings.default_rating), 0
    return Decimal(record.rating), record.confidence


# =============================================================================
# Operations
# =============================================================================

def schedule_match(
    session: Session,
    league_id: int,
    player1_id: int,
    player2_id: int,
    scheduled_date: Optional[date] = None,
    timezone: Optional[str] = None,
    event_type: str = "league",
) -> Match:
    """Create a match with one scheduled slot per discipline."""
    if player1_id == player2_id:
        raise PreconditionError("A match needs two different players")
    if event_type not in EVENT_TYPES:
        raise PreconditionError(f"Unknown event type: {event_type}")
    if timezone:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise PreconditionError(f"Unknown timezone: {timezone}") from exc
    for player_id in (player1_id, player2_id):
        if session.get(Player, player_id) is None:
            raise PreconditionError(f"Unknown player: {player_id}")

    match = Match(
        league_id=league_id,
        player1_id=player1_id,
        player2_id=player2_id,
        scheduled_date=scheduled_date,
        timezone=timezone,
        event_type=event_type,
        slots=[MatchSlot(discipline=d, status=SCHEDULED) for d in DISCIPLINES],
    )
    session.add(match)
    session.flush()
    logger.info(
        "Scheduled match %s: %s vs %s on %s",
        match.id, player1_id, player2_id, scheduled_date or "any day",
    )
    return match


def start_slot(
    session: Session,
    match_id: int,
    discipline: str,
    race_length: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RaceTargets:
    """
    Start a slot: check the window, freeze ratings and fix race targets.

    A slot that was reset after finalization keeps the ratings and targets
    frozen on its first start; starting it again reuses them.

    Raises:
        SlotNotFound, SlotForfeited, AlreadyStarted, Locked
    """
    now = _now(now)
    slot = get_slot(session, match_id, discipline, for_update=True)
    if slot.is_forfeit:
        raise SlotForfeited(f"The {discipline} slot of match {match_id} was forfeited")
    require_transition(slot.status, "start", IN_PROGRESS)

    match = slot.match
    _require_unlocked(match, now)

    reused = slot.is_started
    if not reused:
        length = race_length or DISCIPLINE_RACE_LENGTH[discipline]
        if length not in RACE_CHARTS:
            raise PreconditionError(f"Unknown race length: {length}")

        rating_p1, confidence_p1 = _current_rating(session, match.league_id, match.player1_id)
        rating_p2, confidence_p2 = _current_rating(session, match.league_id, match.player2_id)
        target_p1, target_p2 = race_targets(rating_p1, rating_p2, length)

        slot.race_length = length
        slot.race_target_p1 = target_p1
        slot.race_target_p2 = target_p2
        slot.frozen_rating_p1 = rating_p1
        slot.frozen_rating_p2 = rating_p2
        slot.frozen_confidence_p1 = confidence_p1
        slot.frozen_confidence_p2 = confidence_p2
    elif race_length and race_length != slot.race_length:
        logger.info(
            "Slot %s keeps its %s race; ignoring requested %s",
            slot.id, slot.race_length, race_length,
        )

    slot.started_at = now
    claim_transition(session, slot, "start", IN_PROGRESS)

    logger.info(
        "Started %s slot of match %s: race %s-%s (%s)%s",
        discipline, match_id, slot.race_target_p1, slot.race_target_p2,
        slot.race_length, " reused" if reused else "",
    )
    return RaceTargets(
        match_id=match_id,
        discipline=discipline,
        race_length=slot.race_length,
        race_target_p1=slot.race_target_p1,
        race_target_p2=slot.race_target_p2,
        frozen_rating_p1=Decimal(slot.frozen_rating_p1),
        frozen_rating_p2=Decimal(slot.frozen_rating_p2),
        reused=reused,
    )


def submit_scorecard(
    session: Session,
    match_id: int,
    discipline: str,
    submitter_id: int,
    scorecard,
    now: Optional[datetime] = None,
    coordinator: Optional[FinalizationCoordinator] = None,
) -> SlotState:
    """
    Record a participant's scorecard and reconcile it with the opponent's.

    Raises:
        SlotNotFound, NotAParticipant, AlreadyFinalized, NotStarted,
        SlotDisputed, Locked, InvalidScorecard
    """
    now = _now(now)
    slot = get_slot(session, match_id, discipline, for_update=True)
    match = slot.match

    side = match.side_of(submitter_id)
    if side is None:
        raise NotAParticipant(f"Player {submitter_id} is not in match {match_id}")

    require_transition(slot.status, "submit")
    _require_unlocked(match, now)
    card = parse_scorecard(discipline, scorecard)

    ledger = SubmissionLedger()
    ledger.record(session, slot, side, submitter_id, card, submitted_at=now)

    protocol = VerificationProtocol(
        coordinator or FinalizationCoordinator.from_session(session),
        ledger,
    )
    verdict, _ = protocol.process(session, slot, side)
    return slot_state(slot, reconciliation=verdict)


def resolve_dispute(
    session: Session,
    match_id: int,
    discipline: str,
    override,
    operator: Optional[str] = None,
    coordinator: Optional[FinalizationCoordinator] = None,
) -> FinalizedResult:
    """
    Finalize a disputed slot with an operator's authoritative scorecard.

    Raises:
        SlotNotFound, NotDisputed, AlreadyFinalized, InvalidScorecard
    """
    slot = get_slot(session, match_id, discipline, for_update=True)
    require_transition(slot.status, "resolve")
    card = parse_scorecard(discipline, override)

    coordinator = coordinator or FinalizationCoordinator.from_session(session)
    logger.info("Operator %s resolving dispute on slot %s", operator or "?", slot.id)
    return coordinator.finalize(
        session, slot, card, resolution="operator_override", resolved_by=operator
    )


def forfeit_slot(
    session: Session,
    match_id: int,
    discipline: str,
    forfeited_by: int,
    operator: Optional[str] = None,
    coordinator: Optional[FinalizationCoordinator] = None,
    now: Optional[datetime] = None,
) -> FinalizedResult:
    """
    Record that ``forfeited_by`` forfeits a slot; the opponent wins it.

    Allowed from any status short of finalized, so a slot can be forfeited
    before it was ever started. Ratings are not touched.

    Raises:
        SlotNotFound, NotAParticipant, AlreadyFinalized
    """
    slot = get_slot(session, match_id, discipline, for_update=True)
    coordinator = coordinator or FinalizationCoordinator.from_session(session)
    logger.info("Operator %s recording forfeit on slot %s", operator or "?", slot.id)
    return coordinator.forfeit(session, slot, forfeited_by, resolved_by=operator, now=now)


def reset_slot(
    session: Session,
    match_id: int,
    discipline: str,
    operator: Optional[str] = None,
    coordinator: Optional[FinalizationCoordinator] = None,
) -> ScheduledBaseline:
    """
    Reverse a finalized slot back to scheduled.

    Raises:
        SlotNotFound, NotFinalized, MissingAuditRecord
    """
    slot = get_slot(session, match_id, discipline, for_update=True)
    coordinator = coordinator or FinalizationCoordinator.from_session(session)
    return coordinator.reverse(session, slot, reset_by=operator)


def set_manual_unlock(
    session: Session,
    match_id: int,
    unlocked: bool = True,
    operator: Optional[str] = None,
) -> Match:
    match = get_match(session, match_id)
    match.is_manually_unlocked = unlocked
    session.flush()
    logger.info(
        "Operator %s %s match %s", operator or "?", "unlocked" if unlocked else "re-locked", match_id
    )
    return match


# =============================================================================
# Read models
# =============================================================================

def slot_state(slot: MatchSlot, reconciliation: Optional[Reconciliation] = None) -> SlotState:
    return SlotState(
        match_id=slot.match_id,
        discipline=slot.discipline,
        status=slot.status,
        race_length=slot.race_length,
        race_target_p1=slot.race_target_p1,
        race_target_p2=slot.race_target_p2,
        score_p1=slot.score_p1,
        score_p2=slot.score_p2,
        winner_id=slot.winner_id,
        verified_p1=bool(slot.verified_p1),
        verified_p2=bool(slot.verified_p2),
        is_forfeit=bool(slot.is_forfeit),
        forfeited_by=slot.forfeited_by,
        submitted=SubmissionLedger().sides_submitted(slot),
        reconciliation=reconciliation.value if reconciliation else None,
    )


def match_state(session: Session, match_id: int, now: Optional[datetime] = None) -> dict:
    match = get_match(session, match_id)
    verdict = _check_window(match, _now(now))
    return {
        "id": match.id,
        "league_id": match.league_id,
        "player1_id": match.player1_id,
        "player2_id": match.player2_id,
        "scheduled_date": match.scheduled_date.isoformat() if match.scheduled_date else None,
        "timezone": match.timezone,
        "event_type": match.event_type,
        "is_manually_unlocked": match.is_manually_unlocked,
        "status": match.status,
        "lock": verdict.to_dict(),
        "slots": [slot_state(slot).to_dict() for slot in match.slots],
    }


def rating_record(session: Session, league_id: int, player_id: int) -> dict:
    """Rating, confidence and counters; defaults for a player with no record."""
    record = (
        session.query(PlayerRatingRecord)
        .filter(
            PlayerRatingRecord.league_id == league_id,
            PlayerRatingRecord.player_id == player_id,
        )
        .first()
    )
    if record is None:
        rating = Decimal(settings.default_rating)
        return {
            "league_id": league_id,
            "player_id": player_id,
            "rating": str(rating),
            "level": breakpoint_level(rating),
            "confidence": 0,
            "counters": {},
            "exists": False,
        }
    return {
        "league_id": league_id,
        "player_id": player_id,
        "rating": str(record.rating),
        "level": breakpoint_level(record.rating),
        "confidence": record.confidence,
        "counters": record.counters(),
        "exists": True,
    }


def list_audits(session: Session, match_id: int, discipline: str) -> list[dict]:
    slot = get_slot(session, match_id, discipline)
    audits = (
        session.query(RatingAudit)
        .filter(RatingAudit.slot_id == slot.id)
        .order_by(RatingAudit.id)
        .all()
    )
    return [audit.to_dict() for audit in audits]
