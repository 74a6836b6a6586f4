"""
Finalization and reversal of slot results.

``finalize`` turns an authoritative scorecard into derived state:

1. claim the slot (pending_verification/disputed -> finalized); a slot that
   is already finalized is refused before anything else is touched
2. write one Game row per rack
3. run the rating calculator on the ratings frozen when the slot started
4. lock both rating records (in player id order) and apply the rating
   deltas, confidence increments and achievement counters
5. store scores and winner on the slot and write the audit row

None of this commits. The caller's unit of work is the transaction, so
either all of it lands or none of it does.

``reverse`` is the exact inverse: it subtracts the deltas and increments
stored on the audit row (never a fresh calculation), deletes the games and
submissions, and returns the slot to ``scheduled``. Race targets and frozen
ratings survive a reset, so a restarted slot is played to the same race.

Deltas are computed from frozen ratings and added to the *current* record
values. When a player finishes both slots of a match, each slot's delta is
independent of the other's; nothing compounds across slots.

``forfeit`` finalizes a slot without play. The opponent wins, both players
are credited the match, and the audit row carries zero deltas so ``reverse``
undoes it like any other result.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cuerank.config import settings
from cuerank.db.models import (
    COUNTER_FIELDS,
    Game,
    MatchSlot,
    PlayerRatingRecord,
    RatingAudit,
    utcnow,
)
from cuerank.errors import (
    DuplicateFinalization,
    InvariantViolation,
    MissingAuditRecord,
    NotAParticipant,
)
from cuerank.rating.calculator import RatingCalculator, RatingParams
from cuerank.rating.confidence import confidence_increment
from cuerank.rating.params_store import DEFAULT_PARAMS_VERSION, get_active_rating_params
from cuerank.scorecards import ACHIEVEMENT_COUNTERS
from cuerank.services.ledger import SubmissionLedger
from cuerank.services.transitions import claim_transition
from cuerank.slot_statuses import FINALIZED, SCHEDULED

logger = logging.getLogger(__name__)

CUSTOM_PARAMS_VERSION = "custom"
ZERO_DELTA = Decimal("0.00")


@dataclass
class FinalizedResult:
    match_id: int
    discipline: str
    status: str
    score_p1: Optional[int]
    score_p2: Optional[int]
    winner_id: int
    delta_p1: Decimal
    delta_p2: Decimal
    rating_p1: Decimal
    rating_p2: Decimal
    confidence_p1: int
    confidence_p2: int
    resolution: str
    audit_id: int
    is_forfeit: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
        return data


@dataclass
class ScheduledBaseline:
    match_id: int
    discipline: str
    status: str
    race_length: Optional[str]
    race_target_p1: Optional[int]
    race_target_p2: Optional[int]
    rating_p1: Decimal
    rating_p2: Decimal
    confidence_p1: int
    confidence_p2: int
    audit_id: int

    def to_dict(self) -> dict:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
        return data


def slot_counters(scorecard, side: str) -> dict[str, int]:
    """Counter increments a finalized scorecard earns for ``side``."""
    own = scorecard.score_for(side)
    opponent = scorecard.score_for("p2" if side == "p1" else "p1")
    won = scorecard.winner == side

    counters = {name: 0 for name in COUNTER_FIELDS}
    counters["racks_played"] = scorecard.racks_played
    counters["racks_won"] = own
    counters["matches_played"] = 1
    counters["matches_won"] = 1 if won else 0
    counters["shutouts"] = 1 if won and opponent == 0 else 0

    for game in scorecard.games:
        if game.winner != side:
            continue
        for flag, is_set in game.flags().items():
            if is_set:
                counters[ACHIEVEMENT_COUNTERS[flag]] += 1
    return counters


def forfeit_counters(won: bool) -> dict[str, int]:
    """A forfeit counts as a match played, and won for the opponent. No racks."""
    counters = {name: 0 for name in COUNTER_FIELDS}
    counters["matches_played"] = 1
    counters["matches_won"] = 1 if won else 0
    return counters


def create_rating_record(session: Session, league_id: int, player_id: int) -> PlayerRatingRecord:
    """
    Insert a default rating record for a player and return it locked.

    Two finalizes that share a never-rated player can both find no row and
    both insert one. The insert runs in a savepoint: the one that hits the
    unique constraint rolls back only that savepoint and then locks the row
    the other transaction created.
    """
    logger.warning(
        "No rating record for player %s in league %s; starting at %s",
        player_id, league_id, settings.default_rating,
    )
    record = PlayerRatingRecord(
        league_id=league_id,
        player_id=player_id,
        rating=Decimal(settings.default_rating),
        confidence=0,
        **{name: 0 for name in COUNTER_FIELDS},
    )
    try:
        with session.begin_nested():
            session.add(record)
    except IntegrityError:
        logger.info(
            "Rating record for player %s in league %s was created concurrently; locking it",
            player_id, league_id,
        )
        record = (
            session.query(PlayerRatingRecord)
            .filter(
                PlayerRatingRecord.league_id == league_id,
                PlayerRatingRecord.player_id == player_id,
            )
            .with_for_update()
            .one()
        )
    return record


class FinalizationCoordinator:
    """Applies and reverses slot results against the rating records."""

    def __init__(self, params: Optional[RatingParams] = None, params_version: Optional[str] = None):
        self.calculator = RatingCalculator(params)
        if params_version is None:
            params_version = DEFAULT_PARAMS_VERSION if params is None else CUSTOM_PARAMS_VERSION
        self.params_version = params_version
        self.ledger = SubmissionLedger()

    @classmethod
    def from_session(cls, session: Session) -> "FinalizationCoordinator":
        params, version = get_active_rating_params(session)
        return cls(params=params, params_version=version)

    # ------------------------------------------------------------------
    # Forward
    # ------------------------------------------------------------------

    def finalize(
        self,
        session: Session,
        slot: MatchSlot,
        scorecard,
        resolution: str = "agreed",
        resolved_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FinalizedResult:
        """
        Apply an authoritative scorecard to ``slot``.

        Raises:
            DuplicateFinalization: The slot is already finalized. Nothing is
                                   changed. (Also an AlreadyFinalized.)
            PreconditionError: The slot is in a state that cannot finalize.
        """
        try:
            claim_transition(session, slot, "finalize", FINALIZED)
        except DuplicateFinalization:
            logger.error("Duplicate finalize on slot %s (%s)", slot.id, slot.discipline)
            raise

        match = slot.match
        now = now or utcnow()

        for number, entry in enumerate(scorecard.games, start=1):
            flags = entry.flags()
            session.add(Game(
                slot=slot,
                game_number=number,
                winner_id=match.player_id_for(entry.winner),
                break_and_run=flags["break_and_run"],
                rack_and_run=flags["rack_and_run"],
                snap_win=flags["snap_win"],
                early_win=flags["early_win"],
            ))

        rating_p1 = slot.frozen_rating_p1
        rating_p2 = slot.frozen_rating_p2
        default = Decimal(settings.default_rating)
        if rating_p1 is None or rating_p2 is None:
            logger.warning(
                "Slot %s has no frozen ratings; using default %s", slot.id, default
            )
        rating_p1 = Decimal(rating_p1 if rating_p1 is not None else default)
        rating_p2 = Decimal(rating_p2 if rating_p2 is not None else default)
        confidence_p1 = slot.frozen_confidence_p1 or 0
        confidence_p2 = slot.frozen_confidence_p2 or 0

        rating_update = self.calculator.calculate(
            rating_a=rating_p1,
            confidence_a=confidence_p1,
            rating_b=rating_p2,
            confidence_b=confidence_p2,
            winner="A" if scorecard.winner == "p1" else "B",
            score_a=scorecard.score_p1,
            score_b=scorecard.score_p2,
            event_type=match.event_type,
        )

        records = self._lock_records(session, match.league_id, match.player1_id, match.player2_id)
        record_p1 = records[match.player1_id]
        record_p2 = records[match.player2_id]

        counters_p1 = slot_counters(scorecard, "p1")
        counters_p2 = slot_counters(scorecard, "p2")
        increment_p1 = confidence_increment(
            record_p1.confidence, scorecard.racks_played, settings.confidence_max
        )
        increment_p2 = confidence_increment(
            record_p2.confidence, scorecard.racks_played, settings.confidence_max
        )

        self._apply(record_p1, rating_update.final_delta_a, increment_p1, counters_p1, sign=1)
        self._apply(record_p2, rating_update.final_delta_b, increment_p2, counters_p2, sign=1)

        slot.score_p1 = scorecard.score_p1
        slot.score_p2 = scorecard.score_p2
        slot.winner_id = match.player_id_for(scorecard.winner)
        slot.finalized_at = now
        if resolution == "agreed":
            slot.verified_p1 = True
            slot.verified_p2 = True

        audit = RatingAudit(
            slot_id=slot.id,
            league_id=match.league_id,
            player1_id=match.player1_id,
            player2_id=match.player2_id,
            winner_id=slot.winner_id,
            resolution=resolution,
            resolved_by=resolved_by,
            params_version=self.params_version,
            rating_before_p1=rating_p1,
            rating_before_p2=rating_p2,
            confidence_before_p1=confidence_p1,
            confidence_before_p2=confidence_p2,
            delta_p1=rating_update.final_delta_a,
            delta_p2=rating_update.final_delta_b,
            confidence_increment_p1=increment_p1,
            confidence_increment_p2=increment_p2,
            counters_p1=counters_p1,
            counters_p2=counters_p2,
            calculation={
                **rating_update.to_audit_dict(),
                "scorecard": scorecard.model_dump(mode="json"),
            },
            created_at=now,
        )
        session.add(audit)
        session.flush()

        logger.info(
            "Finalized slot %s (%s) %s-%s: deltas %s / %s (%s)",
            slot.id, slot.discipline, scorecard.score_p1, scorecard.score_p2,
            rating_update.final_delta_a, rating_update.final_delta_b, resolution,
        )

        return FinalizedResult(
            match_id=match.id,
            discipline=slot.discipline,
            status=slot.status,
            score_p1=scorecard.score_p1,
            score_p2=scorecard.score_p2,
            winner_id=slot.winner_id,
            delta_p1=rating_update.final_delta_a,
            delta_p2=rating_update.final_delta_b,
            rating_p1=record_p1.rating,
            rating_p2=record_p2.rating,
            confidence_p1=record_p1.confidence,
            confidence_p2=record_p2.confidence,
            resolution=resolution,
            audit_id=audit.id,
        )

    def forfeit(
        self,
        session: Session,
        slot: MatchSlot,
        forfeited_by: int,
        resolved_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FinalizedResult:
        """
        Finalize ``slot`` as forfeited by ``forfeited_by``.

        Ratings and confidence are left alone. Counters still move: both
        players are credited a match played and the opponent a match won.

        Raises:
            NotAParticipant: ``forfeited_by`` is not in the match.
            AlreadyFinalized: The slot is already finalized.
        """
        match = slot.match
        side = match.side_of(forfeited_by)
        if side is None:
            raise NotAParticipant(f"Player {forfeited_by} is not in match {match.id}")
        winner_side = "p2" if side == "p1" else "p1"

        claim_transition(session, slot, "forfeit", FINALIZED)
        now = now or utcnow()

        records = self._lock_records(session, match.league_id, match.player1_id, match.player2_id)
        record_p1 = records[match.player1_id]
        record_p2 = records[match.player2_id]
        rating_before_p1, rating_before_p2 = record_p1.rating, record_p2.rating
        confidence_before_p1, confidence_before_p2 = record_p1.confidence, record_p2.confidence

        counters_p1 = forfeit_counters(winner_side == "p1")
        counters_p2 = forfeit_counters(winner_side == "p2")
        self._apply(record_p1, ZERO_DELTA, 0, counters_p1, sign=1)
        self._apply(record_p2, ZERO_DELTA, 0, counters_p2, sign=1)

        slot.winner_id = match.player_id_for(winner_side)
        slot.is_forfeit = True
        slot.forfeited_by = forfeited_by
        slot.finalized_at = now

        audit = RatingAudit(
            slot_id=slot.id,
            league_id=match.league_id,
            player1_id=match.player1_id,
            player2_id=match.player2_id,
            winner_id=slot.winner_id,
            resolution="forfeit",
            resolved_by=resolved_by,
            params_version=self.params_version,
            rating_before_p1=rating_before_p1,
            rating_before_p2=rating_before_p2,
            confidence_before_p1=confidence_before_p1,
            confidence_before_p2=confidence_before_p2,
            delta_p1=ZERO_DELTA,
            delta_p2=ZERO_DELTA,
            confidence_increment_p1=0,
            confidence_increment_p2=0,
            counters_p1=counters_p1,
            counters_p2=counters_p2,
            calculation={"forfeited_by": forfeited_by, "winner": winner_side},
            created_at=now,
        )
        session.add(audit)
        session.flush()

        logger.info(
            "Slot %s (%s) forfeited by player %s", slot.id, slot.discipline, forfeited_by
        )

        return FinalizedResult(
            match_id=match.id,
            discipline=slot.discipline,
            status=slot.status,
            score_p1=None,
            score_p2=None,
            winner_id=slot.winner_id,
            delta_p1=ZERO_DELTA,
            delta_p2=ZERO_DELTA,
            rating_p1=record_p1.rating,
            rating_p2=record_p2.rating,
            confidence_p1=record_p1.confidence,
            confidence_p2=record_p2.confidence,
            resolution="forfeit",
            audit_id=audit.id,
            is_forfeit=True,
        )

    # ------------------------------------------------------------------
    # Backward
    # ------------------------------------------------------------------

    def reverse(
        self,
        session: Session,
        slot: MatchSlot,
        reset_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScheduledBaseline:
        """
        Undo a finalized slot using the values stored on its audit row.

        Raises:
            NotFinalized: The slot is not finalized.
            MissingAuditRecord: The slot is finalized but has no live audit row.
        """
        claim_transition(session, slot, "reverse", SCHEDULED)

        audit = (
            session.query(RatingAudit)
            .filter(RatingAudit.slot_id == slot.id, RatingAudit.reversed_at.is_(None))
            .order_by(RatingAudit.id.desc())
            .first()
        )
        if audit is None:
            logger.error("Finalized slot %s has no audit record to reverse", slot.id)
            raise MissingAuditRecord(f"No audit record for slot {slot.id}")

        match = slot.match
        records = self._lock_records(
            session, audit.league_id, audit.player1_id, audit.player2_id, create_missing=False
        )
        record_p1 = records[audit.player1_id]
        record_p2 = records[audit.player2_id]

        self._apply(record_p1, audit.delta_p1, audit.confidence_increment_p1, audit.counters_p1, sign=-1)
        self._apply(record_p2, audit.delta_p2, audit.confidence_increment_p2, audit.counters_p2, sign=-1)

        slot.games.clear()
        self.ledger.clear(slot)

        slot.score_p1 = None
        slot.score_p2 = None
        slot.winner_id = None
        slot.verified_p1 = False
        slot.verified_p2 = False
        slot.finalized_at = None
        slot.started_at = None
        slot.is_forfeit = False
        slot.forfeited_by = None

        audit.reversed_at = now or utcnow()
        if reset_by:
            audit.calculation = {**audit.calculation, "reversed_by": reset_by}
        session.flush()

        logger.info(
            "Reversed slot %s (%s): removed deltas %s / %s",
            slot.id, slot.discipline, audit.delta_p1, audit.delta_p2,
        )

        return ScheduledBaseline(
            match_id=match.id,
            discipline=slot.discipline,
            status=slot.status,
            race_length=slot.race_length,
            race_target_p1=slot.race_target_p1,
            race_target_p2=slot.race_target_p2,
            rating_p1=record_p1.rating,
            rating_p2=record_p2.rating,
            confidence_p1=record_p1.confidence,
            confidence_p2=record_p2.confidence,
            audit_id=audit.id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _apply(
        record: PlayerRatingRecord,
        delta: Decimal,
        increment: int,
        counters: dict,
        sign: int,
    ) -> None:
        record.rating = Decimal(record.rating) + sign * Decimal(delta)
        record.confidence = record.confidence + sign * increment
        for name in COUNTER_FIELDS:
            current = getattr(record, name) or 0
            setattr(record, name, current + sign * int(counters.get(name, 0)))

    @staticmethod
    def _lock_records(
        session: Session,
        league_id: int,
        player1_id: int,
        player2_id: int,
        create_missing: bool = True,
    ) -> dict[int, PlayerRatingRecord]:
        """Row-lock both rating records, lowest player id first."""
        player_ids = sorted([player1_id, player2_id])
        records = (
            session.query(PlayerRatingRecord)
            .filter(
                PlayerRatingRecord.league_id == league_id,
                PlayerRatingRecord.player_id.in_(player_ids),
            )
            .order_by(PlayerRatingRecord.player_id)
            .with_for_update()
            .all()
        )
        by_player = {r.player_id: r for r in records}

        for player_id in player_ids:
            if player_id in by_player:
                continue
            if not create_missing:
                raise InvariantViolation(
                    f"Rating record for player {player_id} in league {league_id} disappeared"
                )
            by_player[player_id] = create_rating_record(session, league_id, player_id)

        return by_player
