"""
SQLAlchemy ORM models for CueRank.

The schema is built around the match slot: every match carries exactly two
slots (one per discipline) and all scoring, verification and rating work
happens at slot level. The overall match status is computed from the slots
and is never stored.

Key design decisions:
- Race targets and the ratings they were computed from are frozen on the
  slot when it is started and never rewritten.
- Submissions are kept per side until reconciled; games are only written
  when a slot is finalized.
- Every finalize writes a rating_audits row holding the exact deltas and
  counter increments applied, so a reset subtracts stored values instead of
  recomputing them.
- Ratings and deltas are Numeric(8, 2) so that apply-then-subtract is exact.

Tables:
- players: Participants
- operator_users: Accounts allowed to resolve disputes and reset slots
- matches: Two-participant fixtures within a league
- match_slots: One per discipline per match
- submissions: Each participant's pending scorecard for a slot
- games: Per-rack results of a finalized slot
- player_rating_records: Rating, confidence and counters per league/player
- rating_audits: Inputs and intermediates of every finalize
- rating_parameter_sets: Named rating engine parameter sets
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from cuerank.slot_statuses import ALL_SLOT_STATUSES, SCHEDULED, derive_match_status


# =============================================================================
# Constants
# =============================================================================

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

EVENT_TYPES: tuple[str, ...] = ("league", "playoffs", "tournament")

# Counter columns on PlayerRatingRecord, in display order
COUNTER_FIELDS: tuple[str, ...] = (
    "racks_played",
    "racks_won",
    "matches_played",
    "matches_won",
    "break_and_runs",
    "rack_and_runs",
    "snap_wins",
    "early_wins",
    "shutouts",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _status_check(column: str) -> str:
    allowed = ", ".join(f"'{s}'" for s in ALL_SLOT_STATUSES)
    return f"{column} IN ({allowed})"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Player Models
# =============================================================================

class Player(Base):
    """A participant. Identity and accounts live outside this service."""

    __tablename__ = "players"

    id: Mapped[int] = mapped_column(primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Player(id={self.id}, name='{self.display_name}')>"


class OperatorUser(Base):
    """Operator account for dispute resolution and slot resets."""

    __tablename__ = "operator_users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_operator_users_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<OperatorUser(username='{self.username}', active={self.is_active})>"


# =============================================================================
# Match Models
# =============================================================================

class Match(Base):
    """
    A two-participant fixture with one slot per discipline.

    League, season and tournament administration are owned elsewhere; a
    match only records the league id it belongs to (rating records are kept
    per league) and the kind of event, which weights rating changes.

    Scheduling:
    - scheduled_date: Calendar day the match may be played, or None for
      ad-hoc play (never locked)
    - timezone: IANA name the play window is evaluated in
    - is_manually_unlocked: Operator override of the play window
    """
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True)
    league_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player1_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    player2_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)

    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False, default="league")
    is_manually_unlocked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    player1: Mapped["Player"] = relationship(foreign_keys=[player1_id])
    player2: Mapped["Player"] = relationship(foreign_keys=[player2_id])
    slots: Mapped[list["MatchSlot"]] = relationship(
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="MatchSlot.discipline",
    )

    __table_args__ = (
        CheckConstraint("player1_id <> player2_id", name="ck_matches_distinct_players"),
        CheckConstraint(
            "event_type IN ('league', 'playoffs', 'tournament')",
            name="ck_matches_event_type",
        ),
        Index("idx_matches_league", "league_id"),
        Index("idx_matches_scheduled_date", "scheduled_date"),
        Index("idx_matches_player1", "player1_id"),
        Index("idx_matches_player2", "player2_id"),
    )

    @property
    def status(self) -> str:
        """Overall status, derived from the slots."""
        return derive_match_status(slot.status for slot in self.slots)

    def side_of(self, player_id: int) -> Optional[str]:
        """'p1' or 'p2' for a participant, None for anyone else."""
        if player_id == self.player1_id:
            return "p1"
        if player_id == self.player2_id:
            return "p2"
        return None

    def player_id_for(self, side: str) -> int:
        return self.player1_id if side == "p1" else self.player2_id

    def __repr__(self) -> str:
        return f"<Match(id={self.id}, league={self.league_id}, status='{self.status}')>"


class MatchSlot(Base):
    """
    One discipline's contest within a match.

    Status lifecycle (see cuerank.slot_statuses):
    - 'scheduled': Created with the match, or reset after finalization
    - 'in_progress': Started; race targets and ratings frozen
    - 'pending_verification': One side has submitted
    - 'disputed': The two submissions disagree
    - 'finalized': Result applied to both rating records, or forfeited
    """
    __tablename__ = "match_slots"

    id: Mapped[int] = mapped_column(primary_key=True)
    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    discipline: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=SCHEDULED)

    # Set once, on first start
    race_length: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    race_target_p1: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    race_target_p2: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    frozen_rating_p1: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    frozen_rating_p2: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    frozen_confidence_p1: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    frozen_confidence_p2: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Result (finalization only)
    score_p1: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_p2: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    winner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("players.id"), nullable=True)
    verified_p1: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    verified_p2: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Forfeit: finalized without play, winner is the other side
    is_forfeit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    forfeited_by: Mapped[Optional[int]] = mapped_column(ForeignKey("players.id"), nullable=True)

    match: Mapped["Match"] = relationship(back_populates="slots")
    submissions: Mapped[list["Submission"]] = relationship(
        back_populates="slot", cascade="all, delete-orphan"
    )
    games: Mapped[list["Game"]] = relationship(
        back_populates="slot", cascade="all, delete-orphan", order_by="Game.game_number"
    )

    __table_args__ = (
        UniqueConstraint("match_id", "discipline", name="uq_match_slots_match_discipline"),
        CheckConstraint(_status_check("status"), name="ck_match_slots_status"),
        Index("idx_match_slots_status", "status"),
    )

    @property
    def is_started(self) -> bool:
        return self.race_target_p1 is not None and self.race_target_p2 is not None

    def __repr__(self) -> str:
        return f"<MatchSlot(match={self.match_id}, discipline='{self.discipline}', status='{self.status}')>"


class Submission(Base):
    """A participant's scorecard for a slot, pending reconciliation."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(primary_key=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("match_slots.id", ondelete="CASCADE"), nullable=False)
    side: Mapped[str] = mapped_column(String(2), nullable=False)  # 'p1' or 'p2'
    submitted_by: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    scorecard: Mapped[dict] = mapped_column(JSONType, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    slot: Mapped["MatchSlot"] = relationship(back_populates="submissions")

    __table_args__ = (
        UniqueConstraint("slot_id", "side", name="uq_submissions_slot_side"),
        CheckConstraint("side IN ('p1', 'p2')", name="ck_submissions_side"),
    )

    def __repr__(self) -> str:
        return f"<Submission(slot={self.slot_id}, side='{self.side}')>"


class Game(Base):
    """One rack of a finalized slot."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(primary_key=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("match_slots.id", ondelete="CASCADE"), nullable=False)
    game_number: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    break_and_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rack_and_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    snap_win: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    early_win: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    slot: Mapped["MatchSlot"] = relationship(back_populates="games")

    __table_args__ = (
        UniqueConstraint("slot_id", "game_number", name="uq_games_slot_number"),
    )

    def __repr__(self) -> str:
        return f"<Game(slot={self.slot_id}, number={self.game_number}, winner={self.winner_id})>"


# =============================================================================
# Rating Models
# =============================================================================

class PlayerRatingRecord(Base):
    """Current rating, confidence and cumulative counters per league and player."""

    __tablename__ = "player_rating_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    league_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    rating: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("500.00"))
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    racks_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    racks_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matches_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matches_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    break_and_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rack_and_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snap_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    early_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shutouts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    player: Mapped["Player"] = relationship()

    __table_args__ = (
        UniqueConstraint("league_id", "player_id", name="uq_player_rating_records_league_player"),
        CheckConstraint("confidence >= 0", name="ck_player_rating_records_confidence"),
    )

    def counters(self) -> dict[str, int]:
        return {name: getattr(self, name) or 0 for name in COUNTER_FIELDS}

    def __repr__(self) -> str:
        return f"<PlayerRatingRecord(league={self.league_id}, player={self.player_id}, rating={self.rating})>"


class RatingAudit(Base):
    """
    Everything a finalize computed and applied, for dispute review and reset.

    ``calculation`` holds the engine's intermediates (expected probability,
    base delta, every multiplier) as strings so they round-trip exactly.
    The applied deltas, confidence increments and counter increments are
    what a reset subtracts.
    """
    __tablename__ = "rating_audits"

    id: Mapped[int] = mapped_column(primary_key=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("match_slots.id", ondelete="CASCADE"), nullable=False)
    league_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player1_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    player2_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    winner_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)

    resolution: Mapped[str] = mapped_column(String(30), nullable=False)  # 'agreed', 'operator_override'
    resolved_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    params_version: Mapped[str] = mapped_column(String(100), nullable=False)

    rating_before_p1: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    rating_before_p2: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    confidence_before_p1: Mapped[int] = mapped_column(Integer, nullable=False)
    confidence_before_p2: Mapped[int] = mapped_column(Integer, nullable=False)
    delta_p1: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    delta_p2: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    confidence_increment_p1: Mapped[int] = mapped_column(Integer, nullable=False)
    confidence_increment_p2: Mapped[int] = mapped_column(Integer, nullable=False)
    counters_p1: Mapped[dict] = mapped_column(JSONType, nullable=False)
    counters_p2: Mapped[dict] = mapped_column(JSONType, nullable=False)
    calculation: Mapped[dict] = mapped_column(JSONType, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_rating_audits_slot", "slot_id"),
        Index("idx_rating_audits_league", "league_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slot_id": self.slot_id,
            "league_id": self.league_id,
            "player1_id": self.player1_id,
            "player2_id": self.player2_id,
            "winner_id": self.winner_id,
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
            "params_version": self.params_version,
            "rating_before": [str(self.rating_before_p1), str(self.rating_before_p2)],
            "confidence_before": [self.confidence_before_p1, self.confidence_before_p2],
            "delta": [str(self.delta_p1), str(self.delta_p2)],
            "confidence_increment": [self.confidence_increment_p1, self.confidence_increment_p2],
            "counters": [self.counters_p1, self.counters_p2],
            "calculation": self.calculation,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "reversed_at": self.reversed_at.isoformat() if self.reversed_at else None,
        }

    def __repr__(self) -> str:
        return f"<RatingAudit(slot={self.slot_id}, reversed={self.reversed_at is not None})>"


class RatingParameterSet(Base):
    """Persisted rating parameter sets (defaults and tuned variants)."""

    __tablename__ = "rating_parameter_sets"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    params: Mapped[dict] = mapped_column(JSONType, nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False, default="manual")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_rating_parameter_sets_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<RatingParameterSet(name='{self.name}', active={self.is_active})>"
