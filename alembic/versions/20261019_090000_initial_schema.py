"""Initial schema: matches, slots, submissions, games, ratings, audits, operators

Revision ID: 5a1c0e2b9f10
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# Revision identifiers, used by Alembic.
revision: str = "5a1c0e2b9f10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SLOT_STATUS_CHECK = (
    "status IN ('scheduled', 'in_progress', 'pending_verification', 'finalized', 'disputed')"
)


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "operator_users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("last_login_at"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_index("idx_operator_users_active", "operator_users", ["is_active"], unique=False)

    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("league_id", sa.Integer(), nullable=False),
        sa.Column("player1_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("player2_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("event_type", sa.String(length=20), nullable=False),
        sa.Column(
            "is_manually_unlocked", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("player1_id <> player2_id", name="ck_matches_distinct_players"),
        sa.CheckConstraint(
            "event_type IN ('league', 'playoffs', 'tournament')", name="ck_matches_event_type"
        ),
    )
    op.create_index("idx_matches_league", "matches", ["league_id"], unique=False)
    op.create_index("idx_matches_scheduled_date", "matches", ["scheduled_date"], unique=False)
    op.create_index("idx_matches_player1", "matches", ["player1_id"], unique=False)
    op.create_index("idx_matches_player2", "matches", ["player2_id"], unique=False)

    op.create_table(
        "match_slots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "match_id", sa.Integer(), sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("discipline", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("race_length", sa.String(length=10), nullable=True),
        sa.Column("race_target_p1", sa.Integer(), nullable=True),
        sa.Column("race_target_p2", sa.Integer(), nullable=True),
        sa.Column("frozen_rating_p1", sa.Numeric(8, 2), nullable=True),
        sa.Column("frozen_rating_p2", sa.Numeric(8, 2), nullable=True),
        sa.Column("frozen_confidence_p1", sa.Integer(), nullable=True),
        sa.Column("frozen_confidence_p2", sa.Integer(), nullable=True),
        _ts("started_at"),
        sa.Column("score_p1", sa.Integer(), nullable=True),
        sa.Column("score_p2", sa.Integer(), nullable=True),
        sa.Column("winner_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=True),
        sa.Column("verified_p1", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("verified_p2", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("finalized_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("match_id", "discipline", name="uq_match_slots_match_discipline"),
        sa.CheckConstraint(SLOT_STATUS_CHECK, name="ck_match_slots_status"),
    )
    op.create_index("idx_match_slots_status", "match_slots", ["status"], unique=False)

    op.create_table(
        "submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "slot_id", sa.Integer(), sa.ForeignKey("match_slots.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("side", sa.String(length=2), nullable=False),
        sa.Column("submitted_by", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("scorecard", _json(), nullable=False),
        _ts("submitted_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slot_id", "side", name="uq_submissions_slot_side"),
        sa.CheckConstraint("side IN ('p1', 'p2')", name="ck_submissions_side"),
    )

    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "slot_id", sa.Integer(), sa.ForeignKey("match_slots.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("game_number", sa.Integer(), nullable=False),
        sa.Column("winner_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("break_and_run", sa.Boolean(), nullable=False),
        sa.Column("rack_and_run", sa.Boolean(), nullable=False),
        sa.Column("snap_win", sa.Boolean(), nullable=False),
        sa.Column("early_win", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slot_id", "game_number", name="uq_games_slot_number"),
    )

    counter_columns = [
        sa.Column(name, sa.Integer(), nullable=False, server_default="0")
        for name in (
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
    ]
    op.create_table(
        "player_rating_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("league_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("rating", sa.Numeric(8, 2), nullable=False, server_default="500.00"),
        sa.Column("confidence", sa.Integer(), nullable=False, server_default="0"),
        *counter_columns,
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "league_id", "player_id", name="uq_player_rating_records_league_player"
        ),
        sa.CheckConstraint("confidence >= 0", name="ck_player_rating_records_confidence"),
    )

    op.create_table(
        "rating_audits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "slot_id", sa.Integer(), sa.ForeignKey("match_slots.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("league_id", sa.Integer(), nullable=False),
        sa.Column("player1_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("player2_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("winner_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("resolution", sa.String(length=30), nullable=False),
        sa.Column("resolved_by", sa.String(length=100), nullable=True),
        sa.Column("params_version", sa.String(length=100), nullable=False),
        sa.Column("rating_before_p1", sa.Numeric(8, 2), nullable=False),
        sa.Column("rating_before_p2", sa.Numeric(8, 2), nullable=False),
        sa.Column("confidence_before_p1", sa.Integer(), nullable=False),
        sa.Column("confidence_before_p2", sa.Integer(), nullable=False),
        sa.Column("delta_p1", sa.Numeric(8, 2), nullable=False),
        sa.Column("delta_p2", sa.Numeric(8, 2), nullable=False),
        sa.Column("confidence_increment_p1", sa.Integer(), nullable=False),
        sa.Column("confidence_increment_p2", sa.Integer(), nullable=False),
        sa.Column("counters_p1", _json(), nullable=False),
        sa.Column("counters_p2", _json(), nullable=False),
        sa.Column("calculation", _json(), nullable=False),
        _ts("created_at"),
        _ts("reversed_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_rating_audits_slot", "rating_audits", ["slot_id"], unique=False)
    op.create_index("idx_rating_audits_league", "rating_audits", ["league_id"], unique=False)

    op.create_table(
        "rating_parameter_sets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("params", _json(), nullable=False),
        sa.Column("source", sa.String(length=30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index(
        "idx_rating_parameter_sets_active", "rating_parameter_sets", ["is_active"], unique=False
    )


def downgrade() -> None:
    op.drop_index("idx_rating_parameter_sets_active", table_name="rating_parameter_sets")
    op.drop_table("rating_parameter_sets")
    op.drop_index("idx_rating_audits_league", table_name="rating_audits")
    op.drop_index("idx_rating_audits_slot", table_name="rating_audits")
    op.drop_table("rating_audits")
    op.drop_table("player_rating_records")
    op.drop_table("games")
    op.drop_table("submissions")
    op.drop_index("idx_match_slots_status", table_name="match_slots")
    op.drop_table("match_slots")
    op.drop_index("idx_matches_player2", table_name="matches")
    op.drop_index("idx_matches_player1", table_name="matches")
    op.drop_index("idx_matches_scheduled_date", table_name="matches")
    op.drop_index("idx_matches_league", table_name="matches")
    op.drop_table("matches")
    op.drop_index("idx_operator_users_active", table_name="operator_users")
    op.drop_table("operator_users")
    op.drop_table("players")
