"""Add forfeit columns to match_slots

Revision ID: 7d3e9a41c2b6
Revises: 5a1c0e2b9f10
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers, used by Alembic
revision: str = '7d3e9a41c2b6'
down_revision: Union[str, None] = '5a1c0e2b9f10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'match_slots',
        sa.Column('is_forfeit', sa.Boolean(), nullable=False, server_default=sa.text('false')),
    )
    # Only set on forfeited slots
    op.add_column(
        'match_slots',
        sa.Column('forfeited_by', sa.Integer(), sa.ForeignKey('players.id'), nullable=True),
    )


def downgrade() -> None:
    op.drop_column('match_slots', 'forfeited_by')
    op.drop_column('match_slots', 'is_forfeit')
