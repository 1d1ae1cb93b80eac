"""create pastes table

Revision ID: 001_pastes
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_pastes'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'pastes',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('ttl_seconds', sa.Integer(), nullable=True),
        sa.Column('max_views', sa.Integer(), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('max_views IS NULL OR max_views >= 1', name='ck_pastes_max_views_min_1'),
        sa.CheckConstraint('ttl_seconds IS NULL OR ttl_seconds >= 1', name='ck_pastes_ttl_seconds_min_1'),
        sa.CheckConstraint('view_count >= 0', name='ck_pastes_view_count_non_negative'),
    )
    # Lets external reclamation jobs find dead pastes; availability never depends on it.
    op.create_index('ix_pastes_expires_at', 'pastes', ['expires_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_pastes_expires_at', table_name='pastes')
    op.drop_table('pastes')
