"""Create visitor tracking tables

Revision ID: 3f9c1e7a2b64
Revises:
Create Date: 2025-11-03 10:12:47.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c1e7a2b64'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        'site_visit',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('session_id', sa.String(255), nullable=False),
        sa.Column('page_path', sa.String(500), nullable=False),
        sa.Column('visited_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('session_id', 'page_path', name='uq_site_visit_session_page'),
    )
    op.create_index('ix_site_visit_session_id', 'site_visit', ['session_id'])

    op.create_table(
        'site_session',
        sa.Column('session_id', sa.String(255), primary_key=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Single-row aggregate, the check constraint rules out a second row
    op.create_table(
        'site_stats',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('total_visits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unique_sessions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('id = 1', name='ck_site_stats_singleton'),
        sa.CheckConstraint('total_visits >= 0', name='ck_site_stats_total_visits'),
        sa.CheckConstraint('unique_sessions >= 0', name='ck_site_stats_unique_sessions'),
    )


def downgrade():
    op.drop_table('site_stats')
    op.drop_table('site_session')
    op.drop_index('ix_site_visit_session_id', 'site_visit')
    op.drop_table('site_visit')
