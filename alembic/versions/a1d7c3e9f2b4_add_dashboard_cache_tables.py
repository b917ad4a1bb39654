"""Add segments, activities and dashboard cache tables

Segments carry the dashboard refresh watermark; dashboard_cache holds one
row per (tenant, segment, timeframe, platform) slice.

Revision ID: a1d7c3e9f2b4
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'a1d7c3e9f2b4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'segments',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), nullable=False, index=True),
        sa.Column('parent_id', sa.String(), sa.ForeignKey('segments.id'), nullable=True, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=True),
        sa.Column('dashboard_cache_last_refreshed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'activities',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), nullable=False, index=True),
        sa.Column('segment_id', sa.String(), nullable=False, index=True),
        sa.Column('member_id', sa.String(), nullable=True, index=True),
        sa.Column('platform', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=True),
        sa.Column('sentiment_mood', sa.String(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_activities_segment_created', 'activities', ['segment_id', 'created_at'])

    op.create_table(
        'dashboard_cache',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('tenant_id', sa.String(), nullable=False, index=True),
        sa.Column('segment_id', sa.String(), nullable=False, index=True),
        sa.Column('timeframe', sa.String(), nullable=False),
        sa.Column('platform', sa.String(), nullable=False, server_default='all'),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('refreshed_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('tenant_id', 'segment_id', 'timeframe', 'platform', name='uq_dashboard_cache_slice'),
    )


def downgrade() -> None:
    op.drop_table('dashboard_cache')
    op.drop_index('ix_activities_segment_created', table_name='activities')
    op.drop_table('activities')
    op.drop_table('segments')
