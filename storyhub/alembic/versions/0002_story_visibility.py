"""story publication time, reports, hidden stories and favorites

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None

def upgrade():
    op.add_column('stories', sa.Column('published_at', sa.DateTime(timezone=True), nullable=True))
    # stories complete before this revision count as published
    op.execute("UPDATE stories SET published_at = created_at WHERE is_complete")

    op.create_table('reports',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('story_id', sa.Integer, sa.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('reporter_id', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('is_new', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_reports_id', 'reports', ['id'])
    op.create_index('ix_reports_story_id', 'reports', ['story_id'])
    op.create_index('ix_reports_reporter_id', 'reports', ['reporter_id'])
    op.create_table('hidden_stories',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('story_id', sa.Integer, sa.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('story_id', 'user_id', name='uix_story_user_hidden')
    )
    op.create_index('ix_hidden_stories_story_id', 'hidden_stories', ['story_id'])
    op.create_index('ix_hidden_stories_user_id', 'hidden_stories', ['user_id'])
    op.create_table('favorites',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('story_id', sa.Integer, sa.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('story_id', 'user_id', name='uix_story_user_favorite')
    )
    op.create_index('ix_favorites_story_id', 'favorites', ['story_id'])
    op.create_index('ix_favorites_user_id', 'favorites', ['user_id'])

def downgrade():
    op.drop_table('favorites')
    op.drop_table('hidden_stories')
    op.drop_table('reports')
    op.drop_column('stories', 'published_at')
