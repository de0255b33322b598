"""initial

Revision ID: 0001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('username', sa.String(150), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_table('stories',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('author_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(100), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image', sa.String(), nullable=False, server_default=''),
        sa.Column('audio', sa.String(), nullable=False, server_default=''),
        sa.Column('audio_duration', sa.Float(), nullable=True),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_stories_author_id', 'stories', ['author_id'])
    op.create_index('ix_stories_is_complete', 'stories', ['is_complete'])
    op.create_index('ix_stories_created_at', 'stories', ['created_at'])
    op.create_table('story_chunks',
        sa.Column('story_id', sa.Integer, sa.ForeignKey('stories.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('chunk_index', sa.Integer, nullable=False, server_default='0'),
        sa.Column('received_chunks', sa.Integer, nullable=False, server_default='1'),
        sa.Column('total_chunks', sa.Integer, nullable=False),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_table('comments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('story_id', sa.Integer, sa.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_comments_id', 'comments', ['id'])
    op.create_index('ix_comments_story_id', 'comments', ['story_id'])
    op.create_table('likes',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('story_id', sa.Integer, sa.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('story_id', 'user_id', name='uix_story_user_like')
    )
    op.create_index('ix_likes_story_id', 'likes', ['story_id'])

def downgrade():
    op.drop_table('likes')
    op.drop_table('comments')
    op.drop_table('story_chunks')
    op.drop_table('stories')
    op.drop_table('users')
