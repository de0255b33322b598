from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, func
from . import Base

class HiddenStory(Base):
    """A story one user chose not to see in their feed."""
    __tablename__ = 'hidden_stories'
    __table_args__ = (UniqueConstraint('story_id', 'user_id', name='uix_story_user_hidden'),)
    id = Column(Integer, primary_key=True)
    story_id = Column(Integer, ForeignKey('stories.id', ondelete='CASCADE'), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
