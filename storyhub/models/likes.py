from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from . import Base

class Like(Base):
    __tablename__ = 'likes'
    __table_args__ = (UniqueConstraint('story_id', 'user_id', name='uix_story_user_like'),)
    id = Column(Integer, primary_key=True)
    story_id = Column(Integer, ForeignKey('stories.id', ondelete='CASCADE'), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
