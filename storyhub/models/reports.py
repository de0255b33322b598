from sqlalchemy import Column, Integer, Text, DateTime, Boolean, ForeignKey, func
from . import Base

class Report(Base):
    __tablename__ = 'reports'
    id = Column(Integer, primary_key=True, index=True)
    story_id = Column(Integer, ForeignKey('stories.id', ondelete='CASCADE'), index=True, nullable=False)
    reporter_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), index=True, nullable=True)
    reason = Column(Text, nullable=False)
    is_new = Column(Boolean, nullable=False, default=True)  # not yet reviewed by moderation
    created_at = Column(DateTime(timezone=True), server_default=func.now())
