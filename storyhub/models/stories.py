from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, ForeignKey, func
from . import Base

class Story(Base):
    __tablename__ = 'stories'
    id = Column(Integer, primary_key=True)
    author_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    title = Column(String(100), nullable=True)
    content = Column(Text, nullable=False)
    image = Column(String, nullable=False, default='')
    audio = Column(String, nullable=False, default='')
    audio_duration = Column(Float, nullable=True)
    # drafts (still uploading) stay out of feeds, likes and comments
    is_complete = Column(Boolean, nullable=False, default=True, index=True)
    # set the first time the story completes; published stories are never reaped as drafts
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
