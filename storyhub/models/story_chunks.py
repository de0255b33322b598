from sqlalchemy import Column, Integer, Text, DateTime, Boolean, ForeignKey, func
from . import Base

class StoryChunk(Base):
    """Bookkeeping for the chunked upload session of one story."""
    __tablename__ = 'story_chunks'
    story_id = Column(Integer, ForeignKey('stories.id', ondelete='CASCADE'), primary_key=True)
    content = Column(Text, nullable=False)
    chunk_index = Column(Integer, nullable=False, default=0)  # last applied
    received_chunks = Column(Integer, nullable=False, default=1)
    total_chunks = Column(Integer, nullable=False)
    is_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
