from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional

MAX_STORY_CONTENT = 2500


class StoryFieldsIn(BaseModel):
    """Optional story metadata; on chunked uploads it is applied on the first and last chunk."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, min_length=2, max_length=100)
    image: Optional[str] = None
    audio: Optional[str] = None
    audio_duration: Optional[float] = Field(None, ge=0, alias='audioDuration')


class StoryCreateIn(StoryFieldsIn):
    content: str = Field(..., min_length=1, max_length=MAX_STORY_CONTENT)


class StoryChunkIn(StoryFieldsIn):
    content: str = Field(..., min_length=1)
    is_chunk: bool = Field(True, alias='isChunk')
    chunk_index: int = Field(0, ge=0, alias='chunkIndex')
    total_chunks: int = Field(1, ge=1, alias='totalChunks')
    story_id: Optional[int] = Field(None, alias='storyId')

    @model_validator(mode='after')
    def index_within_total(self):
        if self.chunk_index >= self.total_chunks:
            raise ValueError('chunkIndex must be less than totalChunks')
        return self


class MediaReplacementIn(BaseModel):
    """Previously stored media to drop from object storage once an edit is saved."""
    model_config = ConfigDict(populate_by_name=True)

    image_before_change: Optional[str] = Field(None, alias='imageBeforeChange')
    audio_before_change: Optional[str] = Field(None, alias='audioBeforeChange')


class StoryUpdateIn(StoryFieldsIn, MediaReplacementIn):
    content: Optional[str] = Field(None, min_length=1, max_length=MAX_STORY_CONTENT)


class StoryEditChunkIn(StoryChunkIn, MediaReplacementIn):
    pass


class StoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    author_id: int = Field(..., serialization_alias='authorId')
    title: Optional[str]
    content: str
    image: str
    audio: str
    audio_duration: Optional[float] = Field(None, serialization_alias='audioDuration')
    is_complete: bool = Field(..., serialization_alias='isComplete')
    published_at: Optional[datetime] = Field(None, serialization_alias='publishedAt')
    created_at: Optional[datetime] = Field(None, serialization_alias='createdAt')


class UploadProgressOut(BaseModel):
    story_id: int = Field(..., serialization_alias='storyId')
    chunk_index: int = Field(..., serialization_alias='chunkIndex')
    chunks_received: int = Field(..., serialization_alias='chunksReceived')
    total_chunks: int = Field(..., serialization_alias='totalChunks')
    is_complete: bool = Field(..., serialization_alias='isComplete')
    next_chunk_index: Optional[int] = Field(None, serialization_alias='nextChunkIndex')


class MediaPresignIn(BaseModel):
    filename: str = Field(..., min_length=1, max_length=200)
    content_type: str = Field(..., alias='contentType')


def story_snapshot(story) -> dict:
    return StoryOut.model_validate(story).model_dump(mode='json', by_alias=True)
