from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class CommentIn(BaseModel):
    comment: str = Field(..., min_length=1, max_length=1000)


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    story_id: int = Field(..., serialization_alias='storyId')
    author_id: int = Field(..., serialization_alias='authorId')
    content: str
    created_at: Optional[datetime] = Field(None, serialization_alias='createdAt')
