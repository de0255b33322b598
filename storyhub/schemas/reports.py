from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class ReportIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    story_id: int = Field(..., serialization_alias='storyId')
    reporter_id: Optional[int] = Field(None, serialization_alias='reporterId')
    reason: str
    is_new: bool = Field(..., serialization_alias='isNew')
    created_at: Optional[datetime] = Field(None, serialization_alias='createdAt')
