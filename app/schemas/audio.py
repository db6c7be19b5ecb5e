"""Audio sample schemas."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class AudioSampleResponse(BaseModel):
    """Schema for one stored training sample."""
    url: str
    public_id: str = Field(serialization_alias="publicId")
    owner: str
    created_at: datetime = Field(serialization_alias="createdAt")
    format: str
    size: int
    tags: List[str] = []

    class Config:
        from_attributes = True


class AudioListResponse(BaseModel):
    count: int
    files: List[AudioSampleResponse]
