# post_scheduler/schemas/draft_schema.py
from pydantic import Field
from typing import Optional, List
import uuid

from .schedule_schema import CamelModel, Issue, PlatformTarget, UtcDatetime


class DraftCreate(CamelModel):
    caption: str
    media_urls: List[str] = Field(default_factory=list)


class DraftUpdate(CamelModel):
    caption: str


class DraftRead(CamelModel):
    id: uuid.UUID
    caption: str
    media_urls: List[str]
    created_at: UtcDatetime


class DraftPostRequest(CamelModel):
    platforms: List[PlatformTarget] = Field(min_length=1)


class DraftPostOutcome(CamelModel):
    provider: str
    post_id: Optional[uuid.UUID] = None
    status: str
    issues: List[Issue] = Field(default_factory=list)
    error: Optional[str] = None


class DraftPostResult(CamelModel):
    draft_id: uuid.UUID
    results: List[DraftPostOutcome]
    succeeded: int
    failed: int
