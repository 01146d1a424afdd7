# post_scheduler/schemas/schedule_schema.py
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal, Dict, Any, Annotated
import uuid
from datetime import date, datetime, timezone

Provider = Literal["instagram", "facebook", "pinterest", "tiktok", "twitter", "linkedin", "youtube"]


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# timestamps are stored as naive UTC
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PlatformTarget(CamelModel):
    provider: Provider
    options: Optional[Dict[str, Any]] = None


class Media(CamelModel):
    type: Literal["image", "video"]
    url: str = Field(min_length=1)


class Issue(CamelModel):
    provider: str
    reason: Literal["unconnected", "missing_option"]


class Failure(CamelModel):
    provider: str
    error: str


class ScheduleCreate(CamelModel):
    caption: str
    media: Optional[Media] = None
    platforms: List[PlatformTarget] = Field(default_factory=list)
    scheduled_at: Optional[datetime] = None


class ScheduleUpdate(CamelModel):
    """Partial update; only fields present in the request body are applied."""

    caption: Optional[str] = None
    media: Optional[Media] = None
    platforms: Optional[List[PlatformTarget]] = None
    scheduled_at: Optional[datetime] = None
    version: Optional[int] = None  # optimistic check against ScheduleRead.version

    @field_validator("platforms")
    @classmethod
    def _platforms_not_null(cls, value):
        if value is None:
            raise ValueError("platforms may be empty but not null")
        return value


class ScheduleResolve(CamelModel):
    platforms: List[PlatformTarget]


class ScheduleRead(CamelModel):
    id: uuid.UUID
    status: str
    caption: str
    media: Optional[Media] = None
    platforms: List[PlatformTarget]
    issues: List[Issue] = Field(default_factory=list)
    failures: List[Failure] = Field(default_factory=list)
    scheduled_at: Optional[UtcDatetime] = None
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
    published_at: Optional[UtcDatetime] = None


class CalendarEntry(CamelModel):
    id: uuid.UUID
    status: str
    scheduled_at: UtcDatetime
    platforms: List[PlatformTarget]
    caption: str
    media_url: Optional[str] = None

    @classmethod
    def from_post(cls, post) -> "CalendarEntry":
        return cls(
            id=post.id,
            status=post.status,
            scheduled_at=post.scheduled_at,
            platforms=post.platforms,
            caption=post.caption,
            media_url=(post.media or {}).get("url"),
        )


class CalendarDay(CamelModel):
    day: date
    posts: List[CalendarEntry]


class PublishLogRead(CamelModel):
    level: str
    message: str
    raw: Optional[Dict[str, Any]] = None
    created_at: UtcDatetime


class ScheduleStatusRead(CamelModel):
    id: uuid.UUID
    status: str
    issues: List[Issue] = Field(default_factory=list)
    failures: List[Failure] = Field(default_factory=list)
    logs: List[PublishLogRead] = Field(default_factory=list)
