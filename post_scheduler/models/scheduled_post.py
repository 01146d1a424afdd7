# post_scheduler/models/scheduled_post.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional, List, Iterable
from datetime import datetime
from enum import Enum
import uuid
from sqlalchemy import JSON, DateTime, String

from ..errors import InvalidStateError
from ..utils import utc_now


class PostStatus(str, Enum):
    """Lifecycle of a scheduled post.

    Transitions:
        scheduled_pending <-> scheduled -> publishing -> published
                                                      -> failed
    """

    SCHEDULED_PENDING = "scheduled_pending"
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PostStatus.PUBLISHED, PostStatus.FAILED)

    @property
    def is_editable(self) -> bool:
        return self in (PostStatus.SCHEDULED_PENDING, PostStatus.SCHEDULED)


class ScheduledPost(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(sa_column=Column(String, index=True, nullable=False))
    caption: str
    media: Optional[dict] = Field(default=None, sa_column=Column(JSON))  # {"type": "image"|"video", "url": ...}
    platforms: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    scheduled_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime())  # naive UTC
    status: str = Field(default=PostStatus.SCHEDULED_PENDING.value, sa_column=Column(String, index=True))
    issues: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    failures: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime())
    published_at: Optional[datetime] = Field(default=None, sa_type=DateTime())

    @property
    def post_status(self) -> PostStatus:
        return PostStatus(self.status)

    @property
    def providers(self) -> List[str]:
        return [t["provider"] for t in self.platforms]

    def touch(self) -> None:
        self.updated_at = utc_now()

    def apply_classification(self, classification) -> PostStatus:
        """Move between scheduled_pending and scheduled from a resolver result.

        With no targets at all the post is kept pending with no issues, so a
        post is never lost for lack of a connected account.
        """
        if not self.post_status.is_editable:
            raise InvalidStateError(self.status, "reschedule")
        if not self.platforms or classification.issues:
            self.status = PostStatus.SCHEDULED_PENDING.value
            self.issues = [issue.as_dict() for issue in classification.issues]
        else:
            self.status = PostStatus.SCHEDULED.value
            self.issues = []
        self.touch()
        return self.post_status

    def begin_publishing(self) -> None:
        if self.post_status is not PostStatus.SCHEDULED:
            raise InvalidStateError(self.status, "publish")
        self.status = PostStatus.PUBLISHING.value
        self.touch()

    def finish_publishing(self, failures: Iterable[dict]) -> PostStatus:
        # any rejected target fails the whole post; every failure is kept
        if self.post_status is not PostStatus.PUBLISHING:
            raise InvalidStateError(self.status, "complete")
        self.failures = list(failures)
        if self.failures:
            self.status = PostStatus.FAILED.value
        else:
            self.status = PostStatus.PUBLISHED.value
            self.published_at = utc_now()
        self.touch()
        return self.post_status

    def copy_for_duplicate(self) -> "ScheduledPost":
        return ScheduledPost(
            user_id=self.user_id,
            caption=self.caption,
            media=dict(self.media) if self.media else None,
            platforms=[dict(t, options=dict(t["options"])) if t.get("options") else dict(t) for t in self.platforms],
            scheduled_at=None,
            status=PostStatus.SCHEDULED_PENDING.value,
            issues=[],
        )
