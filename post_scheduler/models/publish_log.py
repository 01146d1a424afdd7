# post_scheduler/models/publish_log.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
import uuid
from sqlalchemy import JSON, DateTime

from ..utils import utc_now


class PublishLog(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    post_id: uuid.UUID = Field(foreign_key="scheduledpost.id", index=True)
    level: str = Field(default="info")  # info, warn, error
    message: str
    raw: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime())
