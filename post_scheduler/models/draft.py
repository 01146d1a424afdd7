# post_scheduler/models/draft.py
from sqlmodel import SQLModel, Field, Column
from typing import List
from datetime import datetime
import uuid
from sqlalchemy import JSON, DateTime, String

from ..utils import utc_now


class Draft(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(sa_column=Column(String, index=True, nullable=False))
    caption: str
    media_urls: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime())
