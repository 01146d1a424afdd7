# post_scheduler/models/connected_platform.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional, List
from datetime import datetime
import uuid
from sqlalchemy import DateTime, String, JSON, UniqueConstraint

from ..utils import utc_now


class ConnectedPlatform(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "provider"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(sa_column=Column(String, index=True, nullable=False))
    provider: str = Field(sa_column=Column(String, index=True, nullable=False))
    account_id: Optional[str] = None
    account_handle: Optional[str] = None
    access_token_enc: str
    refresh_token_enc: Optional[str] = None
    token_expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime())
    scopes: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime())
