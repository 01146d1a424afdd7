# post_scheduler/schemas/connection_schema.py
from typing import Optional, List
import uuid
from datetime import datetime

from pydantic import Field

from .schedule_schema import CamelModel, UtcDatetime


class ConnectionUpsert(CamelModel):
    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    account_id: Optional[str] = None
    account_handle: Optional[str] = None
    scopes: Optional[List[str]] = None


class ConnectionRead(CamelModel):
    id: uuid.UUID
    provider: str
    account_id: Optional[str] = None
    account_handle: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    token_expires_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime
