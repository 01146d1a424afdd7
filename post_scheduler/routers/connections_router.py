# post_scheduler/routers/connections_router.py
from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel.ext.asyncio.session import AsyncSession

from ..dependencies.auth import get_current_user_id
from ..dependencies.db import get_session_dep
from ..infrastructure.platforms_repo import ConnectionRegistry
from ..schemas.connection_schema import ConnectionRead, ConnectionUpsert
from ..schemas.schedule_schema import Provider
from ..security import encrypt_token
from ..utils import to_storage_utc

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=List[ConnectionRead])
async def list_connections(session: AsyncSession = Depends(get_session_dep), user_id: str = Depends(get_current_user_id)):
    return await ConnectionRegistry(session).list_by_user(user_id)


@router.put("/{provider}", response_model=ConnectionRead)
async def connect_platform(
    provider: Provider,
    payload: ConnectionUpsert,
    session: AsyncSession = Depends(get_session_dep),
    user_id: str = Depends(get_current_user_id),
):
    registry = ConnectionRegistry(session)
    return await registry.connect(
        user_id=user_id,
        provider=provider,
        access_token_enc=encrypt_token(payload.access_token),
        refresh_token_enc=encrypt_token(payload.refresh_token),
        expires_at=to_storage_utc(payload.expires_at, "UTC"),
        account_id=payload.account_id,
        account_handle=payload.account_handle,
        scopes=payload.scopes,
    )


@router.delete("/{provider}", response_model=dict)
async def disconnect_platform(
    provider: Provider,
    session: AsyncSession = Depends(get_session_dep),
    user_id: str = Depends(get_current_user_id),
):
    removed = await ConnectionRegistry(session).disconnect(user_id, provider)
    if not removed:
        raise HTTPException(status_code=404, detail=f"No {provider} connection found")
    return {"message": "Connection removed"}
