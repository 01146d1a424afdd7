# post_scheduler/infrastructure/platforms_repo.py
from dataclasses import dataclass
from typing import Optional, List, FrozenSet
from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..errors import DependencyError
from ..models.connected_platform import ConnectedPlatform
from ..utils import utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ConnectionSnapshot:
    user_id: str
    providers: FrozenSet[str]
    taken_at: datetime


class ConnectionRegistry:
    """
    Per-user view of authorized platforms.
    The scheduler only reads it through ``snapshot``; connect/disconnect exist
    for the connections endpoints. All methods expect an injected AsyncSession.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def snapshot(self, user_id: str) -> ConnectionSnapshot:
        """
        Providers currently connected for ``user_id``.
        Raises DependencyError when the registry cannot be read.
        """
        q = select(ConnectedPlatform.provider).where(ConnectedPlatform.user_id == user_id)
        try:
            res = await self.session.execute(q)
        except SQLAlchemyError as e:
            logger.error("connection_registry_unavailable", user_id=user_id, error=str(e))
            raise DependencyError("connection registry unavailable") from e
        providers = frozenset(res.scalars().all())
        return ConnectionSnapshot(user_id=user_id, providers=providers, taken_at=utc_now())

    async def get_by_user_and_provider(self, user_id: str, provider: str) -> Optional[ConnectedPlatform]:
        q = select(ConnectedPlatform).where(
            ConnectedPlatform.user_id == user_id,
            ConnectedPlatform.provider == provider
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> List[ConnectedPlatform]:
        q = select(ConnectedPlatform).where(ConnectedPlatform.user_id == user_id).order_by(ConnectedPlatform.provider)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def connect(
        self,
        user_id: str,
        provider: str,
        access_token_enc: str,
        refresh_token_enc: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        account_id: Optional[str] = None,
        account_handle: Optional[str] = None,
        scopes: Optional[List[str]] = None,
    ) -> ConnectedPlatform:
        """
        Create the connection or replace the tokens of an existing one.
        Commits and returns refreshed instance.
        """
        cp = await self.get_by_user_and_provider(user_id, provider)
        if cp is None:
            cp = ConnectedPlatform(user_id=user_id, provider=provider, access_token_enc=access_token_enc)
        cp.access_token_enc = access_token_enc
        cp.refresh_token_enc = refresh_token_enc
        cp.token_expires_at = expires_at
        cp.account_id = account_id or cp.account_id
        cp.account_handle = account_handle or cp.account_handle
        if scopes is not None:
            cp.scopes = list(scopes)
        cp.updated_at = utc_now()
        self.session.add(cp)
        await self.session.commit()
        await self.session.refresh(cp)
        logger.info("platform_connected", user_id=user_id, provider=provider)
        return cp

    async def disconnect(self, user_id: str, provider: str) -> bool:
        cp = await self.get_by_user_and_provider(user_id, provider)
        if not cp:
            return False
        await self.session.delete(cp)
        await self.session.commit()
        logger.info("platform_disconnected", user_id=user_id, provider=provider)
        return True
