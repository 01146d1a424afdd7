# post_scheduler/infrastructure/draft_repo.py
from typing import Optional, List
import uuid

from sqlalchemy import delete
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..models.draft import Draft


class DraftRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, draft: Draft) -> Draft:
        self.session.add(draft)
        await self.session.commit()
        await self.session.refresh(draft)
        return draft

    async def get(self, user_id: str, draft_id: uuid.UUID) -> Optional[Draft]:
        q = select(Draft).where(Draft.id == draft_id, Draft.user_id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> List[Draft]:
        q = select(Draft).where(Draft.user_id == user_id).order_by(Draft.created_at.desc())
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def update_caption(self, draft: Draft, caption: str) -> Draft:
        draft.caption = caption
        self.session.add(draft)
        await self.session.commit()
        await self.session.refresh(draft)
        return draft

    async def delete(self, draft_id: uuid.UUID) -> None:
        await self.session.execute(delete(Draft).where(Draft.id == draft_id).execution_options(synchronize_session=False))
        await self.session.commit()
