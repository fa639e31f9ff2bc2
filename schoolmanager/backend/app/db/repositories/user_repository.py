# backend/app/db/repositories/user_repository.py
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.user import IdentityAccount
from app.db.repositories.base import BaseRepository


class IdentityAccountRepository(BaseRepository[IdentityAccount]):
    """Repository for IdentityAccount operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(IdentityAccount, session)

    async def get_by_email(self, email: str) -> Optional[IdentityAccount]:
        """Get account by email"""
        result = await self.session.execute(
            select(IdentityAccount).where(IdentityAccount.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def list_by_tenant(self, tenant_id: str) -> List[IdentityAccount]:
        result = await self.session.execute(
            select(IdentityAccount).where(IdentityAccount.tenant_id == tenant_id)
        )
        return list(result.scalars().all())
