# backend/app/db/repositories/payment_repository.py
from datetime import datetime
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import PaymentStatus
from app.db.models.payment import PaymentRecord
from app.db.repositories.base import BaseRepository


class PaymentRepository(BaseRepository[PaymentRecord]):
    """Repository for PaymentRecord operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(PaymentRecord, session)

    async def get_by_reference(self, reference: str, for_update: bool = False) -> Optional[PaymentRecord]:
        return await self.get(reference, for_update=for_update)

    async def list_stale_pending(self, created_before: datetime, limit: int = 100) -> List[str]:
        """References still pending that were created before the cutoff"""
        result = await self.session.execute(
            select(PaymentRecord.reference)
            .where(PaymentRecord.status == PaymentStatus.PENDING.value)
            .where(PaymentRecord.created_at < created_before)
            .order_by(PaymentRecord.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())
