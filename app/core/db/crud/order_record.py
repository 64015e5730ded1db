from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db.crud.base import BaseDB
from app.core.db.models.order_record import OrderRecord


class OrderRecordDB(BaseDB[OrderRecord]):
    """
    Read-only lookups over the host's orders.

    Used by the tracking flow to refuse codes for phones without orders
    and to list orders inside a tracking session.
    """

    def __init__(self):
        super().__init__(model=OrderRecord)

    async def count_for_phone(self, session: AsyncSession, phone: str) -> int:
        return await self.count_by_conditions(
            session=session, conditions=[self.model.phone == phone]
        )

    async def get_for_phone(
        self,
        session: AsyncSession,
        order_number: str,
        phone: str,
    ) -> OrderRecord | None:
        return await self.get_one_by_conditions(
            session=session,
            conditions=[
                self.model.order_number == order_number,
                self.model.phone == phone,
            ],
        )

    async def list_for_phone(
        self,
        session: AsyncSession,
        phone: str,
        limit: int | None = None,
    ) -> Sequence[OrderRecord]:
        """List a phone's orders, newest first."""
        return await self.get_all(
            session=session,
            filters=[self.model.phone == phone],
            order_by=[self.model.created_at.desc()],
            limit=limit,
        )


__all__ = ["OrderRecordDB"]
