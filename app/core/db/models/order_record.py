from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.models.base import BaseModel


class OrderRecord(BaseModel):
    """
    Read-only projection of the host application's orders.

    Only the columns needed to decide whether a phone has orders and to list
    them in a tracking session are mapped. This service never writes here.
    """

    __tablename__ = "order_records"

    order_number: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )

    phone: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False)

    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)


__all__ = ["OrderRecord"]
