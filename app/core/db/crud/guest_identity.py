from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.db.crud.base import BaseDB
from app.core.db.models.guest_identity import GuestIdentity


class GuestIdentityDB(BaseDB[GuestIdentity]):
    """CRUD operations for GuestIdentity model."""

    def __init__(self):
        super().__init__(model=GuestIdentity)

    async def get_by_phone(
        self, session: AsyncSession, phone: str
    ) -> GuestIdentity | None:
        return await self.get_one_by_conditions(
            session=session, conditions=[self.model.phone == phone]
        )

    async def get_by_email(
        self, session: AsyncSession, email: str
    ) -> GuestIdentity | None:
        return await self.get_one_by_conditions(
            session=session, conditions=[self.model.email == email]
        )

    async def get_by_contact(
        self,
        session: AsyncSession,
        phone: str | None = None,
        email: str | None = None,
    ) -> GuestIdentity | None:
        """Look an identity up by phone first, then by email."""
        if phone:
            identity = await self.get_by_phone(session, phone)
            if identity is not None:
                return identity
        if email:
            return await self.get_by_email(session, email)
        return None

    async def mark_contact_verified(
        self,
        session: AsyncSession,
        identity: GuestIdentity,
        phone_verified: bool = False,
        email_verified: bool = False,
        commit_self: bool = True,
    ) -> GuestIdentity:
        """
        Set the verified flags on an identity; flags already set stay set.

        Only writes when a flag actually changes.
        """
        updates = {}
        if phone_verified and not identity.phone_verified:
            updates["phone_verified"] = True
        if email_verified and not identity.email_verified:
            updates["email_verified"] = True
        if not updates:
            return identity

        await self.update_by_conditions(
            session=session,
            conditions=[self.model.id == identity.id],
            updates=updates,
            commit_self=commit_self,
        )
        for field, value in updates.items():
            set_committed_value(identity, field, value)
        return identity


__all__ = ["GuestIdentityDB"]
