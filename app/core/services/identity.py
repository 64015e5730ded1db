"""
Lazy guest identities for verified contacts.
"""

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import otp_logger
from app.core.db.crud import guest_identity_db
from app.core.db.models import GuestIdentity
from app.core.enums import IdentityKind, OTPPurpose
from app.core.exceptions.types import DatabaseException
from app.core.utils import mask_contact


@dataclass
class ResolvedIdentity:
    identity: GuestIdentity
    is_new: bool


def is_email(contact_key: str) -> bool:
    return "@" in contact_key


class IdentityResolver:
    """
    Finds the identity behind a verified contact, creating a guest if needed.

    Phone and email are independently nullable and unique, so a phone-only
    guest simply has no email.
    """

    async def resolve(
        self,
        session: AsyncSession,
        contact_key: str,
        purpose: OTPPurpose,
        commit_self: bool = True,
    ) -> ResolvedIdentity:
        """
        Resolve the identity for a contact that just passed verification.

        Args:
            session: The async database session.
            contact_key: The verified phone or email.
            purpose: Purpose of the verification, used for logging.
            commit_self: Whether to commit the session before returning.

        Returns:
            ResolvedIdentity with `is_new=True` when a guest was created.

        Raises:
            DatabaseException: If a database error occurs.
        """
        by_email = is_email(contact_key)
        flags = {"email_verified": True} if by_email else {"phone_verified": True}

        identity = await self._lookup(session, contact_key, by_email)
        if identity is not None:
            await guest_identity_db.mark_contact_verified(
                session, identity, commit_self=commit_self, **flags
            )
            return ResolvedIdentity(identity=identity, is_new=False)

        data = {
            "email" if by_email else "phone": contact_key,
            "kind": IdentityKind.GUEST,
            **flags,
        }
        try:
            async with session.begin_nested():
                identity = await guest_identity_db.create(
                    session, data, commit_self=False
                )
        except DatabaseException as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            # Another request created it between our lookup and insert
            identity = await self._lookup(session, contact_key, by_email)
            if identity is None:
                raise
            await guest_identity_db.mark_contact_verified(
                session, identity, commit_self=commit_self, **flags
            )
            return ResolvedIdentity(identity=identity, is_new=False)

        if commit_self:
            await session.commit()

        otp_logger.info(
            f"Created guest identity {identity.id} for {mask_contact(contact_key)} "
            f"({purpose.value})"
        )
        return ResolvedIdentity(identity=identity, is_new=True)

    async def _lookup(
        self, session: AsyncSession, contact_key: str, by_email: bool
    ) -> GuestIdentity | None:
        if by_email:
            return await guest_identity_db.get_by_email(session, contact_key)
        return await guest_identity_db.get_by_phone(session, contact_key)


identity_resolver = IdentityResolver()


__all__ = ["ResolvedIdentity", "IdentityResolver", "identity_resolver", "is_email"]
