"""
Guest identity model.

Identities are created lazily the first time a contact is verified and are
reused for every later verification of the same phone or email.
"""

from sqlalchemy import Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.models.base import BaseModel
from app.core.enums import IdentityKind


class GuestIdentity(BaseModel):
    """
    Model for identities resolved from verified contacts.

    Phone and email are independently nullable and unique. A phone-only
    guest keeps `email` as NULL.

    Attributes:
        phone: Verified or supplied phone number.
        email: Verified or supplied email address.
        phone_verified: Whether the phone was proven through a challenge.
        email_verified: Whether the email was proven through a challenge.
        kind: GUEST for lazily created identities, REGISTERED for full accounts.
    """

    __tablename__ = "guest_identities"

    phone: Mapped[str | None] = mapped_column(String(32), nullable=True, unique=True)

    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )

    phone_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    email_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    kind: Mapped[IdentityKind] = mapped_column(
        Enum(IdentityKind, native_enum=False, name="identity_kind"),
        default=IdentityKind.GUEST,
        nullable=False,
    )


__all__ = ["GuestIdentity"]
