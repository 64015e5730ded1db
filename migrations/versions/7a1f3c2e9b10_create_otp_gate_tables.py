"""create_otp_gate_tables

Revision ID: 7a1f3c2e9b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "7a1f3c2e9b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create challenge, guest identity and order record tables."""
    op.create_table(
        "otp_challenges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("contact_key", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column(
            "purpose",
            sa.Enum(
                "CHECKOUT",
                "ORDER_TRACKING",
                name="otp_purpose",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("code_hash", sa.String(length=60), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "delivery_channel",
            sa.Enum(
                "PRIMARY",
                "SECONDARY",
                "NONE",
                name="delivery_channel",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("related_identity_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_otp_challenges_contact_key_purpose",
        "otp_challenges",
        ["contact_key", "purpose"],
    )
    op.create_index(
        "uq_otp_challenges_active_contact_purpose",
        "otp_challenges",
        ["contact_key", "purpose"],
        unique=True,
        postgresql_where=sa.text("verified = false AND superseded_at IS NULL"),
        sqlite_where=sa.text("verified = false AND superseded_at IS NULL"),
    )
    op.create_index("ix_otp_challenges_phone", "otp_challenges", ["phone"])
    op.create_index("ix_otp_challenges_email", "otp_challenges", ["email"])
    op.create_index("ix_otp_challenges_expires_at", "otp_challenges", ["expires_at"])

    op.create_table(
        "guest_identities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("phone", sa.String(length=32), nullable=True, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("phone_verified", sa.Boolean(), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("GUEST", "REGISTERED", name="identity_kind", native_enum=False),
            nullable=False,
        ),
        *_timestamps(),
    )

    op.create_table(
        "order_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("order_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_order_records_phone", "order_records", ["phone"])


def downgrade() -> None:
    op.drop_index("ix_order_records_phone", table_name="order_records")
    op.drop_table("order_records")
    op.drop_table("guest_identities")
    op.drop_index("ix_otp_challenges_expires_at", table_name="otp_challenges")
    op.drop_index("ix_otp_challenges_email", table_name="otp_challenges")
    op.drop_index("ix_otp_challenges_phone", table_name="otp_challenges")
    op.drop_index(
        "uq_otp_challenges_active_contact_purpose", table_name="otp_challenges"
    )
    op.drop_index(
        "ix_otp_challenges_contact_key_purpose", table_name="otp_challenges"
    )
    op.drop_table("otp_challenges")
