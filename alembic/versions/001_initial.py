"""Initial schema -- spaces, Google Calendar link, availability blocks.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    # 1. users
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        *_timestamps(),
    )

    # 2. couple_spaces
    op.create_table(
        "couple_spaces",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )

    # 3. space_memberships
    op.create_table(
        "space_memberships",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "couple_space_id",
            UUID(as_uuid=True),
            sa.ForeignKey("couple_spaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        *_timestamps(),
        sa.UniqueConstraint("couple_space_id", "user_id"),
    )

    # 4. external_accounts
    op.create_table(
        "external_accounts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(50), nullable=False, server_default="google"),
        sa.Column("provider_account_id", sa.String(255), nullable=False),
        sa.Column("access_token_encrypted", sa.LargeBinary, nullable=False),
        sa.Column("refresh_token_encrypted", sa.LargeBinary, nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scope", sa.Text, nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "provider"),
    )

    # 5. external_calendars
    op.create_table(
        "external_calendars",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "external_account_id",
            UUID(as_uuid=True),
            sa.ForeignKey("external_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("calendar_id", sa.String(255), nullable=False),
        sa.Column("summary", sa.String(500), nullable=False),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("selected", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("background_color", sa.String(20), nullable=True),
        sa.Column("foreground_color", sa.String(20), nullable=True),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("external_account_id", "calendar_id"),
    )

    # 6. external_sync_states
    op.create_table(
        "external_sync_states",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "external_account_id",
            UUID(as_uuid=True),
            sa.ForeignKey("external_accounts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_attempted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_error", sa.Text, nullable=True),
        *_timestamps(),
    )

    # 7. external_availability_blocks
    op.create_table(
        "external_availability_blocks",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "external_account_id",
            UUID(as_uuid=True),
            sa.ForeignKey("external_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("calendar_id", sa.String(255), nullable=False),
        sa.Column("source", sa.String(50), nullable=False, server_default="google"),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_external_availability_blocks_account",
        "external_availability_blocks",
        ["external_account_id"],
    )
    op.create_index(
        "ix_external_availability_blocks_user_start",
        "external_availability_blocks",
        ["user_id", "start_at"],
    )

    # 8. availability_blocks
    op.create_table(
        "availability_blocks",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "couple_space_id",
            UUID(as_uuid=True),
            sa.ForeignKey("couple_spaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_by_user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_availability_blocks_space_start",
        "availability_blocks",
        ["couple_space_id", "start_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_availability_blocks_space_start", table_name="availability_blocks")
    op.drop_table("availability_blocks")
    op.drop_index(
        "ix_external_availability_blocks_user_start", table_name="external_availability_blocks"
    )
    op.drop_index(
        "ix_external_availability_blocks_account", table_name="external_availability_blocks"
    )
    op.drop_table("external_availability_blocks")
    op.drop_table("external_sync_states")
    op.drop_table("external_calendars")
    op.drop_table("external_accounts")
    op.drop_table("space_memberships")
    op.drop_table("couple_spaces")
    op.drop_table("users")
