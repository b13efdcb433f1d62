"""Initial schema: users, app settings, rooms, meetings, provider accounts.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSON

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
    )


def _timestamps(soft_delete: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]
    if soft_delete:
        columns.append(sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("hashed_password", sa.String(200), nullable=True),
        sa.Column("role", sa.String(20), server_default=sa.text("'member'"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(soft_delete=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "app_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("allow_registration", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("default_role", sa.String(20), server_default=sa.text("'member'"), nullable=False),
        sa.Column("default_reset_password_hash", sa.String(200), nullable=True),
        sa.Column("app_name", sa.String(200), server_default=sa.text("'MeetingSync'"), nullable=False),
        sa.Column("app_description", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "meeting_rooms",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(300), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "provider_accounts",
        _uuid_pk(),
        sa.Column("client_id", sa.String(200), nullable=False),
        sa.Column("client_secret", sa.Text(), nullable=False),
        sa.Column("account_id", sa.String(200), nullable=False),
        sa.Column("host_key", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "meetings",
        _uuid_pk(),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("organizer_id", UUID(as_uuid=True), nullable=False),
        sa.Column("participants", JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("kind", sa.String(20), server_default=sa.text("'internal'"), nullable=False),
        sa.Column("hosted", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("room_id", UUID(as_uuid=True), nullable=True),
        sa.Column("provider_meeting_id", sa.String(100), nullable=True, unique=True),
        sa.Column("provider_account_id", UUID(as_uuid=True), nullable=True),
        sa.Column("join_url", sa.String(1000), nullable=True),
        sa.Column("start_url", sa.Text(), nullable=True),
        sa.Column("access_password", sa.String(10), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_meetings_window", "meetings", ["starts_at", "ends_at"])
    op.create_index("ix_meetings_room_window", "meetings", ["room_id", "starts_at"])
    op.create_index("ix_meetings_provider_account", "meetings", ["provider_account_id"])


def downgrade() -> None:
    op.drop_index("ix_meetings_provider_account", table_name="meetings")
    op.drop_index("ix_meetings_room_window", table_name="meetings")
    op.drop_index("ix_meetings_window", table_name="meetings")
    op.drop_table("meetings")
    op.drop_table("provider_accounts")
    op.drop_table("meeting_rooms")
    op.drop_table("app_settings")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
