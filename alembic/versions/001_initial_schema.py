"""Initial schema — principals, chats, chat_members, prekey_bundles, one_time_prekeys, messages.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "principals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text, nullable=False),
        sa.Column("generation", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "chats",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "chat_members",
        sa.Column("chat_id", sa.String(36), sa.ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("principal_id", sa.String(36), sa.ForeignKey("principals.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "prekey_bundles",
        sa.Column("owner_id", sa.String(36), sa.ForeignKey("principals.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("identity_key", sa.Text, nullable=False),
        sa.Column("signed_prekey_id", sa.Integer, nullable=False),
        sa.Column("signed_prekey_public", sa.Text, nullable=False),
        sa.Column("signed_prekey_signature", sa.Text, nullable=False),
        sa.Column("allow_any_requester", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("allowed_requesters", sa.JSON, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "one_time_prekeys",
        sa.Column("owner_id", sa.String(36), sa.ForeignKey("prekey_bundles.owner_id", ondelete="CASCADE"), primary_key=True),
        sa.Column("key_id", sa.Integer, primary_key=True),
        sa.Column("public_key", sa.Text, nullable=False),
        sa.Column("used", sa.Boolean, nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("chat_id", sa.String(36), sa.ForeignKey("chats.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.String(36), sa.ForeignKey("principals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("encrypted_payload", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_messages_chat_created", "messages", ["chat_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_messages_chat_created", table_name="messages")
    op.drop_table("messages")
    op.drop_table("one_time_prekeys")
    op.drop_table("prekey_bundles")
    op.drop_table("chat_members")
    op.drop_table("chats")
    op.drop_table("principals")
