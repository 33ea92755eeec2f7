"""Chat ORM — channels and their participants.

Invariants:
    - A chat is a real-time room; membership is the (chat_id, principal_id) pair
    - Membership rows are unique per pair (composite primary key)

Design Decisions:
    - Only lookup/insert is needed here; chat CRUD lives with the messaging product
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trustgate.db.base import Base


class Chat(Base):
    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    members: Mapped[list["ChatMember"]] = relationship(
        "ChatMember", back_populates="chat",
        cascade="all, delete-orphan", lazy="selectin",
    )


class ChatMember(Base):
    __tablename__ = "chat_members"

    chat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True,
    )
    principal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("principals.id", ondelete="CASCADE"), primary_key=True,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    chat: Mapped["Chat"] = relationship("Chat", back_populates="members")
