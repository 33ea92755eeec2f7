"""Principal ORM — an account that can hold credentials.

Invariants:
    - id is a canonical UUID string (JWT `sub`)
    - username and email are unique; email stored lowercased
    - generation starts at 0 and only ever increases (revocation counter)

Design Decisions:
    - password_hash is opaque text produced by the password hasher (algorithm is not our concern)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from trustgate.db.base import Base


class Principal(Base):
    __tablename__ = "principals"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
    )
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
