"""Prekey Bundle ORM — per-principal X3DH key material plus its access policy.

Invariants:
    - Exactly one bundle row per owner (owner_id is the primary key)
    - one_time_prekeys rows keyed by (owner_id, key_id); `used` flips false -> true once
    - Public material only: identity/signed/one-time keys are opaque base64 text

Design Decisions:
    - One-time keys in their own table: the claim CAS is a single-row UPDATE
      guarded by `used = false` (no document-level lock)
    - allowed_requesters as JSON list: small, read whole, replaced whole on publish
"""

from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Integer, Boolean, DateTime, JSON, ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trustgate.db.base import Base


class PrekeyBundleRecord(Base):
    __tablename__ = "prekey_bundles"

    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("principals.id", ondelete="CASCADE"), primary_key=True,
    )
    identity_key: Mapped[str] = mapped_column(Text, nullable=False)
    signed_prekey_id: Mapped[int] = mapped_column(Integer, nullable=False)
    signed_prekey_public: Mapped[str] = mapped_column(Text, nullable=False)
    signed_prekey_signature: Mapped[str] = mapped_column(Text, nullable=False)
    allow_any_requester: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    allowed_requesters: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    one_time_prekeys: Mapped[list["OneTimePreKeyRecord"]] = relationship(
        "OneTimePreKeyRecord", back_populates="bundle",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="OneTimePreKeyRecord.key_id",
    )


class OneTimePreKeyRecord(Base):
    __tablename__ = "one_time_prekeys"

    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("prekey_bundles.owner_id", ondelete="CASCADE"),
        primary_key=True,
    )
    key_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    public_key: Mapped[str] = mapped_column(Text, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    bundle: Mapped["PrekeyBundleRecord"] = relationship(
        "PrekeyBundleRecord", back_populates="one_time_prekeys",
    )
