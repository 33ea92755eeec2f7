"""ORM Models — SQLAlchemy declarative models for all persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Principal is the owner of bundles, memberships and messages

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs (ADR: standard SQLAlchemy pattern)
"""

from trustgate.models.principal import Principal  # noqa: F401
from trustgate.models.chat import Chat, ChatMember  # noqa: F401
from trustgate.models.prekey_bundle import (  # noqa: F401
    PrekeyBundleRecord, OneTimePreKeyRecord,
)
from trustgate.models.message import Message  # noqa: F401
