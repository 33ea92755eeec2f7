"""Declarative Base — single metadata object for models, tests and migrations.

Invariants:
    - Every table is registered on Base.metadata by importing trustgate.models
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all TrustGate ORM models."""
