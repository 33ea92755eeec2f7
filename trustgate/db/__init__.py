"""Persistence Base — declarative metadata shared by every ORM model and Alembic.

Invariants:
    - Ids are canonical UUID strings (String(36)), matching token subjects verbatim
"""
