"""Pydantic Schemas — request/response validation for API endpoints.

Invariants:
    - Schemas validate shape at the system boundary; trust rules stay in core/
    - Wire names are camelCase (aliases), Python attributes snake_case

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
