"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from core/ domain logic (errors excepted)
    - All external calls carry timeouts and map failures to InfrastructureError

Design Decisions:
    - Module-level singletons initialized in the FastAPI lifespan (ADR: no import side effects)
"""
