"""Services Layer — credential codec, revocation, prekey broker, replay guard, channel auth.

Invariants:
    - Services depend on core/ protocols, never on FastAPI
    - Clocks and caches are injected (tests drive time explicitly)

Design Decisions:
    - One service per trust concern, wired together in container.py
"""
