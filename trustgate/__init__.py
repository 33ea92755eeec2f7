"""TrustGate Package — credential, prekey and replay trust layer for an E2EE chat backend.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
