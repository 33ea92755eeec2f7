"""Canonical Base64 Check — accepts only standard-alphabet, padded, canonical base64 text.

Invariants:
    - Input is returned unchanged when accepted, None otherwise
    - No surrounding whitespace, length within [min_length, max_length], length % 4 == 0
    - Decoded bytes non-empty and re-encode to the exact input (rejects non-canonical padding bits)

Design Decisions:
    - Returns None instead of raising: callers attach the failing field name to the error
"""

import base64
import binascii
import re

DEFAULT_MIN_LENGTH = 16
DEFAULT_MAX_LENGTH = 512

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")


def canonical_base64(
    value: object,
    min_length: int = DEFAULT_MIN_LENGTH,
    max_length: int = DEFAULT_MAX_LENGTH,
    max_bytes: int | None = None,
) -> str | None:
    """Return value if it is well-formed canonical base64, else None."""
    if not isinstance(value, str):
        return None
    if value.strip() != value:
        return None
    if len(value) < min_length or len(value) > max_length:
        return None
    if len(value) % 4 != 0 or not _BASE64_RE.match(value):
        return None
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None
    if not decoded:
        return None
    if max_bytes is not None and max_bytes > 0 and len(decoded) > max_bytes:
        return None
    if base64.b64encode(decoded).decode("ascii") != value:
        return None
    return value
