# settlement/utils/ids.py
"""
Identifier normalization.

User ids reach business logic as str, uuid.UUID, raw 16-byte buffers,
ORM rows or plain dicts. normalize_id() turns all of them into the
canonical 32-char lowercase hex string, or None when the value is not
a usable id. Raw representations are never compared directly.
"""
import uuid
from typing import Any, Optional


def normalize_id(value: Any) -> Optional[str]:
    """
    Normalize any supported id representation.

    Args:
        value: str (hex or hyphenated), uuid.UUID, bytes/bytearray of
               length 16, object with a userID attribute, or dict with
               "userID"/"id"/"_id"

    Returns:
        Canonical hex string or None

    Example:
        normalize_id("8F14E45F-CEEA-467A-9575-6B2A4C0BE0C1")
        -> "8f14e45fceea467a95756b2a4c0be0c1"
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, uuid.UUID):
        return value.hex

    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) == 16:
            return uuid.UUID(bytes=raw).hex
        # hex text stored as bytes
        try:
            return normalize_id(raw.decode("ascii"))
        except UnicodeDecodeError:
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return uuid.UUID(text).hex
        except ValueError:
            return None

    if isinstance(value, dict):
        for key in ("userID", "id", "_id"):
            if value.get(key) is not None:
                return normalize_id(value[key])
        return None

    nested = getattr(value, "userID", None)
    if nested is not None:
        return normalize_id(nested)

    return None
