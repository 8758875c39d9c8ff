"""Bluetooth UUID parsing for short (16/32-bit) and full 128-bit forms."""

from __future__ import annotations

import re
import uuid

from cockpitble.core.errors import UuidParseError

BLUETOOTH_BASE_SUFFIX = "-0000-1000-8000-00805F9B34FB"
_SHORT_RE = re.compile(r"^[0-9a-fA-F]{1,8}$")


def parse_uuid(value: str) -> uuid.UUID:
    """Parse a Bluetooth UUID.

    Accepts an optional ``0x`` prefix. Up to eight hex digits are treated as a
    short UUID and expanded against the Bluetooth Base UUID
    (``0000xxxx-0000-1000-8000-00805F9B34FB``); anything longer must be a full
    128-bit UUID.
    """
    if not isinstance(value, str):
        raise UuidParseError(f"UUID must be a string, got {type(value).__name__}")

    text = value.strip()
    if text[:2].lower() == "0x":
        text = text[2:]

    if len(text) <= 8:
        if not _SHORT_RE.match(text):
            raise UuidParseError(f"Invalid short UUID '{value}'")
        return uuid.UUID(f"{int(text, 16):08X}{BLUETOOTH_BASE_SUFFIX}")

    try:
        return uuid.UUID(text)
    except ValueError as exc:
        raise UuidParseError(f"Invalid UUID '{value}': {exc}") from exc


def uuid_str(value: str) -> str:
    """Return the canonical lower-case string form bleak expects."""
    return str(parse_uuid(value))
