"""Common helpers for timestamps and identifiers."""

from __future__ import annotations

import secrets
import string
import threading
import time
from datetime import UTC, datetime

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_SUFFIX_LENGTH = 9

_id_lock = threading.Lock()
_last_id_millis = 0


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def from_iso(value: str) -> datetime:
    """Parse ISO datetime and ensure timezone-aware UTC fallback."""

    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def new_task_id(prefix: str = "task") -> str:
    """Return ``<prefix>-<millis>-<suffix>``, strictly increasing within this process.

    The millisecond part is zero padded so plain string sorting follows creation
    order; the random suffix keeps ids unique across processes.
    """

    global _last_id_millis  # noqa: PLW0603
    with _id_lock:
        millis = max(time.time_ns() // 1_000_000, _last_id_millis + 1)
        _last_id_millis = millis
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"{prefix}-{millis:013d}-{suffix}"
