"""Utility helpers shared across modules."""

from __future__ import annotations

from datetime import UTC, datetime
from hashlib import sha256


def parse_graph_datetime(value: str) -> datetime:
    """Convert Graph ISO strings (with trailing Z) into aware UTC datetimes."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def sha256_hex(payload: bytes) -> str:
    """Convenience wrapper for hex digests."""
    return sha256(payload).hexdigest()
