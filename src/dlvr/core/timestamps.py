"""UTC timestamps in the ISO 8601 form stored on every record."""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def isoformat(moment: datetime) -> str:
    """Millisecond precision, `Z` suffix (e.g. 2025-01-31T09:15:00.123Z)."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return isoformat(utc_now())
