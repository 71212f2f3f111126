"""UTC datetime utilities."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def isoformat_or_none(value: datetime | None) -> str | None:
    """Serialize an optional datetime for JSONB snapshots and API payloads."""
    return value.isoformat() if value is not None else None


def parse_iso(value: str | None) -> datetime | None:
    """Inverse of isoformat_or_none; JSONB stores timestamps as ISO strings."""
    if not value:
        return None
    return datetime.fromisoformat(value)
