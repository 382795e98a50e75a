"""Time utilities: UTC storage timestamps and restaurant-local display time (receipts)."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from typing import Optional

from hospitality.config import RESTAURANT_TIMEZONE

try:
    LOCAL_TZ = ZoneInfo(RESTAURANT_TIMEZONE)
except Exception:
    # Fallback to system local timezone when tzdata is unavailable (Windows)
    LOCAL_TZ = datetime.now().astimezone().tzinfo

# Fixed width so stored timestamps sort lexicographically
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_utc() -> datetime:
    """Return timezone-aware datetime in UTC."""
    return datetime.now(timezone.utc)


def iso_utc(dt: Optional[datetime] = None) -> str:
    """Return a storage timestamp, e.g. 2026-10-19T10:00:00.000000Z."""
    dt = dt or now_utc()
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(ISO_FORMAT)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a storage timestamp back into an aware UTC datetime."""
    if not value:
        return None
    try:
        return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


def to_local(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert a datetime to the restaurant timezone (assumes UTC if naive)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(LOCAL_TZ)
