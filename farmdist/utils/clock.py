# farmdist/utils/clock.py
from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from flask import current_app

# Monday first, matching datetime.weekday()
DAY_NAMES = ("Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu")


def local_tz() -> ZoneInfo:
    return ZoneInfo(current_app.config.get("APP_TIMEZONE") or "UTC")


def local_now() -> datetime:
    """Aware 'now' in the marketplace's timezone (APP_TIMEZONE)."""
    return datetime.now(local_tz())


def to_local(dt: datetime) -> datetime:
    """Stored datetimes are naive UTC; aware ones are converted as given."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(local_tz())


def day_name(dt: datetime | None = None) -> str:
    """Indonesian weekday of ``dt`` (default: now) on the marketplace's calendar."""
    local = to_local(dt) if dt is not None else local_now()
    return DAY_NAMES[local.weekday()]
