# farmdist/utils/parsers.py
from __future__ import annotations

from datetime import date, datetime


def parse_float(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        return float(val)
    except (TypeError, ValueError):
        return None


def parse_int(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        if isinstance(val, bool):
            return None
        if isinstance(val, float):
            return int(val) if val.is_integer() else None
        return int(str(val).strip())
    except (TypeError, ValueError):
        return None


def parse_datetime(val):
    """ISO date or datetime string -> naive datetime. None when blank/invalid."""
    if not val:
        return None
    if isinstance(val, datetime):
        return val
    if isinstance(val, date):
        return datetime(val.year, val.month, val.day)
    try:
        return datetime.fromisoformat(str(val).strip())
    except (TypeError, ValueError):
        return None


def parse_point(val):
    """
    A geographic point as [lon, lat] (GeoJSON order, as the clients send it).
    Multipart forms send the same pair as "lon,lat".
    Returns (lat, lon) or None.
    """
    if isinstance(val, str):
        val = val.split(",")
    if not isinstance(val, (list, tuple)) or len(val) != 2:
        return None
    lon, lat = parse_float(val[0]), parse_float(val[1])
    if lon is None or lat is None:
        return None
    if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
        return None
    return lat, lon


def clean_str(value) -> str | None:
    """Trimmed string, or None when missing/blank."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def iso(dt):
    return dt.isoformat() if dt else None
