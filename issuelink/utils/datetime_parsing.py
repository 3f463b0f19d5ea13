"""Datetime coercion for synced tracker fields."""

from __future__ import annotations

from datetime import date, datetime, time, timezone


def coerce_utc_datetime(value: datetime | date | str | None) -> datetime | None:
    """
    Coerce a resolution timestamp into an aware UTC datetime.

    Naive datetimes (SQLite returns these) are treated as UTC; bare dates map to
    midnight UTC. Empty or unparseable strings give None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return None
