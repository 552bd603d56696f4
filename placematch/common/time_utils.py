"""UTC-focused helpers for run metadata."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_timestamp_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_fresh(timestamp: str | None, *, max_age_days: int, now: datetime | None = None) -> bool:
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return False
    reference = now or utc_now()
    return reference - parsed <= timedelta(days=max_age_days)


def backup_stamp(now: datetime | None = None) -> str:
    return (now or utc_now()).strftime("%Y%m%dT%H%M%SZ")
