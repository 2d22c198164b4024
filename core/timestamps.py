# =============================================================================
# core/timestamps.py - Last-activity resolution and inactivity arithmetic
# =============================================================================

from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Tuple

# AD FILETIME counts 100ns intervals since 1601-01-01; 0 means "never"
FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def filetime_to_datetime(value: int) -> Optional[datetime]:
    """Convert an AD FILETIME integer to a UTC datetime"""
    if not value or value <= 0 or value >= 0x7FFFFFFFFFFFFFFF:
        return None
    converted = FILETIME_EPOCH + timedelta(microseconds=value // 10)
    return None if converted.year <= FILETIME_EPOCH.year else converted


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalise the timestamp shapes the directories hand back.

    Accepts datetimes (naive treated as UTC), dates, AD FILETIME integers,
    compact YYYYMMDD dates and ISO-8601 strings (including a trailing 'Z').
    Returns None for anything missing, unparseable, or the 1601 "never
    logged on" sentinel.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = to_utc(value)
        return None if parsed.year <= FILETIME_EPOCH.year else parsed

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, int):
        return filetime_to_datetime(value)

    text = str(value).strip()
    if not text or text.lower() in ('nan', 'none', 'nat', 'never'):
        return None

    if text.isdigit():
        if len(text) == 8:
            # compact YYYYMMDD from spreadsheet exports
            try:
                return datetime.strptime(text, "%Y%m%d").replace(tzinfo=timezone.utc)
            except ValueError:
                return None
        return filetime_to_datetime(int(text))

    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    return parse_timestamp(parsed)


def resolve_last_activity(candidates: Iterable[Optional[datetime]]) -> Optional[datetime]:
    """Most recent non-null timestamp by calendar date, or None"""
    present = [to_utc(ts) for ts in candidates if ts is not None]
    if not present:
        return None
    return max(present, key=lambda ts: ts.date())


def resolve_baseline(last_logon: Optional[datetime], last_sign_in: Optional[datetime],
                     created: Optional[datetime]) -> Tuple[Optional[datetime], bool]:
    """
    Pick the inactivity baseline for an account.

    Returns (baseline, from_creation). The creation date is only used when
    neither the directory logon nor the cloud sign-in is known.
    """
    baseline = resolve_last_activity([last_logon, last_sign_in])
    if baseline is not None:
        return baseline, False

    fallback = resolve_last_activity([created])
    return fallback, fallback is not None


def inactive_days(baseline: datetime, today: date) -> int:
    """Whole calendar days between the baseline and today"""
    return max(0, (today - to_utc(baseline).date()).days)


def format_last_activity(baseline: datetime, from_creation: bool) -> str:
    """Human-readable last activity for notifications"""
    stamp = to_utc(baseline).strftime('%Y-%m-%d')
    if from_creation:
        return f"No sign-in recorded (account created {stamp})"
    return stamp
