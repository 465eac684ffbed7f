from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_from(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)
