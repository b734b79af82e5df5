from datetime import datetime, time, timedelta, timezone

WEEKDAY_OPEN = time(9, 0)
WEEKDAY_CLOSE = time(18, 0)
WEEKEND_OPEN = time(9, 0)
WEEKEND_CLOSE = time(13, 0)


def local_time(now: datetime, utc_offset_hours: int) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone(timedelta(hours=utc_offset_hours)))


def is_within_business_hours(now: datetime, utc_offset_hours: int) -> bool:
    """Weekdays 09:00-18:00, Saturday and Sunday 09:00-13:00, local to the offset."""
    local = local_time(now, utc_offset_hours)
    if local.weekday() >= 5:
        opens, closes = WEEKEND_OPEN, WEEKEND_CLOSE
    else:
        opens, closes = WEEKDAY_OPEN, WEEKDAY_CLOSE
    return opens <= local.time() < closes
