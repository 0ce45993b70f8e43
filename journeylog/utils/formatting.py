from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union


def _today(now: Optional[datetime], tz) -> date:
    return (now or datetime.now(timezone.utc)).astimezone(tz).date()


def chat_timestamp_label(
    value: Optional[datetime],
    now: Optional[datetime] = None,
    tz: Union[timezone, None] = timezone.utc,
) -> str:
    """Short inbox label: ``3:05 PM`` today, ``Yesterday``, else ``Mar 4``."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(tz)
    today = _today(now, tz)
    if local.date() == today:
        return f"{local.hour % 12 or 12}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"
    if local.date() == today - timedelta(days=1):
        return "Yesterday"
    return f"{local.strftime('%b')} {local.day}"
