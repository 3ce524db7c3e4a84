"""Clock and time zone helpers shared by the slot services."""

import math
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from app.config import settings


def utc_now() -> datetime:
    return datetime.now(UTC)


def reference_timezone() -> ZoneInfo:
    """Zone used for local dates, session labels and leaderboard windows."""
    return ZoneInfo(settings.REFERENCE_TIMEZONE)


def local_date(at: datetime, tz: ZoneInfo) -> date:
    return at.astimezone(tz).date()


def session_label(at: datetime, tz: ZoneInfo) -> str:
    return at.astimezone(tz).strftime("%Y-%m-%d %H:%M")


def minutes_remaining(until: datetime, now: datetime) -> int:
    """Whole minutes left until ``until``, rounded up and never below 1."""
    seconds = (until - now).total_seconds()
    return max(1, math.ceil(seconds / 60))
