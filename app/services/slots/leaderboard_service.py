"""
Rolling leaderboards of IN slots per user.

Windows start at local midnight in the reference zone: today for daily, six
days back for weekly, twenty-nine days back for monthly, and always end at
the moment of the request.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from app.models.domain.slot_domain import SlotStatus
from app.repositories.slot_repository import SlotRepository
from app.utils.time_helpers import reference_timezone, utc_now

CHAT_TOP_N = 5


class LeaderboardPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


WINDOW_DAYS_BACK = {
    LeaderboardPeriod.DAILY: 0,
    LeaderboardPeriod.WEEKLY: 6,
    LeaderboardPeriod.MONTHLY: 29,
}


@dataclass(slots=True)
class LeaderboardEntry:
    user: str
    count: int
    subscriber: bool = False
    vip: bool = False
    moderator: bool = False


def window_start(period: LeaderboardPeriod, now: datetime, tz: ZoneInfo) -> datetime:
    first_day = now.astimezone(tz).date() - timedelta(days=WINDOW_DAYS_BACK[period])
    return datetime.combine(first_day, time.min, tzinfo=tz)


def render_leaderboard(period: LeaderboardPeriod, entries: list[LeaderboardEntry]) -> str:
    top = entries[:CHAT_TOP_N]
    body = ", ".join(f"{entry.user}({entry.count})" for entry in top) if top else "none"
    return f"{period.value.capitalize()} leaderboard: {body}"


class LeaderboardService:
    def __init__(
        self,
        slots=SlotRepository,
        clock: Callable[[], datetime] = utc_now,
        tz: ZoneInfo | None = None,
    ):
        self._slots = slots
        self._clock = clock
        self._tz = tz

    async def standings(self, period: LeaderboardPeriod) -> list[LeaderboardEntry]:
        """All users with IN slots in the window, most IN slots first."""
        now = self._clock()
        tz = self._tz or reference_timezone()
        slots = await self._slots.find_by(
            status=SlotStatus.IN, since=window_start(period, now, tz), until=now
        )

        # Dict order is first-seen order; the stable sort keeps it for ties
        tally: dict[str, LeaderboardEntry] = {}
        for slot in slots:
            entry = tally.setdefault(slot.user, LeaderboardEntry(user=slot.user, count=0))
            entry.count += 1
            entry.subscriber = entry.subscriber or slot.subscriber
            entry.vip = entry.vip or slot.vip
            entry.moderator = entry.moderator or slot.moderator

        return sorted(tally.values(), key=lambda entry: entry.count, reverse=True)

    async def chat_reply(self, period: LeaderboardPeriod) -> str:
        return render_leaderboard(period, await self.standings(period))


leaderboard_service = LeaderboardService()
