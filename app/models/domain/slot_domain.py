"""
Domain models for the slot queue.

Slot, SlotSession and UserTimeout mirror their table rows. SlotConfig is the
immutable snapshot held by the config cache; a settings write builds a new
instance instead of mutating the current one.
"""

from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SlotStatus(str, Enum):
    IN = "IN"
    OUT = "OUT"


class Tier(str, Enum):
    FOLLOWER = "follower"
    SUBSCRIBER = "subscriber"
    VIP = "vip"
    MODERATOR = "moderator"


# Highest privilege first; the first tier a user holds decides the limit
TIER_PRECEDENCE: tuple[Tier, ...] = (Tier.MODERATOR, Tier.VIP, Tier.SUBSCRIBER, Tier.FOLLOWER)

BroadcastEvent = Literal["slot", "update", "delete", "settings", "timeoutAdd", "timeoutRemove"]


class SlotSession(BaseModel):
    """A run of slots grouped until the chat goes idle."""

    id: str
    start_time: datetime
    last_activity_time: datetime
    label: str


class Slot(BaseModel):
    """One user's call, tracked from admission through IN/OUT."""

    id: str
    session_id: str
    time: datetime
    local_date: date
    user: str
    message: str
    subscriber: bool = False
    vip: bool = False
    moderator: bool = False
    status: SlotStatus | None = None
    payout: float | None = None
    out_count: int = 0
    status_changed_at: datetime | None = None
    cooldown_expires_at: datetime | None = None

    def cooldown_active(self, now: datetime) -> bool:
        return (
            self.status == SlotStatus.OUT
            and self.cooldown_expires_at is not None
            and self.cooldown_expires_at > now
        )


class TierLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    follower: int = Field(ge=0)
    subscriber: int = Field(ge=0)
    vip: int = Field(ge=0)
    moderator: int = Field(ge=0)

    def for_tier(self, tier: Tier) -> int:
        return getattr(self, tier.value)


class SlotConfig(BaseModel):
    """Singleton settings row: per-tier limits and OUT cooldown."""

    model_config = ConfigDict(frozen=True)

    enabled: bool
    limits: TierLimits
    out_cooldown_minutes: float = Field(ge=0)


class UserTimeout(BaseModel):
    id: str
    user: str
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now
