# app/models/api/slot_response.py
from pydantic import BaseModel

from app.models.domain.slot_domain import SlotConfig


class SettingsResponse(BaseModel):
    """Flat view of the slot settings for the dashboard form."""

    enabled: bool
    follower_limit: int
    subscriber_limit: int
    vip_limit: int
    moderator_limit: int
    out_cooldown_minutes: float

    @classmethod
    def from_config(cls, config: SlotConfig) -> "SettingsResponse":
        return cls(
            enabled=config.enabled,
            follower_limit=config.limits.follower,
            subscriber_limit=config.limits.subscriber,
            vip_limit=config.limits.vip,
            moderator_limit=config.limits.moderator,
            out_cooldown_minutes=config.out_cooldown_minutes,
        )


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user: str
    count: int
    subscriber: bool
    vip: bool
    moderator: bool


class LeaderboardResponse(BaseModel):
    period: str
    entries: list[LeaderboardEntryResponse]
