# app/models/api/slot_request.py
"""
Dashboard API request models.
Used by routes for input validation.
"""

from pydantic import BaseModel, Field

from app.models.domain.slot_domain import SlotStatus


class SlotPatchRequest(BaseModel):
    """Operator change to one slot."""

    status: SlotStatus | None = Field(default=None, description="IN or OUT")
    payout: float | None = Field(default=None, description="Payout amount")
    message: str | None = Field(default=None, min_length=1, max_length=500, description="Slot text")


class SettingsPatchRequest(BaseModel):
    """Partial update of the slot settings; omitted fields keep their value."""

    enabled: bool | None = None
    follower_limit: int | None = Field(default=None, ge=0)
    subscriber_limit: int | None = Field(default=None, ge=0)
    vip_limit: int | None = Field(default=None, ge=0)
    moderator_limit: int | None = Field(default=None, ge=0)
    out_cooldown_minutes: float | None = Field(default=None, ge=0)


class TimeoutCreateRequest(BaseModel):
    user: str = Field(..., min_length=1, max_length=100)
    duration: int = Field(..., gt=0, le=60 * 24 * 30, description="Minutes")
