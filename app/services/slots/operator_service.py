"""
Operator-driven slot and timeout changes coming from the dashboard.

Marking a slot OUT starts its cooldown and bumps out_count. Any other change
to a slot clears the cooldown. Re-sending the status a slot already has
leaves its status time, cooldown and out_count as they were. Every successful change is broadcast.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.models.domain.slot_domain import Slot, SlotStatus, UserTimeout
from app.repositories.slot_repository import SlotRepository
from app.repositories.timeout_repository import TimeoutRepository
from app.services.slots.broadcast_hub import BroadcastHub, broadcast_hub
from app.services.slots.config_cache import ConfigCache, config_cache
from app.utils.time_helpers import utc_now

logger = get_logger(__name__)

# Only written when the status actually changes
STATUS_CHANGE_COLUMNS = frozenset({"status_changed_at", "cooldown_expires_at", "out_count"})


class SlotOperatorService:
    def __init__(
        self,
        *,
        slots=SlotRepository,
        timeouts=TimeoutRepository,
        config: ConfigCache | None = None,
        hub: BroadcastHub | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._slots = slots
        self._timeouts = timeouts
        self._config = config or config_cache
        self._hub = hub or broadcast_hub
        self._clock = clock

    def build_patch(
        self,
        *,
        status: SlotStatus | None = None,
        payout: float | None = None,
        message: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, int]]:
        now = self._clock()
        patch: dict[str, Any] = {}
        increments: dict[str, int] = {}

        if status is not None:
            patch["status"] = status
            patch["status_changed_at"] = now
        if payout is not None:
            patch["payout"] = payout
        if message is not None:
            patch["message"] = message

        if not patch:
            raise ValueError("Nothing to update")

        if status == SlotStatus.OUT:
            cooldown = timedelta(minutes=self._config.current.out_cooldown_minutes)
            patch["cooldown_expires_at"] = now + cooldown
            increments["out_count"] = 1
        else:
            patch["cooldown_expires_at"] = None

        return patch, increments

    async def update_slot(
        self,
        slot_id: str,
        *,
        status: SlotStatus | None = None,
        payout: float | None = None,
        message: str | None = None,
    ) -> Slot | None:
        patch, increments = self.build_patch(status=status, payout=payout, message=message)
        on_status_change = STATUS_CHANGE_COLUMNS if status is not None else frozenset()
        slot = await self._slots.update_fields(
            slot_id, patch, increments, on_status_change=on_status_change
        )
        if slot is None:
            return None

        self._hub.publish("update", slot)
        return slot

    async def delete_slot(self, slot_id: str) -> bool:
        deleted = await self._slots.delete(slot_id)
        if deleted:
            self._hub.publish("delete", {"id": slot_id})
        return deleted

    async def add_timeout(self, user: str, minutes: int) -> UserTimeout:
        expires_at = self._clock() + timedelta(minutes=minutes)
        timeout = await self._timeouts.insert(user, expires_at)
        self._hub.publish("timeoutAdd", timeout)
        return timeout

    async def remove_timeout(self, timeout_id: str) -> UserTimeout | None:
        removed = await self._timeouts.delete(timeout_id)
        if removed is not None:
            self._hub.publish("timeoutRemove", removed)
        return removed

    async def active_timeouts(self) -> list[UserTimeout]:
        return await self._timeouts.list_active(self._clock())


slot_operator = SlotOperatorService()
