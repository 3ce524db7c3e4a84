"""
Chat command handling for the slot queue.

``handle`` maps one parsed chat command to exactly one reply string. Policy
denials (timeout, tier limit, duplicate, cooldown) are replies too; only
storage failures escape as ``DatabaseError`` and are dropped by the caller.
A command that cannot finish its checks within ``command_timeout`` raises
``TimeoutError``.

``!slot`` runs its checks in a fixed order and stops at the first denial:

1. active timeout for the user
2. per-session tier limit (only when limits are enabled)
3. same message already called this session, or still cooling down after OUT
4. insert, broadcast, notify, touch the session, confirm

The deadline covers waiting for the admission lock and steps 1-3 only. Once
the insert has returned, the slot is accepted and the remaining steps always
run.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from app.config import settings
from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.domain.chat_domain import ChatCommand
from app.models.domain.slot_domain import Slot, SlotSession, SlotStatus, Tier
from app.repositories.slot_repository import SlotRepository
from app.repositories.timeout_repository import TimeoutRepository
from app.services.notification_service import DiscordNotifier, notifier
from app.services.slots.broadcast_hub import BroadcastHub, broadcast_hub
from app.services.slots.config_cache import ConfigCache, config_cache
from app.services.slots.leaderboard_service import (
    LeaderboardPeriod,
    LeaderboardService,
    leaderboard_service,
)
from app.services.slots.session_manager import SessionManager, session_manager
from app.utils.time_helpers import local_date, minutes_remaining, reference_timezone, utc_now

logger = get_logger(__name__)

TIMED_OUT_REPLY = "{user} you are timed out from calling slots for {minutes} more minutes."
LIMIT_REACHED_REPLY = "{user} your slot limit of {limit} reached for this session."
COOLDOWN_REPLY = "{user} '{message}' is on cooldown, try again in {minutes} minutes."
DUPLICATE_REPLY = "{user} this slot has already been called."
ACCEPTED_REPLY = "your slot '{message}' has been added to the list {user}!"
MYSLOTS_REPLY = "{user} - Slots in queue: {pending}; IN: {inside}; OUT: {out}"
NOTIFY_TEXT = "🎰 New slot **{message}** by **{user}**"


class SlotRejected(Exception):
    """A policy denial; the message is the chat reply."""

    def __init__(self, reason: str, reply: str):
        super().__init__(reply)
        self.reason = reason
        self.reply = reply


def _join_or_none(messages: list[str]) -> str:
    return ", ".join(messages) if messages else "none"


class SlotAdmissionService:
    def __init__(
        self,
        *,
        slots=SlotRepository,
        timeouts=TimeoutRepository,
        sessions: SessionManager | None = None,
        config: ConfigCache | None = None,
        hub: BroadcastHub | None = None,
        leaderboards: LeaderboardService | None = None,
        notify: DiscordNotifier | None = None,
        clock: Callable[[], datetime] = utc_now,
        tz: ZoneInfo | None = None,
        command_timeout: float | None = None,
    ):
        self._slots = slots
        self._timeouts = timeouts
        self._sessions = sessions or session_manager
        self._config = config or config_cache
        self._hub = hub or broadcast_hub
        self._leaderboards = leaderboards or leaderboard_service
        self._notifier = notify or notifier
        self._clock = clock
        self._tz = tz
        self._command_timeout = command_timeout or settings.COMMAND_TIMEOUT_SECONDS
        # Check-then-insert for !slot must not interleave between commands
        self._admission_lock = asyncio.Lock()

        self._handlers: dict[str, Callable[[ChatCommand], Awaitable[str | None]]] = {
            "slot": self.handle_slot,
            "myslots": self.handle_myslots,
            "leaderboard": self.handle_leaderboard,
            "daily": self._period_handler(LeaderboardPeriod.DAILY),
            "weekly": self._period_handler(LeaderboardPeriod.WEEKLY),
            "monthly": self._period_handler(LeaderboardPeriod.MONTHLY),
        }

    def supports(self, verb: str) -> bool:
        return verb in self._handlers

    async def handle(self, command: ChatCommand) -> str | None:
        handler = self._handlers.get(command.verb)
        if handler is None:
            return None
        if command.verb == "slot":
            return await handler(command)

        async with asyncio.timeout(self._command_timeout):
            return await handler(command)

    # ------------------------------------------------------------------
    # !slot
    # ------------------------------------------------------------------

    async def handle_slot(self, command: ChatCommand) -> str | None:
        message = command.args
        if not message:
            return None

        deadline = asyncio.get_running_loop().time() + self._command_timeout
        try:
            async with asyncio.timeout_at(deadline):
                await self._admission_lock.acquire()
            try:
                slot, session = await self._admit(command, message, deadline)
            finally:
                self._admission_lock.release()
        except SlotRejected as rejection:
            logger.info(
                "Slot rejected",
                user=command.user,
                message=message,
                reason=rejection.reason,
            )
            return rejection.reply

        self._hub.publish("slot", slot)
        self._notifier.notify(NOTIFY_TEXT.format(message=slot.message, user=slot.user))
        logger.info("Slot accepted", slot_id=slot.id, user=slot.user, message=slot.message)

        try:
            await self._sessions.touch(session)
        except DatabaseError as e:
            logger.warning(
                "Session activity not recorded for accepted slot",
                slot_id=slot.id,
                session_id=session.id,
                error=str(e),
            )
        return ACCEPTED_REPLY.format(message=slot.message, user=slot.user)

    async def _admit(
        self, command: ChatCommand, message: str, deadline: float
    ) -> tuple[Slot, SlotSession]:
        now = self._clock()

        async with asyncio.timeout_at(deadline):
            await self._check_timeout(command.user, now)

            session = await self._sessions.current()
            await self._check_limit(command, session.id)
            await self._check_duplicate(command.user, session.id, message, now)

        # Outside the deadline; the pool and statement timeouts bound the write
        slot = await self._slots.insert(
            session_id=session.id,
            time=now,
            local_date=local_date(now, self._tz or reference_timezone()),
            user=command.user,
            message=message,
            subscriber=Tier.SUBSCRIBER.value in command.badges,
            vip=Tier.VIP.value in command.badges,
            moderator=Tier.MODERATOR.value in command.badges,
        )
        return slot, session

    async def _check_timeout(self, user: str, now: datetime) -> None:
        timeout = await self._timeouts.latest_for(user)
        if timeout is not None and timeout.is_active(now):
            raise SlotRejected(
                "timed_out",
                TIMED_OUT_REPLY.format(user=user, minutes=minutes_remaining(timeout.expires_at, now)),
            )

    async def _check_limit(self, command: ChatCommand, session_id: str) -> None:
        config = self._config.current
        if not config.enabled:
            return

        limit = config.limits.for_tier(command.tier)
        used = await self._slots.count_by(session_id, command.user)
        if used >= limit:
            raise SlotRejected(
                "limit_reached", LIMIT_REACHED_REPLY.format(user=command.user, limit=limit)
            )

    async def _check_duplicate(
        self, user: str, session_id: str, message: str, now: datetime
    ) -> None:
        previous = await self._slots.latest_by_message(session_id, message)
        if previous is None:
            return

        if previous.cooldown_active(now):
            raise SlotRejected(
                "cooldown",
                COOLDOWN_REPLY.format(
                    user=user,
                    message=message,
                    minutes=minutes_remaining(previous.cooldown_expires_at, now),
                ),
            )

        # OUT with an elapsed (or cleared) cooldown may be called again
        if previous.status != SlotStatus.OUT:
            raise SlotRejected("duplicate", DUPLICATE_REPLY.format(user=user))

    # ------------------------------------------------------------------
    # read-only commands
    # ------------------------------------------------------------------

    async def handle_myslots(self, command: ChatCommand) -> str:
        session = await self._sessions.current()
        slots = await self._slots.find_by(session_id=session.id, user=command.user)

        pending = [slot.message for slot in slots if slot.status is None]
        inside = [slot.message for slot in slots if slot.status == SlotStatus.IN]
        out = [slot.message for slot in slots if slot.status == SlotStatus.OUT]

        return MYSLOTS_REPLY.format(
            user=command.user,
            pending=_join_or_none(pending),
            inside=_join_or_none(inside),
            out=_join_or_none(out),
        )

    async def handle_leaderboard(self, command: ChatCommand) -> str:
        try:
            period = LeaderboardPeriod(command.args.split()[0].lower()) if command.args else None
        except ValueError:
            period = None
        return await self._leaderboards.chat_reply(period or LeaderboardPeriod.DAILY)

    def _period_handler(self, period: LeaderboardPeriod) -> Callable[[ChatCommand], Awaitable[str]]:
        async def handler(command: ChatCommand) -> str:
            return await self._leaderboards.chat_reply(period)

        return handler


admission_service = SlotAdmissionService()
