"""
Current-session resolution.

There is no stored "current" flag: the current session is the one with the
latest activity, unless it has been idle past the threshold, in which case a
new one is opened. The lookup and the insert run under one lock so two
commands arriving together after an idle gap can't open two sessions.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.slot_domain import SlotSession
from app.repositories.session_repository import SessionRepository
from app.utils.time_helpers import reference_timezone, session_label, utc_now

logger = get_logger(__name__)


class SessionManager:
    def __init__(
        self,
        repository=SessionRepository,
        idle_timeout: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._idle_timeout = idle_timeout or timedelta(minutes=settings.SESSION_IDLE_MINUTES)
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def idle_timeout(self) -> timedelta:
        return self._idle_timeout

    async def current(self) -> SlotSession:
        async with self._lock:
            now = self._clock()
            session = await self._repository.latest_by_activity()

            if session is not None and now - session.last_activity_time <= self._idle_timeout:
                return session

            label = session_label(now, reference_timezone())
            created = await self._repository.insert(now, label)
            logger.info(
                "Created new slot session",
                session_id=created.id,
                label=label,
                previous_session_id=session.id if session else None,
            )
            return created

    async def touch(self, session: SlotSession) -> None:
        await self._repository.touch(session.id, self._clock())


session_manager = SessionManager()
