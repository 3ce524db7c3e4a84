import asyncio
import uuid
from datetime import UTC, date, datetime, timedelta

import pytest
import pytest_asyncio

from app.db.helpers import DatabaseError
from app.models.domain.slot_domain import (
    Slot,
    SlotConfig,
    SlotSession,
    SlotStatus,
    TierLimits,
    UserTimeout,
)
from app.services.slots.admission_service import SlotAdmissionService
from app.services.slots.broadcast_hub import BroadcastHub
from app.services.slots.config_cache import ConfigCache
from app.services.slots.leaderboard_service import LeaderboardService
from app.services.slots.operator_service import SlotOperatorService
from app.services.slots.session_manager import SessionManager

START = datetime(2025, 3, 1, 18, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeSlotRepository:
    def __init__(self):
        self.rows: dict[str, Slot] = {}
        self.inserts = 0
        self.fail_with: Exception | None = None
        self.lookup_delay = 0.0

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def insert(
        self,
        *,
        session_id: str,
        time: datetime,
        local_date: date,
        user: str,
        message: str,
        subscriber: bool,
        vip: bool,
        moderator: bool,
    ) -> Slot:
        self._maybe_fail()
        slot = Slot(
            id=str(uuid.uuid4()),
            session_id=session_id,
            time=time,
            local_date=local_date,
            user=user,
            message=message,
            subscriber=subscriber,
            vip=vip,
            moderator=moderator,
        )
        self.rows[slot.id] = slot
        self.inserts += 1
        return slot

    async def find_by(
        self,
        *,
        session_id=None,
        user=None,
        status=None,
        since=None,
        until=None,
        from_date=None,
        to_date=None,
        search=None,
    ) -> list[Slot]:
        self._maybe_fail()
        result = []
        for slot in self.rows.values():
            if session_id is not None and slot.session_id != session_id:
                continue
            if user is not None and slot.user != user:
                continue
            if status == "unset" and slot.status is not None:
                continue
            if status not in (None, "unset") and slot.status != SlotStatus(status):
                continue
            if since is not None and slot.time < since:
                continue
            if until is not None and slot.time > until:
                continue
            result.append(slot)
        return sorted(result, key=lambda s: s.time)

    async def latest_by_message(self, session_id: str, message: str) -> Slot | None:
        self._maybe_fail()
        if self.lookup_delay:
            await asyncio.sleep(self.lookup_delay)
        matches = [
            s for s in self.rows.values() if s.session_id == session_id and s.message == message
        ]
        return max(matches, key=lambda s: s.time) if matches else None

    async def count_by(self, session_id: str, user: str) -> int:
        self._maybe_fail()
        return sum(1 for s in self.rows.values() if s.session_id == session_id and s.user == user)

    async def update_fields(
        self, slot_id, patch, increments=None, on_status_change=frozenset()
    ) -> Slot | None:
        self._maybe_fail()
        slot = self.rows.get(slot_id)
        if slot is None:
            return None
        unchanged = "status" in patch and slot.status == patch["status"]
        skipped = on_status_change if unchanged else frozenset()
        changes = {column: value for column, value in patch.items() if column not in skipped}
        for column, amount in (increments or {}).items():
            if column not in skipped:
                changes[column] = getattr(slot, column) + amount
        updated = slot.model_copy(update=changes)
        self.rows[slot_id] = updated
        return updated

    async def delete(self, slot_id: str) -> bool:
        self._maybe_fail()
        return self.rows.pop(slot_id, None) is not None


class FakeSessionRepository:
    def __init__(self):
        self.rows: list[SlotSession] = []
        self.insert_delay = 0.0
        self.touch_delay = 0.0
        self.touch_fail_with: Exception | None = None

    async def latest_by_activity(self) -> SlotSession | None:
        if not self.rows:
            return None
        return max(self.rows, key=lambda s: s.last_activity_time)

    async def insert(self, start_time: datetime, label: str) -> SlotSession:
        if self.insert_delay:
            await asyncio.sleep(self.insert_delay)
        session = SlotSession(
            id=str(uuid.uuid4()), start_time=start_time, last_activity_time=start_time, label=label
        )
        self.rows.append(session)
        return session

    async def touch(self, session_id: str, at: datetime) -> None:
        if self.touch_delay:
            await asyncio.sleep(self.touch_delay)
        if self.touch_fail_with is not None:
            raise self.touch_fail_with
        for index, session in enumerate(self.rows):
            if session.id == session_id and at > session.last_activity_time:
                self.rows[index] = session.model_copy(update={"last_activity_time": at})

    async def list_all(self) -> list[SlotSession]:
        return sorted(self.rows, key=lambda s: s.start_time, reverse=True)


class FakeTimeoutRepository:
    def __init__(self):
        self.rows: dict[str, UserTimeout] = {}

    async def latest_for(self, user: str) -> UserTimeout | None:
        matches = [t for t in self.rows.values() if t.user == user]
        return max(matches, key=lambda t: t.expires_at) if matches else None

    async def insert(self, user: str, expires_at: datetime) -> UserTimeout:
        timeout = UserTimeout(id=str(uuid.uuid4()), user=user, expires_at=expires_at)
        self.rows[timeout.id] = timeout
        return timeout

    async def delete(self, timeout_id: str) -> UserTimeout | None:
        return self.rows.pop(timeout_id, None)

    async def list_active(self, now: datetime) -> list[UserTimeout]:
        return sorted(
            (t for t in self.rows.values() if t.expires_at > now), key=lambda t: t.expires_at
        )


class FakeConfigRepository:
    def __init__(self, config: SlotConfig | None = None):
        self.config = config
        self.writes = 0
        self.fail_with: Exception | None = None

    async def get(self) -> SlotConfig | None:
        if self.fail_with is not None:
            raise self.fail_with
        return self.config

    async def upsert(self, config: SlotConfig) -> SlotConfig:
        if self.fail_with is not None:
            raise self.fail_with
        self.config = config
        self.writes += 1
        return config


class FakeNotifier:
    def __init__(self):
        self.sent: list[str] = []

    def notify(self, text: str) -> None:
        self.sent.append(text)


def make_config(
    enabled: bool = True,
    follower: int = 1,
    subscriber: int = 2,
    vip: int = 3,
    moderator: int = 5,
    cooldown: float = 10.0,
) -> SlotConfig:
    return SlotConfig(
        enabled=enabled,
        limits=TierLimits(follower=follower, subscriber=subscriber, vip=vip, moderator=moderator),
        out_cooldown_minutes=cooldown,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def slot_repo():
    return FakeSlotRepository()


@pytest.fixture
def session_repo():
    return FakeSessionRepository()


@pytest.fixture
def timeout_repo():
    return FakeTimeoutRepository()


@pytest.fixture
def config_repo():
    return FakeConfigRepository(make_config())


@pytest.fixture
def hub():
    return BroadcastHub()


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest_asyncio.fixture
async def config(config_repo, hub):
    cache = ConfigCache(repository=config_repo, hub=hub)
    await cache.load()
    return cache


@pytest.fixture
def sessions(session_repo, clock):
    return SessionManager(repository=session_repo, idle_timeout=timedelta(hours=2), clock=clock)


@pytest.fixture
def make_admission(slot_repo, timeout_repo, sessions, config, hub, fake_notifier, clock):
    def build(**overrides) -> SlotAdmissionService:
        options = dict(
            slots=slot_repo,
            timeouts=timeout_repo,
            sessions=sessions,
            config=config,
            hub=hub,
            leaderboards=LeaderboardService(slots=slot_repo, clock=clock, tz=UTC),
            notify=fake_notifier,
            clock=clock,
            tz=UTC,
        )
        options.update(overrides)
        return SlotAdmissionService(**options)

    return build


@pytest.fixture
def admission(make_admission):
    return make_admission()


@pytest.fixture
def operator(slot_repo, timeout_repo, config, hub, clock):
    return SlotOperatorService(
        slots=slot_repo, timeouts=timeout_repo, config=config, hub=hub, clock=clock
    )


@pytest.fixture
def storage_error():
    return DatabaseError("connection refused", operation="fetch_one")
