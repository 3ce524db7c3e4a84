from datetime import timedelta

import pytest

from app.models.domain.slot_domain import SlotStatus


async def seed_slot(slot_repo, clock, message="Book of Dead"):
    return await slot_repo.insert(
        session_id="s1",
        time=clock.now,
        local_date=clock.now.date(),
        user="alice",
        message=message,
        subscriber=False,
        vip=False,
        moderator=False,
    )


@pytest.mark.asyncio
async def test_marking_out_starts_cooldown_and_counts(operator, slot_repo, clock, hub):
    observer = hub.connect()
    slot = await seed_slot(slot_repo, clock)

    updated = await operator.update_slot(slot.id, status=SlotStatus.OUT)

    assert updated.status == SlotStatus.OUT
    assert updated.out_count == 1
    assert updated.cooldown_expires_at == clock.now + timedelta(minutes=10)
    assert updated.status_changed_at == clock.now

    message = await observer.next(timeout=0.1)
    assert message.event == "update"
    assert message.data["id"] == slot.id
    assert message.data["status"] == "OUT"


@pytest.mark.asyncio
async def test_each_transition_to_out_counts(operator, slot_repo, clock):
    slot = await seed_slot(slot_repo, clock)

    await operator.update_slot(slot.id, status=SlotStatus.OUT)
    await operator.update_slot(slot.id, status=SlotStatus.IN)
    clock.advance(minutes=20)
    updated = await operator.update_slot(slot.id, status=SlotStatus.OUT)

    assert updated.out_count == 2
    assert updated.cooldown_expires_at == clock.now + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_marking_out_again_keeps_count_and_cooldown(operator, slot_repo, clock):
    slot = await seed_slot(slot_repo, clock)
    first = await operator.update_slot(slot.id, status=SlotStatus.OUT)

    clock.advance(minutes=5)
    again = await operator.update_slot(slot.id, status=SlotStatus.OUT)

    assert again.out_count == 1
    assert again.cooldown_expires_at == first.cooldown_expires_at
    assert again.status_changed_at == first.status_changed_at


@pytest.mark.asyncio
async def test_any_other_update_clears_cooldown(operator, slot_repo, clock):
    slot = await seed_slot(slot_repo, clock)
    await operator.update_slot(slot.id, status=SlotStatus.OUT)

    updated = await operator.update_slot(slot.id, payout=42.0)

    assert updated.cooldown_expires_at is None
    assert updated.payout == 42.0
    assert updated.status == SlotStatus.OUT
    assert updated.out_count == 1


@pytest.mark.asyncio
async def test_cooldown_uses_current_settings(operator, config, slot_repo, clock):
    await config.update({"out_cooldown_minutes": 0.5})
    slot = await seed_slot(slot_repo, clock)

    updated = await operator.update_slot(slot.id, status=SlotStatus.OUT)

    assert updated.cooldown_expires_at == clock.now + timedelta(seconds=30)


def test_empty_patch_rejected(operator):
    with pytest.raises(ValueError, match="Nothing to update"):
        operator.build_patch()


@pytest.mark.asyncio
async def test_update_missing_slot_returns_none(operator, hub):
    observer = hub.connect()

    assert await operator.update_slot("missing", status=SlotStatus.IN) is None
    assert await observer.next(timeout=0.01) is None


@pytest.mark.asyncio
async def test_delete_publishes_id(operator, slot_repo, clock, hub):
    observer = hub.connect()
    slot = await seed_slot(slot_repo, clock)

    assert await operator.delete_slot(slot.id) is True
    assert await operator.delete_slot(slot.id) is False

    message = await observer.next(timeout=0.1)
    assert (message.event, message.data) == ("delete", {"id": slot.id})
    assert await observer.next(timeout=0.01) is None


@pytest.mark.asyncio
async def test_timeouts_add_list_remove(operator, clock, hub):
    observer = hub.connect()

    timeout = await operator.add_timeout("troll", 15)
    assert timeout.expires_at == clock.now + timedelta(minutes=15)
    assert [t.user for t in await operator.active_timeouts()] == ["troll"]

    removed = await operator.remove_timeout(timeout.id)
    assert removed.id == timeout.id
    assert await operator.active_timeouts() == []
    assert await operator.remove_timeout(timeout.id) is None

    events = [(await observer.next(timeout=0.1)).event for _ in range(2)]
    assert events == ["timeoutAdd", "timeoutRemove"]


@pytest.mark.asyncio
async def test_expired_timeouts_not_listed(operator, clock):
    await operator.add_timeout("brief", 1)
    clock.advance(minutes=2)

    assert await operator.active_timeouts() == []
