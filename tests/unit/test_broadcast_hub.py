import pytest

from app.services.slots.broadcast_hub import BroadcastHub, BroadcastMessage


@pytest.mark.asyncio
async def test_publish_reaches_every_observer():
    hub = BroadcastHub()
    first = hub.connect()
    second = hub.connect()

    delivered = hub.publish("delete", {"id": "abc"})

    assert delivered == 2
    assert (await first.next(timeout=0.1)).data == {"id": "abc"}
    assert (await second.next(timeout=0.1)).event == "delete"


@pytest.mark.asyncio
async def test_full_observer_is_dropped_without_blocking_others():
    hub = BroadcastHub(max_pending=1)
    slow = hub.connect()
    fast = hub.connect()

    hub.publish("delete", {"id": "1"})
    await fast.next(timeout=0.1)
    delivered = hub.publish("delete", {"id": "2"})

    assert delivered == 1
    assert slow.closed is True
    assert hub.observer_count == 1
    assert (await fast.next(timeout=0.1)).data == {"id": "2"}


def test_disconnected_observer_receives_nothing():
    hub = BroadcastHub()
    observer = hub.connect()
    hub.disconnect(observer)

    assert hub.publish("settings", {"enabled": True}) == 0
    assert observer.deliver(BroadcastMessage("settings", {})) is False


@pytest.mark.asyncio
async def test_next_returns_none_on_timeout():
    hub = BroadcastHub()
    observer = hub.connect()

    assert await observer.next(timeout=0.01) is None


def test_sse_framing():
    message = BroadcastMessage(event="timeoutRemove", data={"id": "t1"})

    assert message.to_sse() == 'event: timeoutRemove\ndata: {"id": "t1"}\n\n'


@pytest.mark.asyncio
async def test_models_are_serialized_to_json_data(config_repo):
    hub = BroadcastHub()
    observer = hub.connect()

    hub.publish("settings", config_repo.config)

    message = await observer.next(timeout=0.1)
    assert message.data["limits"]["follower"] == 1
    assert message.data["out_cooldown_minutes"] == 10.0
