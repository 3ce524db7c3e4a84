"""
Tests for parsing Pusher chat frames into chat events and commands.
"""

import asyncio
import json
from contextlib import aclosing

import pytest

from app.models.domain.chat_domain import ChatCommand, ChatEvent
from app.models.domain.slot_domain import Tier
from app.services.chat import feed as feed_module
from app.services.chat.feed import PusherChatFeed, _is_ping, parse_chat_frame


def chat_frame(content="!slot Big Bass", username="alice", badges=(), encode_data=True):
    data = {
        "id": "m1",
        "content": content,
        "created_at": "2025-03-01T18:00:00Z",
        "sender": {
            "username": username,
            "identity": {"badges": [{"type": badge, "text": badge} for badge in badges]},
        },
    }
    return json.dumps(
        {
            "event": "App\\Events\\ChatMessageEvent",
            "channel": "chatrooms.1.v2",
            "data": json.dumps(data) if encode_data else data,
        }
    )


def test_parses_chat_message():
    event = parse_chat_frame(chat_frame(badges=("subscriber", "og", "moderator")))

    assert event.user == "alice"
    assert event.text == "!slot Big Bass"
    assert event.badges == frozenset({"subscriber", "moderator"})
    assert event.timestamp.year == 2025


def test_accepts_object_data():
    event = parse_chat_frame(chat_frame(encode_data=False))

    assert event is not None
    assert event.user == "alice"


def test_skips_protocol_and_malformed_frames():
    assert parse_chat_frame(json.dumps({"event": "pusher:connection_established", "data": "{}"})) is None
    assert parse_chat_frame("not json") is None
    assert parse_chat_frame(json.dumps({"event": "x", "data": "{broken"})) is None
    assert parse_chat_frame(chat_frame(content="   ")) is None
    assert parse_chat_frame(chat_frame(username="")) is None


def test_ping_detection():
    assert _is_ping(json.dumps({"event": "pusher:ping", "data": {}})) is True
    assert _is_ping(chat_frame()) is False
    assert _is_ping("garbage") is False


def test_command_parsing_and_tier_precedence():
    command = ChatCommand.from_event(
        ChatEvent(user="bob", text="!SLOT  Sweet Bonanza ", badges=frozenset({"subscriber", "vip"}))
    )

    assert command.verb == "slot"
    assert command.args == "Sweet Bonanza"
    assert command.tier is Tier.VIP


def test_plain_chat_is_not_a_command():
    assert ChatCommand.from_event(ChatEvent(user="bob", text="hello there")) is None
    assert ChatCommand.from_event(ChatEvent(user="bob", text="!")) is None
    assert ChatCommand.from_event(ChatEvent(user="bob", text="hi")) is None


def test_user_without_badges_is_follower():
    command = ChatCommand.from_event(ChatEvent(user="bob", text="!myslots"))

    assert command.tier is Tier.FOLLOWER
    assert command.args == ""


def sender_frame(sender: dict) -> str:
    data = {"content": "!slot Big Bass", "sender": sender}
    return json.dumps({"event": "App\\Events\\ChatMessageEvent", "data": json.dumps(data)})


def test_odd_identity_shapes_mean_no_badges():
    for identity in ("x", ["vip"], 7, None):
        event = parse_chat_frame(sender_frame({"username": "alice", "identity": identity}))
        assert event.badges == frozenset()

    event = parse_chat_frame(sender_frame({"username": "alice", "identity": {"badges": "vip"}}))
    assert event.badges == frozenset()


def test_non_string_badge_types_are_ignored():
    badges = [{"type": ["vip"]}, {"type": {"k": 1}}, {"type": None}, {"type": "moderator"}]
    event = parse_chat_frame(sender_frame({"username": "alice", "identity": {"badges": badges}}))

    assert event.badges == frozenset({"moderator"})


def test_non_string_username_is_skipped():
    assert parse_chat_frame(sender_frame({"username": 42})) is None


class FakeSocket:
    def __init__(self, frames):
        self.frames = frames
        self.sent: list[dict] = []

    async def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def _frames(self):
        for frame in self.frames:
            yield frame

    def __aiter__(self):
        return self._frames()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_feed_survives_bad_frames_and_waits_before_reconnecting(monkeypatch):
    ping = json.dumps({"event": "pusher:ping", "data": {}})
    first = FakeSocket([ping, "boom", chat_frame(content="!slot A")])
    second = FakeSocket([chat_frame(content="!slot B")])
    sockets = [first, second]
    monkeypatch.setattr(feed_module.websockets, "connect", lambda url, **kwargs: sockets.pop(0))

    real_parse = feed_module.parse_chat_frame

    def flaky_parse(raw):
        if raw == "boom":
            raise RuntimeError("unexpected frame layout")
        return real_parse(raw)

    monkeypatch.setattr(feed_module, "parse_chat_frame", flaky_parse)

    feed = PusherChatFeed("wss://chat.test", "chatrooms.1.v2", reconnect_delay=0.05)
    loop = asyncio.get_running_loop()
    received = []
    async with aclosing(feed.events()) as events:
        async for event in events:
            received.append((event.text, loop.time()))
            if len(received) == 2:
                feed.stop()
                break

    assert [text for text, _ in received] == ["!slot A", "!slot B"]
    assert received[1][1] - received[0][1] >= 0.04
    assert first.sent[0]["event"] == "pusher:subscribe"
    assert first.sent[1] == {"event": "pusher:pong", "data": {}}
    assert second.sent[0]["data"]["channel"] == "chatrooms.1.v2"
