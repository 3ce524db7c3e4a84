"""
Inbound chat feed over a Pusher-protocol websocket.

Frames look like ``{"event": "...", "channel": "...", "data": "<json>"}``
where ``data`` is usually a JSON string holding the chat message. Anything
that isn't a chat message with text and a sender is skipped.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any, Protocol

import websockets
from websockets.exceptions import WebSocketException

from app.infrastructure.observability.logging import get_logger
from app.models.domain.chat_domain import ChatEvent
from app.models.domain.slot_domain import Tier

logger = get_logger(__name__)

PING_EVENT = "pusher:ping"
PONG_EVENT = "pusher:pong"
SUBSCRIBE_EVENT = "pusher:subscribe"
BADGE_TYPES = frozenset({Tier.SUBSCRIBER.value, Tier.VIP.value, Tier.MODERATOR.value})


class ChatFeed(Protocol):
    def events(self) -> AsyncIterator[ChatEvent]:
        """Yield chat events as they arrive."""


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _is_ping(raw: str | bytes) -> bool:
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError):
        return False
    return isinstance(frame, dict) and frame.get("event") == PING_EVENT


def parse_chat_frame(raw: str | bytes) -> ChatEvent | None:
    """Turn one websocket frame into a ChatEvent, or None if it isn't chat."""
    try:
        outer = json.loads(raw)
    except (TypeError, ValueError):
        return None

    if not isinstance(outer, dict) or str(outer.get("event", "")).startswith("pusher"):
        return None

    data = outer.get("data")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return None
    if not isinstance(data, dict):
        return None

    content = data.get("content")
    sender = data.get("sender")
    if not isinstance(content, str) or not content.strip() or not isinstance(sender, dict):
        return None

    username = sender.get("username")
    if not isinstance(username, str) or not username:
        return None

    identity = sender.get("identity")
    listed = identity.get("badges") if isinstance(identity, dict) else None
    badges = frozenset(
        badge["type"]
        for badge in (listed if isinstance(listed, list) else [])
        if isinstance(badge, dict)
        and isinstance(badge.get("type"), str)
        and badge["type"] in BADGE_TYPES
    )

    return ChatEvent(
        user=username,
        text=content.strip(),
        badges=badges,
        timestamp=_parse_timestamp(data.get("created_at")),
    )


class PusherChatFeed:
    """Reconnecting websocket subscription to one chat channel."""

    def __init__(self, url: str, channel: str, reconnect_delay: float = 5.0):
        self.url = url
        self.channel = channel
        self.reconnect_delay = reconnect_delay
        self._running = False

    async def events(self) -> AsyncIterator[ChatEvent]:
        self._running = True
        while self._running:
            try:
                async with websockets.connect(self.url, close_timeout=5) as ws:
                    await ws.send(
                        json.dumps(
                            {"event": SUBSCRIBE_EVENT, "data": {"auth": "", "channel": self.channel}}
                        )
                    )
                    logger.info("Chat feed connected", channel=self.channel)

                    async for raw in ws:
                        if _is_ping(raw):
                            await ws.send(json.dumps({"event": PONG_EVENT, "data": {}}))
                            continue

                        try:
                            event = parse_chat_frame(raw)
                        except Exception:
                            logger.warning(
                                "Unreadable chat frame skipped", frame=str(raw)[:200], exc_info=True
                            )
                            continue
                        if event is not None:
                            yield event

                logger.warning("Chat feed closed by server", delay=self.reconnect_delay)
            except (WebSocketException, OSError) as e:
                if not self._running:
                    break
                logger.warning(
                    "Chat feed disconnected, reconnecting",
                    error=str(e),
                    delay=self.reconnect_delay,
                )

            if self._running:
                await asyncio.sleep(self.reconnect_delay)

    def stop(self) -> None:
        self._running = False
