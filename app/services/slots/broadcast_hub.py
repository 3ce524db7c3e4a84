"""
Fan-out of slot changes to connected dashboard observers.

Each observer owns a bounded queue. Publishing never awaits: an observer whose
queue is full or that has been closed is dropped from the set, and it has to
re-fetch full state when it reconnects. Nothing is replayed.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_PENDING = 100


@dataclass(slots=True, frozen=True)
class BroadcastMessage:
    event: str
    data: dict[str, Any]

    def to_sse(self) -> str:
        return f"event: {self.event}\ndata: {json.dumps(self.data, default=str)}\n\n"


class Observer:
    """One connected dashboard stream."""

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        self._queue: asyncio.Queue[BroadcastMessage] = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def deliver(self, message: BroadcastMessage) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def next(self, timeout: float | None = None) -> BroadcastMessage | None:
        """Wait for the next message; None when the timeout passes first."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except TimeoutError:
            return None


class BroadcastHub:
    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        self._max_pending = max_pending
        self._observers: set[Observer] = set()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def connect(self) -> Observer:
        observer = Observer(self._max_pending)
        self._observers.add(observer)
        logger.debug("Dashboard observer connected", observers=len(self._observers))
        return observer

    def disconnect(self, observer: Observer) -> None:
        observer.closed = True
        self._observers.discard(observer)
        logger.debug("Dashboard observer disconnected", observers=len(self._observers))

    def publish(self, event: str, payload: BaseModel | dict[str, Any]) -> int:
        """Send an event to every observer; returns how many accepted it."""
        data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
        message = BroadcastMessage(event=event, data=data)

        delivered = 0
        # Iterate a copy; disconnect() may run while we deliver
        for observer in list(self._observers):
            if observer.deliver(message):
                delivered += 1
            else:
                logger.info("Dropping unresponsive dashboard observer", broadcast_event=event)
                self.disconnect(observer)

        return delivered


broadcast_hub = BroadcastHub()
