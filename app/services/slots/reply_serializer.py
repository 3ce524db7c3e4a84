"""
Strictly ordered delivery of chat replies.

The outbound chat box is one stateful surface, so only this module's
consumer task ever calls ``ReplyChannel.send``. A command reserves a ticket
when it arrives and resolves it with its reply once its decision is made.
The consumer walks tickets in reservation order, so replies leave in arrival
order even when decisions finish out of order, and a send never starts
before the previous one returned.
"""

import asyncio
from typing import Protocol

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ReplyChannel(Protocol):
    async def send(self, text: str) -> None:
        """Post one message to chat; raise on failure."""


class ReplyTicket:
    """A reserved place in the reply queue."""

    def __init__(self, label: str | None = None):
        self.label = label
        self._future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def resolve(self, text: str | None) -> None:
        """Fill the ticket; None releases it without sending anything."""
        if not self._future.done():
            self._future.set_result(text)

    def release(self) -> None:
        self.resolve(None)

    async def wait(self) -> str | None:
        return await self._future


class ReplySerializer:
    def __init__(
        self,
        channel: ReplyChannel,
        send_timeout: float = 10.0,
        ticket_timeout: float = 30.0,
    ):
        self._channel = channel
        self._send_timeout = send_timeout
        self._ticket_timeout = ticket_timeout
        self._queue: asyncio.Queue[ReplyTicket] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self.sent = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def reserve(self, label: str | None = None) -> ReplyTicket:
        ticket = ReplyTicket(label)
        self._queue.put_nowait(ticket)
        return ticket

    def enqueue(self, text: str) -> ReplyTicket:
        """Queue a reply whose text is already known."""
        ticket = self.reserve()
        ticket.resolve(text)
        return ticket

    def start(self) -> None:
        if self.running:
            return
        self._consumer = asyncio.create_task(self._run(), name="reply-serializer")
        logger.info("Reply serializer started")

    async def join(self) -> None:
        """Wait until every queued ticket has been handled."""
        await self._queue.join()

    async def stop(self, drain_timeout: float = 5.0) -> None:
        if self._consumer is None:
            return

        try:
            await asyncio.wait_for(self._queue.join(), drain_timeout)
        except TimeoutError:
            logger.warning("Reply queue not drained before shutdown", pending=self.pending)

        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None
        logger.info("Reply serializer stopped", sent=self.sent, failed=self.failed)

    async def _run(self) -> None:
        while True:
            ticket = await self._queue.get()
            try:
                text = await self._await_ticket(ticket)
                if text:
                    await self._deliver(text)
            finally:
                self._queue.task_done()

    async def _await_ticket(self, ticket: ReplyTicket) -> str | None:
        try:
            return await asyncio.wait_for(asyncio.shield(ticket.wait()), self._ticket_timeout)
        except TimeoutError:
            logger.error("Reply ticket never resolved, skipping", ticket=ticket.label)
            ticket.release()
            return None

    async def _deliver(self, text: str) -> None:
        try:
            await asyncio.wait_for(self._channel.send(text), self._send_timeout)
            self.sent += 1
            logger.info("Chat reply sent", reply=text)
        except TimeoutError:
            self.failed += 1
            logger.error("Chat reply timed out", reply=text, timeout=self._send_timeout)
        except Exception as e:
            self.failed += 1
            logger.error(
                "Chat reply failed", reply=text, error=str(e), error_type=type(e).__name__
            )
