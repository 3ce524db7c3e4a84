"""
Message loop tying the chat feed to the admission service and reply queue.

Every recognised command reserves its reply ticket as soon as it is read off
the feed, then its decision runs as its own task. The admission service
bounds each decision itself, so a task is never cancelled from here. A
command that times out or hits a storage error releases its ticket without
a reply; the failure is logged, the user hears nothing.
"""

import asyncio

from app.db.helpers import DatabaseError
from app.infrastructure.observability.logging import get_logger
from app.models.domain.chat_domain import ChatCommand, ChatEvent
from app.services.chat.feed import ChatFeed
from app.services.slots.admission_service import SlotAdmissionService
from app.services.slots.reply_serializer import ReplySerializer, ReplyTicket

logger = get_logger(__name__)


class ChatBot:
    def __init__(
        self,
        feed: ChatFeed,
        admission: SlotAdmissionService,
        serializer: ReplySerializer,
        drain_timeout: float = 10.0,
        max_concurrent: int = 8,
    ):
        self._feed = feed
        self._admission = admission
        self._serializer = serializer
        self._drain_timeout = drain_timeout
        self._slots = asyncio.Semaphore(max_concurrent)
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        logger.info("Chat bot listening for commands")
        async for event in self._feed.events():
            await self.dispatch(event)

    async def dispatch(self, event: ChatEvent) -> asyncio.Task | None:
        command = ChatCommand.from_event(event)
        if command is None or not self._admission.supports(command.verb):
            return None

        # Reserve before waiting for capacity so reply order follows arrival order
        ticket = self._serializer.reserve(label=f"{command.verb}:{command.user}")
        await self._slots.acquire()

        task = asyncio.create_task(self._process(command, ticket))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _process(self, command: ChatCommand, ticket: ReplyTicket) -> None:
        reply = None
        try:
            reply = await self._admission.handle(command)
        except TimeoutError:
            logger.error(
                "Chat command timed out, dropped without reply",
                user=command.user,
                verb=command.verb,
            )
        except DatabaseError as e:
            logger.error(
                "Storage failure, chat command dropped without reply",
                user=command.user,
                verb=command.verb,
                text=command.raw_text,
                operation=e.operation,
                error=str(e),
            )
        except Exception:
            logger.exception(
                "Unexpected error handling chat command", user=command.user, verb=command.verb
            )
        finally:
            ticket.resolve(reply)
            self._slots.release()

    async def stop(self) -> None:
        stop = getattr(self._feed, "stop", None)
        if stop is not None:
            stop()

        if self._tasks:
            await asyncio.wait(list(self._tasks), timeout=self._drain_timeout)
        logger.info("Chat bot stopped")
