"""
Slot queue bot: dashboard API plus the chat command loop, in one process so
the broadcast hub reaches every dashboard stream.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.db.schema import ensure_schema
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import events, health, settings as settings_routes, slots, timeouts
from app.services.chat.bot import ChatBot
from app.services.chat.feed import PusherChatFeed
from app.services.chat.reply_channel import HttpReplyChannel
from app.services.notification_service import notifier
from app.services.slots.admission_service import admission_service
from app.services.slots.config_cache import config_cache
from app.services.slots.reply_serializer import ReplySerializer

setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
logger = get_logger(__name__)


def _build_chat_bot(serializer: ReplySerializer) -> ChatBot | None:
    if not settings.CHAT_BOT_ENABLED:
        logger.info("Chat bot disabled by configuration")
        return None
    if not settings.CHAT_CHANNEL:
        logger.warning("CHAT_CHANNEL not configured, chat bot not started")
        return None

    return ChatBot(
        feed=PusherChatFeed(settings.CHAT_FEED_URL, settings.CHAT_CHANNEL),
        admission=admission_service,
        serializer=serializer,
        drain_timeout=settings.COMMAND_TIMEOUT_SECONDS,
        max_concurrent=settings.MAX_CONCURRENT_COMMANDS,
    )


def _log_bot_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Chat bot loop crashed", error=str(error), error_type=type(error).__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup order: pool, schema, settings (fatal if missing), reply queue, chat bot."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        await db_pool.initialize()
        await ensure_schema()
        # Without settings no admission decision is possible; refuse to serve
        await config_cache.load()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        await db_pool.close()
        raise

    serializer = ReplySerializer(
        HttpReplyChannel(
            settings.CHAT_REPLY_URL,
            settings.CHAT_REPLY_TOKEN,
            timeout=settings.REPLY_TIMEOUT_SECONDS,
        ),
        send_timeout=settings.REPLY_TIMEOUT_SECONDS,
        ticket_timeout=settings.COMMAND_TIMEOUT_SECONDS * 2,
    )
    serializer.start()
    app.state.reply_serializer = serializer

    bot = _build_chat_bot(serializer)
    bot_task = None
    if bot is not None:
        bot_task = asyncio.create_task(bot.run(), name="chat-bot")
        bot_task.add_done_callback(_log_bot_exit)
    app.state.chat_bot = bot

    logger.info("All services initialized successfully", chat_bot=bot is not None)

    yield

    logger.info("Application shutting down")

    if bot is not None:
        await bot.stop()
    if bot_task is not None:
        bot_task.cancel()
        try:
            await bot_task
        except asyncio.CancelledError:
            pass

    await serializer.stop()
    await notifier.aclose()
    await db_pool.close()
    logger.info("All services closed")


app = FastAPI(
    title="Slot Queue Bot",
    description="Chat-driven slot queue with live dashboard events",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(slots.router)
app.include_router(settings_routes.router)
app.include_router(timeouts.router)
app.include_router(events.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(request.method, request.url.path, response.status_code, round(process_time, 2))
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
