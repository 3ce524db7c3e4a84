"""
Best-effort Discord webhook notifications.

``notify`` schedules the post and returns immediately; a failed post is
logged and otherwise ignored.
"""

import asyncio

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class NotificationError(Exception):
    """Raised when the webhook rejects a notification."""


class DiscordNotifier:
    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.DISCORD_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.NOTIFY_TIMEOUT_SECONDS
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, text: str) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.webhook_url, json={"content": text})

        if response.status_code >= 400:
            raise NotificationError(
                f"Discord webhook returned {response.status_code}: {response.text[:200]}"
            )

    def notify(self, text: str) -> None:
        if not self.enabled:
            return

        task = asyncio.create_task(self._send_quietly(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_quietly(self, text: str) -> None:
        try:
            await self.send(text)
            logger.debug("Discord notified")
        except (httpx.HTTPError, NotificationError) as e:
            logger.warning("Discord notification failed", error=str(e), error_type=type(e).__name__)

    async def aclose(self) -> None:
        """Let in-flight notifications finish (they are already time-bounded)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


notifier = DiscordNotifier()
