"""
Outbound chat replies over the platform's HTTP chat API.

Only the reply serializer calls ``send``; concurrent sends would interleave
in the channel.
"""

import httpx

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ReplyDeliveryError(Exception):
    """Raised when the chat API refuses or fails a reply."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class HttpReplyChannel:
    def __init__(self, url: str, token: str | None, timeout: float = 10.0, reply_type: str = "bot"):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.reply_type = reply_type

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def send(self, text: str) -> None:
        payload = {"content": text, "type": self.reply_type}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.RequestError as e:
            raise ReplyDeliveryError(f"Chat API request failed: {e}") from e

        if response.status_code >= 400:
            raise ReplyDeliveryError(
                f"Chat API returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        logger.debug("Chat API accepted reply", status_code=response.status_code)
