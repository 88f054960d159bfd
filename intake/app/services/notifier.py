"""Notification delivery.

A ``Notifier`` takes one subject and body and delivers it to every
configured recipient. From the caller's side a send either succeeds
completely or raises ``NotifierError``.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import httpx

from intake.app.core.logging import get_logger
from intake.app.exceptions import NotifierError

logger = get_logger(__name__)

TELEGRAM_API_BASE_URL = "https://api.telegram.org"


class Notifier(ABC):
    """Base class for notification channels."""

    @abstractmethod
    async def send(self, subject: str, body: str) -> None:
        """Deliver a message.

        Raises:
            NotifierError: If delivery to any recipient failed
        """

    @property
    def recipient_count(self) -> int:
        return 0


class TelegramNotifier(Notifier):
    """Sends messages to Telegram chats through the Bot API.

    Chats are messaged in order. The first failure stops the fan-out and
    is raised; chats before it have already received the message.
    """

    def __init__(
        self,
        bot_token: str,
        chat_ids: Sequence[str],
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = TELEGRAM_API_BASE_URL,
        timeout: float = 10.0,
    ):
        """Initialize the notifier.

        Args:
            bot_token: Telegram bot token
            chat_ids: Recipient chat identifiers
            http_client: Optional shared HTTP client for connection pooling
            base_url: Bot API base URL
            timeout: Request timeout when no shared client is given
        """
        self.bot_token = bot_token
        self.chat_ids: List[str] = list(chat_ids)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def recipient_count(self) -> int:
        return len(self.chat_ids)

    @property
    def send_message_url(self) -> str:
        return f"{self.base_url}/bot{self.bot_token}/sendMessage"

    async def send(self, subject: str, body: str) -> None:
        text = f"{subject}\n\n{body}"
        if self._http_client is not None:
            await self._send_all(self._http_client, text)
            return
        # Fallback: per-call client when no shared one was provided
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            await self._send_all(client, text)

    async def _send_all(self, client: httpx.AsyncClient, text: str) -> None:
        for chat_id in self.chat_ids:
            try:
                response = await client.post(
                    self.send_message_url,
                    json={"chat_id": chat_id, "text": text},
                )
            except httpx.HTTPError as e:
                raise NotifierError(
                    f"telegram request failed: {type(e).__name__}: {e}",
                    recipient=chat_id,
                ) from e

            if response.status_code >= 400:
                raise NotifierError(
                    f"telegram error: status={response.status_code} body={response.text}",
                    status_code=response.status_code,
                    recipient=chat_id,
                )
            logger.debug(f"Delivered message to chat {chat_id}")
