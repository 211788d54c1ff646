"""Notification sinks.

A sink receives formatted text and delivers it; nothing it returns is
consumed.  Delivery failures are logged, never raised.
"""

import logging
from typing import Optional, Protocol

import httpx

from signalforge.config import Config

logger = logging.getLogger("signalforge.notify")

TELEGRAM_API = "https://api.telegram.org"


class NotificationSink(Protocol):
    async def send(self, destination: Optional[str], text: str) -> None:
        ...


class LogSink:
    """Writes messages to the log; keeps the last *keep* for inspection."""

    def __init__(self, keep: int = 100) -> None:
        self.sent: list[tuple[Optional[str], str]] = []
        self._keep = keep

    async def send(self, destination: Optional[str], text: str) -> None:
        logger.info("[%s] %s", destination or "log", text)
        self.sent.append((destination, text))
        del self.sent[:-self._keep]


class TelegramSink:
    """Posts messages through the Telegram Bot API ``sendMessage`` method.

    Falls back to logging when no bot token is configured.  *destination*
    defaults to the configured chat id.
    """

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = config.telegram_token
        self._chat_id = config.telegram_chat_id
        self._transport = transport
        self._fallback = LogSink()

    async def send(self, destination: Optional[str], text: str) -> None:
        chat_id = destination or self._chat_id
        if not self._token or not chat_id:
            await self._fallback.send(chat_id, text)
            return

        url = f"{TELEGRAM_API}/bot{self._token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                resp = await client.post(url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Telegram delivery to %s failed: %s", chat_id, exc)
