"""
Outbound messaging channel.

The workflow only needs one capability from the channel:
``send(recipient, message) -> bool``. ``TelegramChannel`` provides it over the
Telegram Bot API. Transport errors and timeouts are raised to the caller; the
notification dispatcher decides what a failure means.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

log = structlog.get_logger()


class MessagingChannel(Protocol):
    async def send(self, recipient: str, message: str) -> bool:
        """Deliver an HTML-formatted message. True only on confirmed delivery."""
        ...


class TelegramChannel:
    """Sends messages through the Telegram Bot API ``sendMessage`` method."""

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        request_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._bot_token = bot_token
        self._api_url = api_url.rstrip("/")
        self._request_timeout = request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{self._api_url}/bot{self._bot_token}",
            timeout=httpx.Timeout(self._request_timeout),
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, recipient: str, message: str) -> bool:
        if self._client is None:
            await self.open()
        assert self._client

        resp = await self._client.post(
            "/sendMessage",
            json={
                "chat_id": recipient,
                "text": message,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )
        resp.raise_for_status()
        ok = bool(resp.json().get("ok"))
        if not ok:
            log.warning("telegram.send_rejected", recipient=recipient, body=resp.text[:200])
        return ok
