"""
VoceChat Reply Dispatcher — posts generated text back to the conversation.

Replies are addressed by the inbound message id (mid) through the bot
reply endpoint, authenticated with the bot's API key.
"""
from __future__ import annotations

import structlog
from typing import Any

from config.settings import VoceChatConfig, get_settings
from channels.errors import DeliveryError, TransportError
from channels.transport import ResilientTransport

logger = structlog.get_logger()

REPLY_CONTENT_TYPE = "text/markdown"


class ReplyDispatcher:
    """Delivers reply text via the VoceChat bot API. Failures raise DeliveryError."""

    def __init__(self, transport: ResilientTransport, config: VoceChatConfig = None):
        self.transport = transport
        self.config = config or get_settings().vocechat

    def reply_url(self, mid: int) -> str:
        return f"{self.config.origin.rstrip('/')}/api/bot/reply/{mid}"

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": REPLY_CONTENT_TYPE,
            "x-api-key": self.config.bot_secret,
        }

    async def deliver(self, mid: int, text: str) -> dict[str, Any]:
        url = self.reply_url(mid)
        try:
            response = await self.transport.call(
                url,
                method="POST",
                headers=self._headers(),
                content=text.encode("utf-8"),
            )
        except TransportError as e:
            logger.error("reply_send_failed", mid=mid, url=url, error=str(e))
            raise DeliveryError(mid, e) from e

        if response.status_code >= 400:
            logger.error("reply_send_rejected", mid=mid, url=url,
                         status=response.status_code)
            raise DeliveryError(mid, RuntimeError(f"HTTP {response.status_code}"))

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        logger.info("reply_sent", mid=mid, response=body)
        return {"status": "sent", "mid": mid, "response": body}
