"""Account notification delivery boundary."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Protocol

import httpx

from volley_coach.pipeline.models import NotificationMessage

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers one message to an account."""

    async def deliver(self, message: NotificationMessage) -> None:
        """Send the message; raise on delivery failure."""


class LoggingNotifier:
    """Notifier used when no delivery channel is configured."""

    async def deliver(self, message: NotificationMessage) -> None:
        logger.info(
            "Notification for account %s: type=%s title=%r",
            message.account_id,
            message.type,
            message.title,
        )


class WebhookNotifier:
    """Posts notification messages to the transport layer's webhook."""

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def deliver(self, message: NotificationMessage) -> None:
        payload = asdict(message)
        payload["accountId"] = payload.pop("account_id")
        response = await self._client.post(self._url, json=payload)
        response.raise_for_status()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
