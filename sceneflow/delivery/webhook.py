"""Best-effort webhook delivery: one POST per event, failures logged, never retried."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel, Field

from sceneflow.errors import DeliveryFailure

logger = logging.getLogger(__name__)

WEBHOOK_EVENTS = ("task_complete", "queue_complete", "error")


class WebhookConfig(BaseModel):
    url: str = ""
    events: list[str] = Field(default_factory=lambda: ["task_complete", "queue_complete"])

    def wants(self, event: str) -> bool:
        return bool(self.url) and event in self.events


class WebhookSender:
    """POST ``{event, data, timestamp, source}`` to the configured URL."""

    def __init__(
        self,
        config: WebhookConfig | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or WebhookConfig()
        self.timeout = timeout
        self._transport = transport

    async def send(self, event: str, data: dict[str, Any]) -> bool:
        """Deliver ``event`` if subscribed. Returns True when the receiver accepted it."""
        if not self.config.wants(event):
            return False
        payload = {
            "event": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": "SceneFlow",
        }
        try:
            await self._post(payload)
        except DeliveryFailure as e:
            logger.warning("Webhook %s failed: %s", event, e)
            return False
        logger.info("Webhook sent: %s", event)
        return True

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.config.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DeliveryFailure(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DeliveryFailure(str(e) or type(e).__name__) from e
