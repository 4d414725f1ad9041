"""Fire-and-forget webhook delivery.

One POST per notification, bounded by a timeout. The timeout applies to
the connect and to each read, and the whole call is cut off after the same
timeout in case a receiver trickles its response. No retry, no backoff, no
queue: a failed attempt is logged and dropped. Delivery runs as a detached
asyncio task so callers never wait on it.
"""

from __future__ import annotations

import asyncio
from typing import Any

import requests

from openwapi.infra.time import iso_utc
from openwapi.observability.logging import get_logger
from openwapi.observability.redaction import safe_log_context
from openwapi.whatsapp.models import MESSAGE_RECEIVED_EVENT, Message

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 5.0


def build_message_payload(message: Message, *, event: str = MESSAGE_RECEIVED_EVENT) -> dict[str, Any]:
    """Notification body for one ingested message."""
    return {
        "event": event,
        "message": {
            "id": message.id,
            "from": message.phone,
            "text": message.message,
            "mediaType": message.media_type,
            "mediaUrl": message.media_url,
            "timestamp": iso_utc(),
        },
    }


class WebhookDispatcher:
    def __init__(self, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self.timeout_s = timeout_s
        # Strong references so pending deliveries are not garbage collected
        self._pending: set[asyncio.Task[bool]] = set()

    def dispatch(self, url: str, payload: dict[str, Any]) -> asyncio.Task[bool]:
        """Start delivery in the background and return immediately.

        Must be called from a running event loop.
        """
        task = asyncio.get_running_loop().create_task(self.deliver(url, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def deliver(self, url: str, payload: dict[str, Any]) -> bool:
        """POST the payload once. Never raises; returns True on a 2xx."""
        log_ctx = safe_log_context(url=url, event=payload.get("event"))
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    requests.post,
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    timeout=(self.timeout_s, self.timeout_s),
                ),
                self.timeout_s,
            )
        except (requests.Timeout, asyncio.TimeoutError):
            logger.error(
                "webhook delivery timed out",
                extra={"extra_fields": {**log_ctx, "timeout_s": str(self.timeout_s)}},
            )
            return False
        except Exception as e:
            logger.error(
                "webhook delivery failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            return False

        if not response.ok:
            logger.warning(
                "webhook returned non-success status",
                extra={"extra_fields": {**log_ctx, "status": str(response.status_code)}},
            )
            return False

        logger.info("webhook delivered", extra={"extra_fields": log_ctx})
        return True

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
