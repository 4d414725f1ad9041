"""Inbound message ingestion.

Turns one raw protocol event into at most one persisted Message and at most
one webhook notification.

Pipeline per event:
1. Skip events without a body and echoes of our own sends.
2. Resolve the counterparty (alias addresses are swapped for the
   participant's phone-number address when one is available).
3. Extract text: conversation > extendedTextMessage.text > image caption.
4. Download image payloads through the session. A failed download degrades
   the message to text with no media reference; capture never fails just
   because media capture failed.
5. Persist, then store the image under a name derived from the new id.
6. Notify the active webhook subscription without waiting for delivery.

No deduplication: a redelivered event is stored again.

Store and disk calls run in worker threads so the event loop is never
held by a slow database.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

from openwapi.infra.media_store import MediaStore
from openwapi.infra.store import Store
from openwapi.observability.logging import get_logger
from openwapi.observability.redaction import hash_identifier, safe_log_context
from openwapi.whatsapp.models import (
    MESSAGE_RECEIVED_EVENT,
    InboundEvent,
    Message,
    NewMessage,
)
from openwapi.whatsapp.session import MessagesUpserted, Session
from openwapi.whatsapp.webhook_dispatcher import WebhookDispatcher, build_message_payload

logger = get_logger(__name__)

ALIAS_SERVER = "@lid"
USER_SERVER = "@s.whatsapp.net"


def is_alias_address(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(ALIAS_SERVER)


def is_user_address(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(USER_SERVER)


def resolve_counterparty(remote_jid: str, participant: str | None) -> str:
    """Pick the stable address to record for the sender.

    Alias (@lid) addresses are session-scoped, so when the event also names
    a directly addressable participant that address wins.
    """
    if is_alias_address(remote_jid) and is_user_address(participant):
        return participant  # type: ignore[return-value]
    return remote_jid


def extract_text(message: dict[str, Any]) -> str:
    """Text precedence: plain body, extended text, image caption, else ''."""
    conversation = message.get("conversation")
    if conversation:
        return conversation

    extended = message.get("extendedTextMessage") or {}
    if extended.get("text"):
        return extended["text"]

    image = message.get("imageMessage") or {}
    if image.get("caption"):
        return image["caption"]

    return ""


def has_image(message: dict[str, Any]) -> bool:
    return bool(message.get("imageMessage"))


class MessageIngestionPipeline:
    def __init__(
        self,
        *,
        store: Store,
        media_store: MediaStore,
        dispatcher: WebhookDispatcher,
    ) -> None:
        self.store = store
        self.media_store = media_store
        self.dispatcher = dispatcher

    async def ingest_batch(self, batch: MessagesUpserted, session: Session) -> list[Message]:
        """Ingest every event of a "notify" batch, in order.

        A failure on one event is logged and does not stop the rest.
        """
        if batch.kind != "notify":
            return []

        stored: list[Message] = []
        for event in batch.messages:
            try:
                message = await self.ingest(event, session)
            except Exception:
                logger.exception(
                    "failed to store inbound message",
                    extra={
                        "extra_fields": safe_log_context(
                            from_hash=hash_identifier(event.remote_jid),
                        )
                    },
                )
                continue
            if message is not None:
                stored.append(message)
        return stored

    async def ingest(self, event: InboundEvent, session: Session) -> Message | None:
        """Persist one inbound event. Returns None when the event is skipped."""
        if not event.message or event.from_me:
            return None

        counterparty = resolve_counterparty(event.remote_jid, event.participant)
        text = extract_text(event.message)
        image_data: bytes | None = None

        if has_image(event.message):
            image_data = await self._download_image(event, session)
        elif not text:
            # Non-text, non-image payloads (audio, stickers, reactions...)
            return None

        message = await asyncio.to_thread(
            self.store.insert_message,
            NewMessage(
                direction="incoming",
                phone=counterparty,
                message=text,
                status="unread",
                media_type="image" if image_data is not None else "text",
                media_url=None,
                sender_name=event.push_name,
            ),
        )

        if image_data is not None:
            message = await self._attach_image(message, image_data)

        logger.info(
            "message received",
            extra={
                "extra_fields": safe_log_context(
                    message_id=message.id,
                    from_hash=hash_identifier(counterparty),
                    text_len=len(text),
                    media_type=message.media_type,
                )
            },
        )

        await self._notify(message)
        return message

    async def _download_image(self, event: InboundEvent, session: Session) -> bytes | None:
        try:
            return await session.download_media(event)
        except Exception as e:
            logger.warning(
                "image download failed, storing message as text",
                extra={
                    "extra_fields": safe_log_context(
                        from_hash=hash_identifier(event.remote_jid),
                        error_type=type(e).__name__,
                    )
                },
            )
            return None

    async def _attach_image(self, message: Message, data: bytes) -> Message:
        try:
            filename = await asyncio.to_thread(self.media_store.save, message.id, data)
        except OSError as e:
            logger.error(
                "failed to write image, storing message as text",
                extra={
                    "extra_fields": safe_log_context(
                        message_id=message.id, error_type=type(e).__name__
                    )
                },
            )
            await asyncio.to_thread(self.store.update_message_media, message.id, "text", None)
            return replace(message, media_type="text", media_url=None)

        await asyncio.to_thread(self.store.update_message_media, message.id, "image", filename)
        return replace(message, media_type="image", media_url=filename)

    async def _notify(self, message: Message) -> None:
        webhook = await asyncio.to_thread(self.store.get_webhook, MESSAGE_RECEIVED_EVENT)
        if webhook is None or not webhook.url:
            return
        self.dispatcher.dispatch(webhook.url, build_message_payload(message))
