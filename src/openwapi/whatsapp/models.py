"""WhatsApp message models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Direction = Literal["incoming", "outgoing"]
MessageStatus = Literal["unread", "replied", "ignored", "sent"]
MediaKind = Literal["text", "image"]

MESSAGE_STATUSES: tuple[str, ...] = ("unread", "replied", "ignored", "sent")

# Only one subscribable event kind exists
MESSAGE_RECEIVED_EVENT = "message.received"


@dataclass(frozen=True)
class Message:
    """Persisted message row.

    `phone` is the counterparty protocol address (a JID). `media_url` is the
    local media filename for downloaded images, the source URL for images
    sent by URL, or the marker "base64" for inline images.
    """

    id: int
    direction: Direction
    phone: str
    message: str
    status: MessageStatus
    media_type: MediaKind | None = None
    media_url: str | None = None
    sender_name: str | None = None
    created_at: str = ""


@dataclass(frozen=True)
class NewMessage:
    """Message fields supplied by the caller before the store assigns an id."""

    direction: Direction
    phone: str
    message: str
    status: MessageStatus
    media_type: MediaKind | None = None
    media_url: str | None = None
    sender_name: str | None = None


@dataclass(frozen=True)
class WebhookSubscription:
    id: int
    url: str
    event: str
    active: bool = True
    created_at: str = ""


@dataclass(frozen=True)
class InboundEvent:
    """One raw inbound protocol message, as delivered by the session.

    `message` is the protocol payload as a dict keyed by payload type
    ("conversation", "extendedTextMessage", "imageMessage", ...), or None
    when the event carries no body (receipts, protocol stubs).
    `raw` is the transport-native object, handed back to the session for
    media retrieval.
    """

    remote_jid: str
    from_me: bool = False
    participant: str | None = None
    push_name: str | None = None
    message: dict[str, Any] | None = None
    message_id: str | None = None
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class OutboundContent:
    """Reply payload handed to Session.send_message.

    Exactly one of `text` (text-only) or an image source is meaningful:
    image_url for http(s) images, image_bytes for inline base64 images.
    """

    text: str = ""
    image_url: str | None = None
    image_bytes: bytes | None = field(default=None, repr=False)

    @property
    def has_image(self) -> bool:
        return self.image_url is not None or self.image_bytes is not None
