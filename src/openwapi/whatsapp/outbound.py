"""Outbound replies: build the protocol payload and the stored record.

Reply input is free text, an image (http(s) URL or base64 blob), or both.
Only replies to an existing message are supported.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from openwapi.errors import ValidationError
from openwapi.whatsapp.models import MediaKind, OutboundContent

BASE64_MEDIA_MARKER = "base64"


@dataclass(frozen=True)
class PreparedReply:
    content: OutboundContent
    media_type: MediaKind
    media_url: str | None


def is_remote_image(image: str) -> bool:
    return image.startswith("http://") or image.startswith("https://")


def prepare_reply(text: str | None, image: str | None) -> PreparedReply:
    """Turn reply request fields into protocol content plus record metadata.

    Raises:
        ValidationError: Neither text nor image, or undecodable base64.
    """
    if not text and not image:
        raise ValidationError("Message or image is required")

    if not image:
        return PreparedReply(
            content=OutboundContent(text=text or ""),
            media_type="text",
            media_url=None,
        )

    if is_remote_image(image):
        return PreparedReply(
            content=OutboundContent(text=text or "", image_url=image),
            media_type="image",
            media_url=image,
        )

    blob = image.split(",", 1)[1] if image.startswith("data:") else image
    try:
        data = base64.b64decode("".join(blob.split()), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid image data")
    if not data:
        raise ValidationError("Invalid image data")

    return PreparedReply(
        content=OutboundContent(text=text or "", image_bytes=data),
        media_type="image",
        media_url=BASE64_MEDIA_MARKER,
    )
