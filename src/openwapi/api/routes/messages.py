"""Inbox, reply and status endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel

from openwapi.api.auth import ApiKeyDep, BasicAuthDep
from openwapi.api.deps import get_connection, get_store
from openwapi.errors import (
    ApiError,
    ExternalOperationError,
    NotConnectedError,
    NotFoundError,
    ValidationError,
)
from openwapi.infra.store import Store
from openwapi.observability.logging import get_logger
from openwapi.observability.redaction import hash_identifier, safe_log_context
from openwapi.whatsapp.connection import ConnectionManager
from openwapi.whatsapp.models import MESSAGE_STATUSES, Message, NewMessage
from openwapi.whatsapp.outbound import PreparedReply, prepare_reply

router = APIRouter(tags=["messages"])

logger = get_logger(__name__)

MAX_PAGE_SIZE = 200


class ReplyRequest(BaseModel):
    message: str | None = None
    image: str | None = None


class StatusRequest(BaseModel):
    status: str | None = None


def _serialize(message: Message) -> dict:
    return {
        "id": message.id,
        "type": message.direction,
        "phone": message.phone,
        "message": message.message,
        "status": message.status,
        "media_type": message.media_type,
        "media_url": message.media_url,
        "timestamp": message.created_at,
    }


def _parse_message_id(raw: str) -> int:
    # Ids are serial integers; anything else cannot name a stored message
    if not raw.isdigit():
        raise NotFoundError("Message not found")
    return int(raw)


def _load_message(store: Store, raw_id: str) -> Message:
    message = store.get_message(_parse_message_id(raw_id))
    if message is None:
        raise NotFoundError("Message not found")
    return message


def _record_reply(
    store: Store, original: Message, body: ReplyRequest, prepared: PreparedReply
) -> Message:
    sent = store.insert_message(
        NewMessage(
            direction="outgoing",
            phone=original.phone,
            message=body.message or "",
            status="sent",
            media_type=prepared.media_type,
            media_url=prepared.media_url,
        )
    )
    store.update_message_status(original.id, "replied")
    return sent


@router.get("/inbox", dependencies=[ApiKeyDep])
def get_inbox(store: Store = Depends(get_store)) -> dict:
    """All unread incoming messages, newest first."""
    try:
        messages = store.list_unread_incoming()
    except Exception:
        logger.exception("failed to list inbox")
        raise ApiError("Failed to retrieve messages")
    return {"success": True, "data": [_serialize(m) for m in messages]}


@router.get("/messages", dependencies=[BasicAuthDep])
def list_messages(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    store: Store = Depends(get_store),
) -> dict:
    """Full message history for the dashboard, newest first."""
    try:
        messages = store.list_messages(page=page, limit=limit)
    except Exception:
        logger.exception("failed to list messages")
        raise ApiError("Failed to retrieve messages")
    return {
        "success": True,
        "data": [_serialize(m) for m in messages],
        "page": page,
        "limit": limit,
    }


@router.post("/messages/{message_id}/reply", dependencies=[ApiKeyDep])
async def reply_to_message(
    message_id: str = Path(...),
    body: ReplyRequest | None = None,
    connection: ConnectionManager = Depends(get_connection),
    store: Store = Depends(get_store),
) -> dict:
    """Reply to an inbound message with text, an image, or both.

    The connection is checked before the body so a disconnected caller
    always learns that first. Store calls run in worker threads, since this
    handler shares the event loop with the WhatsApp session.
    """
    if not connection.state.connected:
        raise NotConnectedError("WhatsApp not connected")

    body = body or ReplyRequest()
    prepared = prepare_reply(body.message, body.image)
    original = await asyncio.to_thread(_load_message, store, message_id)

    await connection.send(original.phone, prepared.content)

    try:
        sent = await asyncio.to_thread(_record_reply, store, original, body, prepared)
    except Exception:
        logger.exception(
            "failed to record reply",
            extra={"extra_fields": safe_log_context(message_id=original.id)},
        )
        raise ExternalOperationError("Failed to send reply")

    logger.info(
        "reply sent",
        extra={
            "extra_fields": safe_log_context(
                message_id=original.id,
                reply_id=sent.id,
                to_hash=hash_identifier(original.phone),
                media_type=prepared.media_type,
            )
        },
    )
    return {"success": True, "message": "Reply sent successfully"}


@router.patch("/messages/{message_id}/status", dependencies=[ApiKeyDep])
def update_message_status(
    message_id: str = Path(...),
    body: StatusRequest | None = None,
    store: Store = Depends(get_store),
) -> dict:
    status = body.status if body is not None else None
    if not status:
        raise ValidationError("Status is required")
    if status not in MESSAGE_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(MESSAGE_STATUSES)}"
        )

    if not store.update_message_status(_parse_message_id(message_id), status):
        raise NotFoundError("Message not found")
    return {"success": True, "message": "Status updated successfully"}
