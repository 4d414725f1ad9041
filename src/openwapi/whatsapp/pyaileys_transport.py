"""Session adapter over the pyaileys WhatsApp Web client.

pyaileys is imported lazily inside open_pyaileys_session so the rest of the
package (and its tests) never needs the client installed.

Client events consumed (Baileys-compatible names):
- "connection.update": {"qr": str} | {"connection": "open" | "close",
  "lastDisconnect": {"error": ..., "statusCode": int}}
- "messages.upsert": {"messages": [...], "type": "notify" | "append"}
- "creds.update": persisted straight back to the auth folder
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import requests

from openwapi.errors import MediaDownloadError
from openwapi.observability.logging import get_logger
from openwapi.observability.redaction import safe_log_context
from openwapi.whatsapp.models import InboundEvent, OutboundContent
from openwapi.whatsapp.session import (
    EmitFn,
    MessagesUpserted,
    PairingChallenge,
    SessionClosed,
    SessionOpened,
)

logger = get_logger(__name__)

# DisconnectReason.loggedOut
LOGGED_OUT_STATUS = 401

IMAGE_FETCH_TIMEOUT_S = 30


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _message_to_dict(message: Any) -> dict[str, Any] | None:
    if message is None:
        return None
    if isinstance(message, dict):
        return message or None
    from google.protobuf.json_format import MessageToDict

    return MessageToDict(message, preserving_proto_field_name=True) or None


def to_inbound_event(raw: Any) -> InboundEvent:
    """Map a client message (proto WebMessageInfo or dict) to an InboundEvent."""
    key = _get(raw, "key") or {}
    return InboundEvent(
        remote_jid=_get(key, "remoteJid", "") or "",
        from_me=bool(_get(key, "fromMe", False)),
        participant=_get(key, "participant") or None,
        push_name=_get(raw, "pushName") or None,
        message=_message_to_dict(_get(raw, "message")),
        message_id=_get(key, "id") or None,
        raw=raw,
    )


def disconnect_status(last_disconnect: Any) -> int | None:
    if not last_disconnect:
        return None
    status = _get(last_disconnect, "statusCode")
    if status is None:
        error = _get(last_disconnect, "error")
        output = _get(error, "output") if error is not None else None
        status = _get(output, "statusCode") if output is not None else None
    return int(status) if status is not None else None


def _fetch_image(url: str) -> bytes:
    response = requests.get(url, timeout=IMAGE_FETCH_TIMEOUT_S)
    response.raise_for_status()
    return response.content


class PyaileysSession:
    def __init__(self, client: Any, emit: EmitFn) -> None:
        self._client = client
        self._emit = emit

    @property
    def user_id(self) -> str | None:
        me = self._client.socket.auth.creds.me
        return me.id if me else None

    async def send_message(self, jid: str, content: OutboundContent) -> None:
        if content.image_url is not None:
            data = await asyncio.to_thread(_fetch_image, content.image_url)
            await self._client.send_image(jid, data, caption=content.text or None)
        elif content.image_bytes is not None:
            await self._client.send_image(jid, content.image_bytes, caption=content.text or None)
        else:
            await self._client.send_text(jid, content.text)

    async def download_media(self, event: InboundEvent) -> bytes:
        try:
            return await self._client.download_message_media(event.raw)
        except Exception as e:
            raise MediaDownloadError(str(e)) from e

    async def logout(self) -> None:
        # The client has no companion-unlink call; the caller purges the
        # auth folder, which invalidates this device on the next connect.
        await self._client.disconnect()

    async def close(self) -> None:
        await self._client.disconnect()

    async def on_connection_update(self, update: dict[str, Any]) -> None:
        qr = update.get("qr")
        if qr:
            await self._emit(PairingChallenge(code=qr))

        connection = update.get("connection")
        if connection == "open":
            await self._emit(SessionOpened())
        elif connection == "close":
            status = disconnect_status(update.get("lastDisconnect"))
            await self._emit(
                SessionClosed(
                    logged_out=status == LOGGED_OUT_STATUS,
                    reason=str(status) if status is not None else None,
                )
            )

    async def on_messages_upsert(self, payload: dict[str, Any]) -> None:
        messages = tuple(to_inbound_event(m) for m in payload.get("messages") or ())
        await self._emit(MessagesUpserted(messages=messages, kind=payload.get("type", "notify")))


async def open_pyaileys_session(session_path: Path, emit: EmitFn) -> PyaileysSession:
    """SessionFactory: load the multi-file auth folder and connect."""
    from pyaileys.client import WhatsAppClient

    session_path.mkdir(parents=True, exist_ok=True)
    client, auth_state = await WhatsAppClient.from_auth_folder(str(session_path))
    session = PyaileysSession(client, emit)

    async def save_creds(_: Any) -> None:
        await auth_state.save_creds()

    client.on("connection.update", session.on_connection_update)
    client.on("messages.upsert", session.on_messages_upsert)
    client.on("creds.update", save_creds)

    logger.info(
        "connecting WhatsApp client",
        extra={"extra_fields": safe_log_context(has_creds=client.socket.auth.creds.me is not None)},
    )
    await client.connect()
    return session
