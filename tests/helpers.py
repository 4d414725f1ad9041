"""Shared test helpers for OpenWAPI tests.

This module contains helpers that can be imported by both conftest.py and
individual test files. These are NOT fixtures - they are regular classes
and functions.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import replace
from pathlib import Path

from openwapi.config import Settings
from openwapi.errors import MediaDownloadError
from openwapi.infra.repositories.api_keys_repository import generate_api_key
from openwapi.infra.time import record_timestamp
from openwapi.whatsapp.models import (
    InboundEvent,
    Message,
    NewMessage,
    OutboundContent,
    WebhookSubscription,
)

ACCOUNT_JID = "5511999999999:12@s.whatsapp.net"
CUSTOMER_JID = "5511988887777@s.whatsapp.net"


class MemoryStore:
    """In-memory Store with the same ordering rules as PostgresStore."""

    def __init__(self) -> None:
        self.messages: dict[int, Message] = {}
        self.api_key: str | None = None
        self.webhooks: dict[str, WebhookSubscription] = {}
        self._next_id = 1

    def insert_message(self, new: NewMessage) -> Message:
        message = Message(
            id=self._next_id,
            direction=new.direction,
            phone=new.phone,
            message=new.message,
            status=new.status,
            media_type=new.media_type,
            media_url=new.media_url,
            sender_name=new.sender_name,
            created_at=record_timestamp(),
        )
        self.messages[message.id] = message
        self._next_id += 1
        return message

    def get_message(self, message_id: int) -> Message | None:
        return self.messages.get(message_id)

    def update_message_status(self, message_id: int, status: str) -> bool:
        if message_id not in self.messages:
            return False
        self.messages[message_id] = replace(self.messages[message_id], status=status)
        return True

    def update_message_media(self, message_id, media_type, media_url) -> bool:
        if message_id not in self.messages:
            return False
        self.messages[message_id] = replace(
            self.messages[message_id], media_type=media_type, media_url=media_url
        )
        return True

    def _newest_first(self) -> list[Message]:
        return sorted(self.messages.values(), key=lambda m: m.id, reverse=True)

    def list_unread_incoming(self) -> list[Message]:
        return [
            m
            for m in self._newest_first()
            if m.direction == "incoming" and m.status == "unread"
        ]

    def list_messages(self, *, page: int, limit: int) -> list[Message]:
        offset = (page - 1) * limit
        return self._newest_first()[offset:offset + limit]

    def count_incoming(self) -> int:
        return sum(1 for m in self.messages.values() if m.direction == "incoming")

    def get_api_key(self) -> str | None:
        return self.api_key

    def ensure_api_key(self) -> str:
        if self.api_key is None:
            self.api_key = generate_api_key()
        return self.api_key

    def get_webhook(self, event: str) -> WebhookSubscription | None:
        return self.webhooks.get(event)

    def set_webhook(self, url: str, event: str) -> None:
        self.webhooks[event] = WebhookSubscription(
            id=len(self.webhooks) + 1, url=url, event=event, created_at=record_timestamp()
        )

    def delete_webhook(self, event: str) -> None:
        self.webhooks.pop(event, None)


class LoopCheckingStore(MemoryStore):
    """MemoryStore that records every call made on an event-loop thread."""

    def __init__(self) -> None:
        super().__init__()
        self.calls_on_loop: list[str] = []

    def _check(self, name: str) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.calls_on_loop.append(name)

    def insert_message(self, new: NewMessage) -> Message:
        self._check("insert_message")
        return super().insert_message(new)

    def get_message(self, message_id: int) -> Message | None:
        self._check("get_message")
        return super().get_message(message_id)

    def update_message_status(self, message_id: int, status: str) -> bool:
        self._check("update_message_status")
        return super().update_message_status(message_id, status)

    def update_message_media(self, message_id, media_type, media_url) -> bool:
        self._check("update_message_media")
        return super().update_message_media(message_id, media_type, media_url)

    def get_webhook(self, event: str) -> WebhookSubscription | None:
        self._check("get_webhook")
        return super().get_webhook(event)


class FakeSession:
    """Session double recording every capability call."""

    def __init__(self, emit, *, user_id: str | None = ACCOUNT_JID) -> None:
        self.emit = emit
        self.user_id = user_id
        self.sent: list[tuple[str, OutboundContent]] = []
        self.media: dict[str, bytes] = {}
        self.send_error: Exception | None = None
        self.logout_error: Exception | None = None
        self.logout_calls = 0
        self.close_calls = 0

    async def send_message(self, jid: str, content: OutboundContent) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((jid, content))

    async def download_media(self, event: InboundEvent) -> bytes:
        data = self.media.get(event.message_id or "")
        if data is None:
            raise MediaDownloadError("media expired")
        return data

    async def logout(self) -> None:
        self.logout_calls += 1
        if self.logout_error is not None:
            raise self.logout_error

    async def close(self) -> None:
        self.close_calls += 1


class FakeSessionFactory:
    """SessionFactory handing out FakeSessions; keeps every one it opened.

    Errors queued in connect_errors are raised by the next calls, one each.
    """

    def __init__(self, *, user_id: str | None = ACCOUNT_JID) -> None:
        self.user_id = user_id
        self.sessions: list[FakeSession] = []
        self.paths: list[Path] = []
        self.connect_errors: list[Exception] = []
        self.calls = 0

    async def __call__(self, session_path: Path, emit) -> FakeSession:
        self.calls += 1
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        session = FakeSession(emit, user_id=self.user_id)
        self.paths.append(session_path)
        self.sessions.append(session)
        return session

    @property
    def latest(self) -> FakeSession:
        return self.sessions[-1]


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "dashboard_user": "admin",
        "dashboard_password": "s3cret",
        "session_path": tmp_path / "session",
        "media_path": tmp_path / "media",
    }
    values.update(overrides)
    return Settings(**values)


def basic_auth_header(username: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def text_event(
    text: str,
    *,
    jid: str = CUSTOMER_JID,
    message_id: str = "MSG1",
    push_name: str | None = "Maria",
    **kwargs,
) -> InboundEvent:
    return InboundEvent(
        remote_jid=jid,
        message={"conversation": text},
        message_id=message_id,
        push_name=push_name,
        **kwargs,
    )


def image_event(
    caption: str = "",
    *,
    jid: str = CUSTOMER_JID,
    message_id: str = "IMG1",
) -> InboundEvent:
    image = {"mimetype": "image/jpeg"}
    if caption:
        image["caption"] = caption
    return InboundEvent(remote_jid=jid, message={"imageMessage": image}, message_id=message_id)


def seed_incoming(store: MemoryStore, text: str = "hello", *, phone: str = CUSTOMER_JID) -> Message:
    return store.insert_message(
        NewMessage(
            direction="incoming",
            phone=phone,
            message=text,
            status="unread",
            media_type="text",
        )
    )
