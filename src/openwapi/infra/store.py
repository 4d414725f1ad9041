"""Storage interface consumed by the core, and its Postgres implementation.

The connection core, the ingestion pipeline and the API handlers only talk
to a Store. PostgresStore runs every call in its own short transaction.
"""

from __future__ import annotations

from typing import Protocol

from openwapi.infra.db import txn
from openwapi.infra.repositories import (
    api_keys_repository,
    messages_repository,
    webhooks_repository,
)
from openwapi.whatsapp.models import Message, NewMessage, WebhookSubscription


class Store(Protocol):
    """Keyed CRUD over messages, the webhook row and the API key row."""

    def insert_message(self, new: NewMessage) -> Message: ...

    def get_message(self, message_id: int) -> Message | None: ...

    def update_message_status(self, message_id: int, status: str) -> bool: ...

    def update_message_media(
        self, message_id: int, media_type: str | None, media_url: str | None
    ) -> bool: ...

    def list_unread_incoming(self) -> list[Message]: ...

    def list_messages(self, *, page: int, limit: int) -> list[Message]: ...

    def count_incoming(self) -> int: ...

    def get_api_key(self) -> str | None: ...

    def ensure_api_key(self) -> str: ...

    def get_webhook(self, event: str) -> WebhookSubscription | None: ...

    def set_webhook(self, url: str, event: str) -> None: ...

    def delete_webhook(self, event: str) -> None: ...


class PostgresStore:
    """Store backed by psycopg2 and the repositories module."""

    def __init__(self, dsn: str | None = None) -> None:
        self._dsn = dsn

    def insert_message(self, new: NewMessage) -> Message:
        with txn(self._dsn) as cur:
            return messages_repository.insert_message(cur, new)

    def get_message(self, message_id: int) -> Message | None:
        with txn(self._dsn) as cur:
            return messages_repository.get_message(cur, message_id)

    def update_message_status(self, message_id: int, status: str) -> bool:
        with txn(self._dsn) as cur:
            return messages_repository.update_status(cur, message_id, status)

    def update_message_media(
        self, message_id: int, media_type: str | None, media_url: str | None
    ) -> bool:
        with txn(self._dsn) as cur:
            return messages_repository.update_media(cur, message_id, media_type, media_url)

    def list_unread_incoming(self) -> list[Message]:
        with txn(self._dsn) as cur:
            return messages_repository.list_unread_incoming(cur)

    def list_messages(self, *, page: int, limit: int) -> list[Message]:
        with txn(self._dsn) as cur:
            return messages_repository.list_messages(
                cur, limit=limit, offset=(page - 1) * limit
            )

    def count_incoming(self) -> int:
        with txn(self._dsn) as cur:
            return messages_repository.count_incoming(cur)

    def get_api_key(self) -> str | None:
        with txn(self._dsn) as cur:
            return api_keys_repository.get_api_key(cur)

    def ensure_api_key(self) -> str:
        with txn(self._dsn) as cur:
            return api_keys_repository.ensure_api_key(cur)

    def get_webhook(self, event: str) -> WebhookSubscription | None:
        with txn(self._dsn) as cur:
            return webhooks_repository.get_active_webhook(cur, event)

    def set_webhook(self, url: str, event: str) -> None:
        with txn(self._dsn) as cur:
            webhooks_repository.set_webhook(cur, url, event)

    def delete_webhook(self, event: str) -> None:
        with txn(self._dsn) as cur:
            webhooks_repository.delete_webhook(cur, event)
