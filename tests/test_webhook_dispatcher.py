"""Tests for fire-and-forget webhook delivery."""

from __future__ import annotations

import asyncio
import logging
import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from openwapi.infra.media_store import MediaStore
from openwapi.whatsapp.ingestion import MessageIngestionPipeline
from openwapi.whatsapp.models import MESSAGE_RECEIVED_EVENT, Message
from openwapi.whatsapp.session import MessagesUpserted
from openwapi.whatsapp.webhook_dispatcher import WebhookDispatcher, build_message_payload

from .helpers import FakeSession, MemoryStore, text_event

HOOK_URL = "https://hooks.example.com/in"


def _message(**overrides) -> Message:
    values = {
        "id": 5,
        "direction": "incoming",
        "phone": "5511988887777@s.whatsapp.net",
        "message": "hi",
        "status": "unread",
        "media_type": "image",
        "media_url": "5.jpg",
    }
    values.update(overrides)
    return Message(**values)


class TestBuildMessagePayload:
    def test_shape(self):
        payload = build_message_payload(_message())

        assert payload["event"] == "message.received"
        body = payload["message"]
        assert body["id"] == 5
        assert body["from"] == "5511988887777@s.whatsapp.net"
        assert body["text"] == "hi"
        assert body["mediaType"] == "image"
        assert body["mediaUrl"] == "5.jpg"
        assert body["timestamp"].endswith("Z")


class TestDeliver:
    @pytest.mark.asyncio
    async def test_success(self):
        dispatcher = WebhookDispatcher(timeout_s=2.0)
        response = MagicMock(ok=True, status_code=200)

        with patch("openwapi.whatsapp.webhook_dispatcher.requests.post", return_value=response) as post:
            assert await dispatcher.deliver(HOOK_URL, {"event": "message.received"}) is True

        post.assert_called_once()
        assert post.call_args[0][0] == HOOK_URL
        assert post.call_args[1]["json"] == {"event": "message.received"}
        assert post.call_args[1]["timeout"] == (2.0, 2.0)
        assert post.call_args[1]["headers"]["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_timeout_logged_not_raised(self, caplog):
        dispatcher = WebhookDispatcher()

        with patch(
            "openwapi.whatsapp.webhook_dispatcher.requests.post",
            side_effect=requests.Timeout("slow"),
        ), caplog.at_level(logging.ERROR, logger="openwapi"):
            assert await dispatcher.deliver(HOOK_URL, {"event": "message.received"}) is False

        assert "webhook delivery timed out" in caplog.text

    @pytest.mark.asyncio
    async def test_whole_call_bounded_by_timeout(self, caplog):
        dispatcher = WebhookDispatcher(timeout_s=0.05)
        release = threading.Event()

        def trickling_post(*args, **kwargs):
            # Each read stays under the per-read timeout but the body never ends
            release.wait(timeout=5)
            return MagicMock(ok=True, status_code=200)

        try:
            with patch(
                "openwapi.whatsapp.webhook_dispatcher.requests.post", side_effect=trickling_post
            ), caplog.at_level(logging.ERROR, logger="openwapi"):
                delivered = await asyncio.wait_for(
                    dispatcher.deliver(HOOK_URL, {"event": "message.received"}), timeout=1.0
                )
        finally:
            release.set()

        assert delivered is False
        assert "webhook delivery timed out" in caplog.text

    @pytest.mark.asyncio
    async def test_connection_error_logged_not_raised(self, caplog):
        dispatcher = WebhookDispatcher()

        with patch(
            "openwapi.whatsapp.webhook_dispatcher.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ), caplog.at_level(logging.ERROR, logger="openwapi"):
            assert await dispatcher.deliver(HOOK_URL, {}) is False

        assert "webhook delivery failed" in caplog.text

    @pytest.mark.asyncio
    async def test_non_success_status(self):
        dispatcher = WebhookDispatcher()
        response = MagicMock(ok=False, status_code=503)

        with patch("openwapi.whatsapp.webhook_dispatcher.requests.post", return_value=response) as post:
            assert await dispatcher.deliver(HOOK_URL, {}) is False

        # No retry
        post.assert_called_once()


class TestDispatchIsDetached:
    @pytest.mark.asyncio
    async def test_dispatch_returns_before_delivery_finishes(self):
        dispatcher = WebhookDispatcher()
        release = threading.Event()

        def hanging_post(*args, **kwargs):
            release.wait(timeout=5)
            return MagicMock(ok=True, status_code=200)

        with patch("openwapi.whatsapp.webhook_dispatcher.requests.post", side_effect=hanging_post):
            task = dispatcher.dispatch(HOOK_URL, {"event": "message.received"})
            await asyncio.sleep(0)
            assert not task.done()
            assert dispatcher.pending == 1

            release.set()
            await dispatcher.drain()

        assert task.result() is True
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_slow_webhook_does_not_hold_back_ingestion(self, tmp_path):
        store = MemoryStore()
        store.set_webhook(HOOK_URL, MESSAGE_RECEIVED_EVENT)
        dispatcher = WebhookDispatcher(timeout_s=5.0)
        pipeline = MessageIngestionPipeline(
            store=store, media_store=MediaStore(tmp_path), dispatcher=dispatcher
        )

        async def emit(event):
            pass

        session = FakeSession(emit)
        release = threading.Event()
        posted = []

        def never_answers(url, **kwargs):
            posted.append(kwargs["json"])
            release.wait(timeout=5)
            raise requests.Timeout("no answer")

        with patch("openwapi.whatsapp.webhook_dispatcher.requests.post", side_effect=never_answers):
            batch = MessagesUpserted(
                messages=(text_event("one", message_id="A"), text_event("two", message_id="B"))
            )
            stored = await asyncio.wait_for(pipeline.ingest_batch(batch, session), timeout=1.0)

            # Both persisted while both deliveries are still in flight
            assert [m.message for m in stored] == ["one", "two"]
            assert store.count_incoming() == 2
            assert dispatcher.pending == 2

            release.set()
            await dispatcher.drain()

        assert [p["message"]["text"] for p in sorted(posted, key=lambda p: p["message"]["id"])] == [
            "one",
            "two",
        ]
