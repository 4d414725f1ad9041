"""Webhook subscription endpoints (one active URL for message.received)."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import AnyHttpUrl, BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from openwapi.api.auth import BasicAuthDep
from openwapi.api.deps import get_store
from openwapi.errors import ValidationError
from openwapi.infra.store import Store
from openwapi.observability.logging import get_logger
from openwapi.observability.redaction import safe_log_context
from openwapi.whatsapp.models import MESSAGE_RECEIVED_EVENT, WebhookSubscription

router = APIRouter(prefix="/webhook", tags=["webhooks"], dependencies=[BasicAuthDep])

logger = get_logger(__name__)

_http_url = TypeAdapter(AnyHttpUrl)


class WebhookRequest(BaseModel):
    url: str | None = None


def validate_webhook_url(url: str | None) -> str:
    """Return the URL unchanged if it is an absolute http(s) URL."""
    if not url:
        raise ValidationError("Webhook URL is required")
    try:
        _http_url.validate_python(url)
    except PydanticValidationError:
        raise ValidationError("Invalid URL format")
    return url


def _serialize(webhook: WebhookSubscription) -> dict:
    return {
        "id": webhook.id,
        "url": webhook.url,
        "event": webhook.event,
        "active": webhook.active,
        "created_at": webhook.created_at,
    }


@router.get("")
def get_webhook(store: Store = Depends(get_store)) -> dict:
    webhook = store.get_webhook(MESSAGE_RECEIVED_EVENT)
    return {"success": True, "data": _serialize(webhook) if webhook else None}


@router.post("")
def set_webhook(body: WebhookRequest | None = None, store: Store = Depends(get_store)) -> dict:
    """Replace the active subscription with a new URL."""
    url = validate_webhook_url(body.url if body is not None else None)
    store.set_webhook(url, MESSAGE_RECEIVED_EVENT)
    logger.info(
        "webhook configured",
        extra={"extra_fields": safe_log_context(url=url, event=MESSAGE_RECEIVED_EVENT)},
    )
    return {"success": True, "message": "Webhook configured successfully"}


@router.delete("")
def delete_webhook(store: Store = Depends(get_store)) -> dict:
    store.delete_webhook(MESSAGE_RECEIVED_EVENT)
    logger.info("webhook deleted")
    return {"success": True, "message": "Webhook deleted successfully"}
