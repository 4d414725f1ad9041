"""Health, pairing, status and logout endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from openwapi.api.auth import ApiKeyDep, BasicAuthDep
from openwapi.api.deps import get_connection, get_store
from openwapi.errors import ValidationError
from openwapi.infra.store import Store
from openwapi.observability.logging import get_logger
from openwapi.whatsapp.connection import ConnectionManager

router = APIRouter(tags=["system"])

logger = get_logger(__name__)

API_VERSION = "1.0.0"


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"success": True, "message": "WhatsApp API is running", "version": API_VERSION}


@router.get("/qr")
def get_qr(connection: ConnectionManager = Depends(get_connection)) -> dict:
    """Current pairing challenge as a PNG data URL.

    Unauthenticated: the image is only useful to whoever can scan it from
    the dashboard, and only while no account is paired.
    """
    state = connection.state
    if state.connected:
        raise ValidationError("Already connected to WhatsApp")
    if state.pairing_payload is None:
        raise ValidationError("QR code not available. Please restart the server.")

    return {
        "success": True,
        "data": {"qr": state.pairing_payload, "message": "Scan this QR code with WhatsApp"},
    }


def _connection_summary(connection: ConnectionManager, store: Store) -> dict:
    state = connection.state
    return {
        "connected": state.connected,
        "phone": state.identity,
        "messageCount": store.count_incoming(),
    }


@router.get("/config", dependencies=[BasicAuthDep])
def get_config(
    connection: ConnectionManager = Depends(get_connection),
    store: Store = Depends(get_store),
) -> dict:
    """Dashboard bootstrap: API key plus connection summary."""
    return {
        "success": True,
        "data": {"apiKey": store.ensure_api_key(), **_connection_summary(connection, store)},
    }


@router.get("/status", dependencies=[ApiKeyDep])
def get_status(
    connection: ConnectionManager = Depends(get_connection),
    store: Store = Depends(get_store),
) -> dict:
    return {"success": True, "data": _connection_summary(connection, store)}


@router.post("/logout", dependencies=[ApiKeyDep])
async def logout(connection: ConnectionManager = Depends(get_connection)) -> dict:
    await connection.logout()
    return {
        "success": True,
        "message": "Logged out successfully. Reconnecting to generate new QR code...",
    }
