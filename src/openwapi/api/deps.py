"""Request-scoped accessors for the services built by create_app.

Services live on app.state so tests can build an app around an in-memory
Store and a fake session factory.
"""

from __future__ import annotations

from fastapi import Request

from openwapi.config import Settings
from openwapi.infra.media_store import MediaStore
from openwapi.infra.store import Store
from openwapi.whatsapp.connection import ConnectionManager


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_connection(request: Request) -> ConnectionManager:
    return request.app.state.connection


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store
