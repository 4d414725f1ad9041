"""FastAPI application factory."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from openwapi.config import API_BASE_PATH, MEDIA_ROUTE, Settings, load_settings
from openwapi.errors import ApiError
from openwapi.infra.media_store import MediaStore
from openwapi.infra.store import PostgresStore, Store
from openwapi.observability.logging import (
    CORRELATION_ID_HEADER,
    correlation_scope,
    get_logger,
)
from openwapi.observability.redaction import hash_identifier, safe_log_context
from openwapi.whatsapp.connection import ConnectionManager
from openwapi.whatsapp.ingestion import MessageIngestionPipeline
from openwapi.whatsapp.session import SessionFactory
from openwapi.whatsapp.webhook_dispatcher import WebhookDispatcher

from .routes import messages, system, webhooks

logger = get_logger(__name__)


def _default_session_factory() -> SessionFactory:
    from openwapi.whatsapp.pyaileys_transport import open_pyaileys_session

    return open_pyaileys_session


def create_app(
    settings: Settings | None = None,
    *,
    store: Store | None = None,
    session_factory: SessionFactory | None = None,
) -> FastAPI:
    """Create the FastAPI app and wire its services.

    Args:
        settings: Explicit settings. If None, reads them from the environment.
        store: Persistence collaborator. Defaults to PostgresStore on
            settings.database_url.
        session_factory: Opens protocol sessions. Defaults to the pyaileys
            client adapter.

    Returns:
        Configured FastAPI application. The WhatsApp session is opened by
        the lifespan handler, not here.
    """
    if settings is None:
        settings = load_settings()
    if store is None:
        store = PostgresStore(settings.database_url)
    if session_factory is None:
        session_factory = _default_session_factory()

    media_store = MediaStore(settings.media_path)
    dispatcher = WebhookDispatcher(timeout_s=settings.webhook_timeout_s)
    pipeline = MessageIngestionPipeline(
        store=store, media_store=media_store, dispatcher=dispatcher
    )
    connection = ConnectionManager(
        session_factory=session_factory,
        session_path=settings.session_path,
        pipeline=pipeline,
        reconnect_delay_s=settings.reconnect_delay_s,
        logged_out_reconnect_delay_s=settings.logged_out_reconnect_delay_s,
        logout_reconnect_delay_s=settings.logout_reconnect_delay_s,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # StaticFiles refuses to serve from a missing directory
        media_store.root.mkdir(parents=True, exist_ok=True)
        existing_key = await asyncio.to_thread(store.get_api_key)
        api_key = await asyncio.to_thread(store.ensure_api_key)
        logger.info(
            "server starting",
            extra={
                "extra_fields": safe_log_context(
                    api_base_path=API_BASE_PATH,
                    dashboard_user_configured=bool(settings.dashboard_user),
                )
            },
        )
        if existing_key is None:
            # Shown once, when first generated, so the operator can configure
            # API clients. Later it is only available through /config.
            logger.info(f"API key generated: {api_key}")
        else:
            logger.info(
                "API key loaded",
                extra={"extra_fields": safe_log_context(key_hash=hash_identifier(api_key))},
            )
        await connection.start()
        try:
            yield
        finally:
            await connection.stop()
            await dispatcher.drain()
            logger.info("server stopped")

    app = FastAPI(
        title="OpenWAPI",
        version=system.API_VERSION,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.media_store = media_store
    app.state.dispatcher = dispatcher
    app.state.connection = connection

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
            headers=exc.headers or None,
        )

    app.include_router(system.router, prefix=API_BASE_PATH)
    app.include_router(messages.router, prefix=API_BASE_PATH)
    app.include_router(webhooks.router, prefix=API_BASE_PATH)

    app.mount(
        MEDIA_ROUTE,
        StaticFiles(directory=str(settings.media_path), check_dir=False),
        name="media",
    )

    return app
