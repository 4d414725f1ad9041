"""Connection lifecycle of the single WhatsApp Web session.

States: disconnected -> awaiting_pairing -> connected, and back to
disconnected from either. The manager owns the only live Session. Protocol
events and API commands both go through it:

- Sessions emit typed events. Each event is tagged with the generation of
  the session that produced it and queued. A dedicated driver task applies
  the transition table. Events from a superseded session are dropped.
- Inbound message batches go to a separate ingestion task, so a slow media
  download never holds back a state transition.
- State is an immutable ConnectionState snapshot, replaced under an
  asyncio.Lock. Readers take the current snapshot without locking.
- Reconnects are scheduled on a ReconnectScheduler that keeps at most one
  pending reconnect; scheduling again cancels the older one.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Literal

from openwapi.errors import ExternalOperationError, NotConnectedError
from openwapi.observability.logging import get_logger
from openwapi.observability.redaction import hash_identifier, safe_log_context
from openwapi.whatsapp.ingestion import MessageIngestionPipeline
from openwapi.whatsapp.models import OutboundContent
from openwapi.whatsapp.pairing import render_qr_data_url
from openwapi.whatsapp.session import (
    MessagesUpserted,
    PairingChallenge,
    Session,
    SessionClosed,
    SessionEvent,
    SessionFactory,
    SessionOpened,
)

logger = get_logger(__name__)

ConnectionStatus = Literal["disconnected", "awaiting_pairing", "connected"]


@dataclass(frozen=True)
class ConnectionState:
    """Externally observable connection state.

    Invariants: identity is set iff status == "connected"; pairing_payload
    is set only while status == "awaiting_pairing".
    """

    status: ConnectionStatus = "disconnected"
    pairing_payload: str | None = None
    identity: str | None = None

    @property
    def connected(self) -> bool:
        return self.status == "connected"

    def as_status(self) -> dict:
        return {
            "connected": self.connected,
            "phone": self.identity,
            "hasQrCode": self.pairing_payload is not None,
        }


DISCONNECTED = ConnectionState()


def identity_from_user_id(user_id: str | None) -> str | None:
    """"5511999999999:12@s.whatsapp.net" -> "5511999999999"."""
    if not user_id:
        return None
    return user_id.split(":", 1)[0].split("@", 1)[0] or None


class ReconnectScheduler:
    """Holds at most one pending, cancelable reconnect.

    Delays are timer-based (asyncio.sleep in a task), never blocking. A
    reconnect that raises counts as a transient close: when retry_delay_s
    is set, another attempt is scheduled after that delay.
    """

    def __init__(self, reconnect, *, retry_delay_s: float | None = None) -> None:
        self._reconnect = reconnect
        self.retry_delay_s = retry_delay_s
        self._task: asyncio.Task[None] | None = None
        self.delay_s: float | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay_s: float, *, reason: str) -> None:
        self.cancel()
        self.delay_s = delay_s
        logger.info(
            "reconnect scheduled",
            extra={"extra_fields": safe_log_context(delay_s=delay_s, reason=reason)},
        )
        self._task = asyncio.get_running_loop().create_task(self._fire(delay_s))

    def cancel(self) -> None:
        if self.pending:
            self._task.cancel()  # type: ignore[union-attr]
        self._task = None
        self.delay_s = None

    async def _fire(self, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        # Drop our own handle first so reconnect() may schedule again
        self._task = None
        self.delay_s = None
        try:
            await self._reconnect()
        except Exception:
            logger.exception("scheduled reconnect failed")
            if self.retry_delay_s is not None:
                self.schedule(self.retry_delay_s, reason="reconnect_failed")


class ConnectionManager:
    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        session_path: Path,
        pipeline: MessageIngestionPipeline,
        reconnect_delay_s: float = 5.0,
        logged_out_reconnect_delay_s: float = 2.0,
        logout_reconnect_delay_s: float = 3.0,
    ) -> None:
        self._factory = session_factory
        self.session_path = Path(session_path)
        self._pipeline = pipeline
        self.reconnect_delay_s = reconnect_delay_s
        self.logged_out_reconnect_delay_s = logged_out_reconnect_delay_s
        self.logout_reconnect_delay_s = logout_reconnect_delay_s

        self._state = DISCONNECTED
        self._session: Session | None = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._events: asyncio.Queue[tuple[int, SessionEvent]] = asyncio.Queue()
        self._inbound: asyncio.Queue[tuple[Session, MessagesUpserted]] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self.scheduler = ReconnectScheduler(self.reconnect, retry_delay_s=reconnect_delay_s)

    # -- observable state --------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start the driver tasks and open the first session.

        A first connect that fails is retried on the reconnect schedule
        instead of failing startup.
        """
        if not self._workers:
            loop = asyncio.get_running_loop()
            self._workers = [
                loop.create_task(self._drive_events()),
                loop.create_task(self._drive_ingestion()),
            ]
        try:
            await self.reconnect()
        except Exception:
            logger.exception("initial connect failed")
            self.scheduler.schedule(self.reconnect_delay_s, reason="connect_failed")

    async def stop(self) -> None:
        """Cancel pending reconnects, close the session and stop the drivers."""
        self.scheduler.cancel()
        async with self._lock:
            session, self._session = self._session, None
            self._generation += 1
            self._state = DISCONNECTED
        if session is not None:
            await self._close_quietly(session)
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def reconnect(self) -> None:
        """Replace any current session with a freshly established one.

        Safe to call repeatedly. The factory reloads credentials from
        session_path on every call, so a purge done by logout is observed.
        The lock is held while connecting: events from the new session wait
        in the queue until its handle is installed.
        """
        async with self._lock:
            stale, self._session = self._session, None
            self._generation += 1
            generation = self._generation
            self._state = DISCONNECTED

            if stale is not None:
                await self._close_quietly(stale)

            logger.info(
                "establishing session",
                extra={"extra_fields": safe_log_context(generation=generation)},
            )
            self._session = await self._factory(
                self.session_path, partial(self._emit, generation)
            )

    async def settle(self) -> None:
        """Wait until every queued event and inbound batch is processed."""
        await self._events.join()
        await self._inbound.join()

    # -- capabilities --------------------------------------------------------

    async def send(self, jid: str, content: OutboundContent) -> None:
        """Send through the live session.

        Raises:
            NotConnectedError: No paired session.
            ExternalOperationError: The transport rejected the send.
        """
        session = self._session
        if not self._state.connected or session is None:
            raise NotConnectedError("WhatsApp not connected")
        try:
            await session.send_message(jid, content)
        except Exception as e:
            logger.error(
                "send failed",
                extra={
                    "extra_fields": safe_log_context(
                        to_hash=hash_identifier(jid), error_type=type(e).__name__
                    )
                },
            )
            raise ExternalOperationError("Failed to send reply") from e

    async def logout(self) -> None:
        """Terminate the paired session and start over with a fresh pairing.

        Only valid while connected. Purges the stored credentials so a stale
        session cannot be resumed, then schedules a reconnect that will
        produce a new pairing challenge.

        Raises:
            NotConnectedError: Not connected.
            ExternalOperationError: The terminate call failed; local state
                is left untouched so the caller can retry.
        """
        session = self._session
        if not self._state.connected or session is None:
            raise NotConnectedError("Not connected")

        try:
            await session.logout()
        except Exception as e:
            logger.exception(
                "logout failed",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )
            raise ExternalOperationError("Logout failed") from e

        async with self._lock:
            if self._session is session:
                self._session = None
                self._generation += 1
            self._state = DISCONNECTED

        await self._close_quietly(session)
        self.purge_credentials()
        self.scheduler.schedule(self.logout_reconnect_delay_s, reason="api_logout")
        logger.info("logged out")

    def purge_credentials(self) -> None:
        if self.session_path.exists():
            shutil.rmtree(self.session_path, ignore_errors=True)
            logger.info("session credentials deleted")

    # -- event handling -------------------------------------------------------

    async def _emit(self, generation: int, event: SessionEvent) -> None:
        await self._events.put((generation, event))

    async def _drive_events(self) -> None:
        while True:
            generation, event = await self._events.get()
            try:
                await self.handle_event(generation, event)
            except Exception:
                logger.exception(
                    "session event handling failed",
                    extra={"extra_fields": safe_log_context(event=type(event).__name__)},
                )
            finally:
                self._events.task_done()

    async def _drive_ingestion(self) -> None:
        while True:
            session, batch = await self._inbound.get()
            try:
                await self._pipeline.ingest_batch(batch, session)
            except Exception:
                logger.exception("inbound batch failed")
            finally:
                self._inbound.task_done()

    async def handle_event(self, generation: int, event: SessionEvent) -> None:
        """Apply one session event to the state machine."""
        async with self._lock:
            current = generation == self._generation
            session = self._session
        if not current or session is None:
            logger.debug(
                "dropping event from superseded session",
                extra={"extra_fields": safe_log_context(event=type(event).__name__)},
            )
            return

        if isinstance(event, PairingChallenge):
            await self._on_pairing(generation, event)
        elif isinstance(event, SessionOpened):
            await self._on_open(generation, session)
        elif isinstance(event, SessionClosed):
            await self._on_close(generation, event)
        elif isinstance(event, MessagesUpserted):
            await self._inbound.put((session, event))

    async def _on_pairing(self, generation: int, event: PairingChallenge) -> None:
        try:
            payload = await asyncio.to_thread(render_qr_data_url, event.code)
        except Exception:
            logger.exception("failed to render QR code")
            return
        async with self._lock:
            if generation != self._generation:
                return
            self._state = ConnectionState(status="awaiting_pairing", pairing_payload=payload)
        logger.info("QR code generated")

    async def _on_open(self, generation: int, session: Session) -> None:
        identity = identity_from_user_id(session.user_id)
        if identity is None:
            logger.error("session opened without an account id")
            return
        async with self._lock:
            if generation != self._generation:
                return
            self._state = ConnectionState(status="connected", identity=identity)
        logger.info(
            "WhatsApp connected",
            extra={"extra_fields": safe_log_context(phone_hash=hash_identifier(identity))},
        )

    async def _on_close(self, generation: int, event: SessionClosed) -> None:
        async with self._lock:
            if generation != self._generation:
                return
            self._state = DISCONNECTED

        if event.logged_out:
            logger.info("logged out remotely, QR scan required")
            self.scheduler.schedule(self.logged_out_reconnect_delay_s, reason="remote_logout")
        else:
            logger.info(
                "connection closed",
                extra={"extra_fields": safe_log_context(reason=event.reason)},
            )
            self.scheduler.schedule(self.reconnect_delay_s, reason="transient_close")

    @staticmethod
    async def _close_quietly(session: Session) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning(
                "error closing session",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )
