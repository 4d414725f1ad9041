"""Protocol session interface.

A Session is the single capability object for a live WhatsApp Web
connection. The real client adapter (pyaileys_transport) and the test fakes
both satisfy it. Sessions report what happens to them by calling the
`emit` callback they were opened with, using the typed events below.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Protocol, Union

from .models import InboundEvent, OutboundContent


@dataclass(frozen=True)
class PairingChallenge:
    """Transport asks for a QR scan. `code` is the raw QR string."""

    code: str


@dataclass(frozen=True)
class SessionOpened:
    pass


@dataclass(frozen=True)
class SessionClosed:
    """Session went away.

    `logged_out` is True only for an explicit remote logout; every other
    reason is transient.
    """

    logged_out: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class MessagesUpserted:
    """Batch of inbound messages.

    `kind` is "notify" for messages addressed to this account in real
    time; other kinds (history append, own-device sync) are not ingested.
    """

    messages: tuple[InboundEvent, ...]
    kind: str = "notify"


SessionEvent = Union[PairingChallenge, SessionOpened, SessionClosed, MessagesUpserted]

EmitFn = Callable[[SessionEvent], Awaitable[None]]


class Session(Protocol):
    @property
    def user_id(self) -> str | None:
        """Account JID once paired ("5511999999999:12@s.whatsapp.net")."""
        ...

    async def send_message(self, jid: str, content: OutboundContent) -> None: ...

    async def download_media(self, event: InboundEvent) -> bytes: ...

    async def logout(self) -> None: ...

    async def close(self) -> None: ...


class SessionFactory(Protocol):
    async def __call__(self, session_path: Path, emit: EmitFn) -> Session:
        """Load credentials from session_path and start a new session.

        Credentials must be read from disk on every call so that a purge
        done by logout is observed by the next session.
        """
        ...
