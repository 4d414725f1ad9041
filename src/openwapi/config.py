"""Runtime settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

API_BASE_PATH = "/api/v1"
MEDIA_ROUTE = "/image"


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Process configuration.

    Attributes:
        port: HTTP port for the bundled server entry point.
        dashboard_user: Username for the basic-credential scheme.
        dashboard_password: Password for the basic-credential scheme.
        database_url: psycopg2 DSN (None when no database is configured).
        session_path: Folder holding the protocol session credentials.
        media_path: Root folder of downloaded image attachments.
        app_env: "production" switches logging to INFO.
        reconnect_delay_s: Delay after a transient close.
        logged_out_reconnect_delay_s: Delay after a remote logout.
        logout_reconnect_delay_s: Delay after an API-triggered logout.
        webhook_timeout_s: Timeout of a single webhook POST.
    """

    port: int = 3001
    dashboard_user: str = "admin"
    dashboard_password: str = "admin123"
    database_url: str | None = None
    session_path: Path = Path("./session")
    media_path: Path = Path("./media")
    app_env: str = "development"
    reconnect_delay_s: float = 5.0
    logged_out_reconnect_delay_s: float = 2.0
    logout_reconnect_delay_s: float = 3.0
    webhook_timeout_s: float = 5.0

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def load_settings() -> Settings:
    """Build Settings from the environment, applying defaults."""
    port_raw = os.environ.get("PORT", "3001")
    try:
        port = int(port_raw)
    except ValueError:
        raise RuntimeError(f"PORT must be an integer, got {port_raw!r}")

    return Settings(
        port=port,
        dashboard_user=os.environ.get("DASHBOARD_USER", "admin"),
        dashboard_password=os.environ.get("DASHBOARD_PASSWORD", "admin123"),
        database_url=os.environ.get("DATABASE_URL") or None,
        session_path=Path(os.environ.get("SESSION_PATH", "./session")),
        media_path=Path(os.environ.get("MEDIA_PATH", "./media")),
        app_env=os.environ.get("APP_ENV", "development"),
        reconnect_delay_s=_float_env("RECONNECT_DELAY_S", 5.0),
        logged_out_reconnect_delay_s=_float_env("LOGGED_OUT_RECONNECT_DELAY_S", 2.0),
        logout_reconnect_delay_s=_float_env("LOGOUT_RECONNECT_DELAY_S", 3.0),
        webhook_timeout_s=_float_env("WEBHOOK_TIMEOUT_S", 5.0),
    )
