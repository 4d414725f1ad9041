"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL

DRIVER = "postgresql+psycopg2"


def dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN (as psycopg2 accepts) to a SQLAlchemy URL.

    A host starting with "/" is a Unix socket directory and is passed as a
    query parameter.
    """
    params = parse_dsn(dsn)
    host = params.get("host")
    socket_dir = host if host and host.startswith("/") else None

    url = URL.create(
        DRIVER,
        username=params.get("user"),
        password=params.get("password"),
        host=None if socket_dir else (host or "localhost"),
        port=None if socket_dir else int(params.get("port", 5432)),
        database=params.get("dbname"),
        query={"host": socket_dir} if socket_dir else {},
    )
    return url.render_as_string(hide_password=False)


def normalize_url(url: str) -> str:
    """Pin the psycopg2 driver on postgres:// and postgresql:// URLs."""
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return f"{DRIVER}://" + url[len(scheme):]
    return url


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" in url:
        return normalize_url(url)
    return dsn_to_url(url)
