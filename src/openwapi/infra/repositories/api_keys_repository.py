"""Singleton API key storage.

The api_keys table holds at most one row (its primary key is a constant
TRUE), so provisioning is an idempotent insert followed by a read-back.
"""

import base64
import secrets

from psycopg2.extensions import cursor as PgCursor

API_KEY_BYTES = 32


def generate_api_key() -> str:
    """32 random bytes, standard base64."""
    return base64.b64encode(secrets.token_bytes(API_KEY_BYTES)).decode("ascii")


def get_api_key(cur: PgCursor) -> str | None:
    cur.execute("SELECT key FROM api_keys LIMIT 1")
    row = cur.fetchone()
    return row[0] if row else None


def ensure_api_key(cur: PgCursor) -> str:
    """Return the stored key, creating it on first call.

    Concurrent first calls race on the singleton row; the loser's insert is
    a no-op and both read back the winner's key.
    """
    existing = get_api_key(cur)
    if existing is not None:
        return existing

    cur.execute(
        "INSERT INTO api_keys (key) VALUES (%s) ON CONFLICT (singleton) DO NOTHING",
        (generate_api_key(),),
    )
    key = get_api_key(cur)
    if key is None:
        raise RuntimeError("api key row missing after provisioning")
    return key
