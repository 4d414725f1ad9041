"""API authentication.

Two independent, stateless schemes, each exposed as a FastAPI dependency:
- require_api_key: shared secret in the X-API-Key header, compared against
  the stored API key.
- require_basic_auth: dashboard username/password in a Basic
  Authorization header, compared against configured values.

Both use timing_safe_compare. A length mismatch is rejected before the
constant-time comparison runs, so the key length is observable by timing.
"""

from __future__ import annotations

import base64
import binascii
import hmac

from fastapi import Depends, Header

from openwapi.api.deps import get_settings, get_store
from openwapi.config import Settings
from openwapi.errors import AuthError
from openwapi.infra.store import Store
from openwapi.observability.logging import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = "X-API-Key"


def timing_safe_compare(supplied: str | None, expected: str | None) -> bool:
    """Equal-length check, then constant-time comparison of the UTF-8 bytes."""
    if not supplied or not expected or len(supplied) != len(expected):
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def verify_api_key(supplied: str | None, stored: str | None) -> None:
    """Raise AuthError unless supplied matches the stored key."""
    if not supplied:
        raise AuthError.missing("API key required")
    if not stored:
        raise AuthError.misconfigured("API key not configured")
    if not timing_safe_compare(supplied, stored):
        logger.warning("invalid API key")
        raise AuthError.invalid("Invalid API key")


def decode_basic_credentials(authorization: str | None) -> tuple[str, str] | None:
    """Split a "Basic <base64 user:pass>" header. None if absent or malformed."""
    if not authorization or not authorization.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(authorization[len("Basic "):].strip(), validate=True)
        credentials = decoded.decode("utf-8")
    except (binascii.Error, ValueError):
        return None
    username, sep, password = credentials.partition(":")
    if not sep:
        return None
    return username, password


def verify_basic_auth(authorization: str | None, username: str, password: str) -> None:
    credentials = decode_basic_credentials(authorization)
    if credentials is None:
        raise AuthError.missing("Authentication required", challenge=True)

    valid_username = timing_safe_compare(credentials[0], username)
    valid_password = timing_safe_compare(credentials[1], password)
    if not (valid_username and valid_password):
        logger.warning("invalid dashboard credentials")
        raise AuthError.invalid("Invalid credentials", challenge=True)


def require_api_key(
    x_api_key: str | None = Header(None, alias=API_KEY_HEADER),
    store: Store = Depends(get_store),
) -> None:
    """FastAPI dependency: shared-secret scheme."""
    stored = store.get_api_key() if x_api_key else None
    verify_api_key(x_api_key, stored)


def require_basic_auth(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """FastAPI dependency: basic-credential scheme."""
    verify_basic_auth(authorization, settings.dashboard_user, settings.dashboard_password)


ApiKeyDep = Depends(require_api_key)
BasicAuthDep = Depends(require_basic_auth)
