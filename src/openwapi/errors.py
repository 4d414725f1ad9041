"""Error taxonomy shared by the API boundary and the core.

Every error raised toward an HTTP caller derives from ApiError and carries
its own status code and caller-facing message. Media download and webhook
delivery failures are absorbed where they happen and have no class here
beyond MediaDownloadError, which transports raise.
"""

from __future__ import annotations

BASIC_AUTH_CHALLENGE = {"WWW-Authenticate": 'Basic realm="Dashboard"'}


class ApiError(Exception):
    """Base class for errors rendered as {"success": false, "error": ...}."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers or {}


class AuthError(ApiError):
    """Caller could not be authenticated."""

    status_code = 401

    @classmethod
    def missing(cls, message: str, *, challenge: bool = False) -> AuthError:
        return cls(message, headers=dict(BASIC_AUTH_CHALLENGE) if challenge else None)

    @classmethod
    def invalid(cls, message: str, *, challenge: bool = False) -> AuthError:
        return cls(message, headers=dict(BASIC_AUTH_CHALLENGE) if challenge else None)

    @classmethod
    def misconfigured(cls, message: str) -> AuthError:
        return cls(message, status_code=500)


class ValidationError(ApiError):
    """Missing field, invalid enum value or invalid URL."""

    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class NotConnectedError(ApiError):
    """Operation needs a live, paired session."""

    status_code = 400


class ExternalOperationError(ApiError):
    """A protocol send or logout failed. Detail is logged, not returned."""

    status_code = 500


class MediaDownloadError(Exception):
    """Raised by a session when an attachment cannot be retrieved."""
