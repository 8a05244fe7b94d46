"""Authentication error taxonomy.

Every failure raised by the transport, the credential store or the attestation
orchestrator is an :class:`AuthError`.  The ``kind`` attribute is what the
session state records; ``user_message`` is the generic text safe to show in the
interface layer.  Messages never include response bodies, challenge bytes,
attestation statements or tokens.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "AuthErrorKind",
    "AuthError",
    "InvalidURL",
    "InvalidChallengeData",
    "NotAvailable",
    "KeyGenerationFailed",
    "AttestationFailed",
    "Unauthorized",
    "ServerError",
    "DecodingFailed",
    "RequestFailed",
    "StorageFailed",
]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class AuthErrorKind(_StrEnum):
    INVALID_URL = "invalid_url"
    INVALID_CHALLENGE_DATA = "invalid_challenge_data"
    NOT_AVAILABLE = "not_available"
    KEY_GENERATION_FAILED = "key_generation_failed"
    ATTESTATION_FAILED = "attestation_failed"
    UNAUTHORIZED = "unauthorized"
    SERVER_ERROR = "server_error"
    DECODING_FAILED = "decoding_failed"
    REQUEST_FAILED = "request_failed"
    STORAGE_FAILED = "storage_failed"


_USER_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.INVALID_URL: "The service address is misconfigured.",
    AuthErrorKind.INVALID_CHALLENGE_DATA: "The server sent an invalid response.",
    AuthErrorKind.NOT_AVAILABLE: "Device attestation is not available on this device.",
    AuthErrorKind.KEY_GENERATION_FAILED: "Device verification failed.",
    AuthErrorKind.ATTESTATION_FAILED: "Device verification failed.",
    AuthErrorKind.UNAUTHORIZED: "The server rejected this device.",
    AuthErrorKind.SERVER_ERROR: "The server is unavailable. Try again later.",
    AuthErrorKind.DECODING_FAILED: "The server sent an invalid response.",
    AuthErrorKind.REQUEST_FAILED: "Could not reach the server. Check your connection.",
    AuthErrorKind.STORAGE_FAILED: "Could not access secure storage on this device.",
}


def user_message(kind: AuthErrorKind) -> str:
    return _USER_MESSAGES[kind]


class AuthError(RuntimeError):
    """Base class for categorized authentication failures."""

    kind: AuthErrorKind = AuthErrorKind.REQUEST_FAILED
    default_message = "authentication failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return user_message(self.kind)


class InvalidURL(AuthError):
    kind = AuthErrorKind.INVALID_URL
    default_message = "invalid service URL"


class InvalidChallengeData(AuthError):
    kind = AuthErrorKind.INVALID_CHALLENGE_DATA
    default_message = "invalid challenge data received from server"


class NotAvailable(AuthError):
    kind = AuthErrorKind.NOT_AVAILABLE
    default_message = "attestation is not available on this device"


class KeyGenerationFailed(AuthError):
    kind = AuthErrorKind.KEY_GENERATION_FAILED
    default_message = "failed to generate attestation key"


class AttestationFailed(AuthError):
    kind = AuthErrorKind.ATTESTATION_FAILED
    default_message = "failed to generate attestation statement"


class Unauthorized(AuthError):
    kind = AuthErrorKind.UNAUTHORIZED
    default_message = "unauthorized"


class ServerError(AuthError):
    kind = AuthErrorKind.SERVER_ERROR

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(f"server error (HTTP {status})")


class DecodingFailed(AuthError):
    kind = AuthErrorKind.DECODING_FAILED
    default_message = "failed to decode server response"


class RequestFailed(AuthError):
    kind = AuthErrorKind.REQUEST_FAILED
    default_message = "request failed"


class StorageFailed(AuthError):
    kind = AuthErrorKind.STORAGE_FAILED
    default_message = "secure storage operation failed"
