"""Published session state."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import AuthErrorKind, user_message

__all__ = ["AuthStatus", "AuthState"]


class AuthStatus(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


@dataclass(frozen=True, slots=True)
class AuthState:
    """Immutable snapshot of the session state machine."""

    status: AuthStatus = AuthStatus.IDLE
    reason: AuthErrorKind | None = None

    @classmethod
    def idle(cls) -> "AuthState":
        return cls(AuthStatus.IDLE)

    @classmethod
    def authenticating(cls) -> "AuthState":
        return cls(AuthStatus.AUTHENTICATING)

    @classmethod
    def authenticated(cls) -> "AuthState":
        return cls(AuthStatus.AUTHENTICATED)

    @classmethod
    def failed(cls, reason: AuthErrorKind) -> "AuthState":
        return cls(AuthStatus.FAILED, reason)

    @property
    def is_authenticated(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATED

    @property
    def is_busy(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATING

    @property
    def summary(self) -> str:
        """Generic text for the interface layer."""
        if self.status is AuthStatus.FAILED and self.reason is not None:
            return user_message(self.reason)
        return {
            AuthStatus.IDLE: "Not signed in.",
            AuthStatus.AUTHENTICATING: "Verifying device...",
            AuthStatus.AUTHENTICATED: "Signed in.",
            AuthStatus.FAILED: "Sign-in failed.",
        }[self.status]

    def __str__(self) -> str:
        if self.reason is not None:
            return f"{self.status.value}({self.reason.value})"
        return self.status.value
