"""Device attestation and session credential lifecycle."""
from .errors import (
    AttestationFailed,
    AuthError,
    AuthErrorKind,
    DecodingFailed,
    InvalidChallengeData,
    InvalidURL,
    KeyGenerationFailed,
    NotAvailable,
    RequestFailed,
    ServerError,
    StorageFailed,
    Unauthorized,
)
from .gateway import NetworkGateway
from .ids import DeviceId, KeyId, SessionToken, generate_device_id
from .keyring import FileCredentialStore, KeyringCredentialStore, MemoryCredentialStore, SecureCredentialStore
from .orchestrator import AttestationOrchestrator, AttestationResult
from .provider import AttestationProvider, StaticAttestationProvider, UnsupportedAttestationProvider, load_provider
from .session import SessionController
from .state import AuthState, AuthStatus
from .transport import AuthTransport

__all__ = [
    "AttestationFailed",
    "AuthError",
    "AuthErrorKind",
    "DecodingFailed",
    "InvalidChallengeData",
    "InvalidURL",
    "KeyGenerationFailed",
    "NotAvailable",
    "RequestFailed",
    "ServerError",
    "StorageFailed",
    "Unauthorized",
    "NetworkGateway",
    "DeviceId",
    "KeyId",
    "SessionToken",
    "generate_device_id",
    "FileCredentialStore",
    "KeyringCredentialStore",
    "MemoryCredentialStore",
    "SecureCredentialStore",
    "AttestationOrchestrator",
    "AttestationResult",
    "AttestationProvider",
    "StaticAttestationProvider",
    "UnsupportedAttestationProvider",
    "load_provider",
    "SessionController",
    "AuthState",
    "AuthStatus",
    "AuthTransport",
]
