"""Compose the authentication services from settings."""
from __future__ import annotations

from dataclasses import dataclass

import httpx

from jackpotiq.config import const
from jackpotiq.services.settings import AuthSettings

from .gateway import NetworkGateway
from .keyring import FileCredentialStore, KeyringCredentialStore, MemoryCredentialStore, SecureCredentialStore
from .orchestrator import AttestationOrchestrator
from .provider import AttestationProvider, load_provider
from .session import SessionController
from .transport import AuthTransport

__all__ = ["AuthSession", "build_session", "create_store"]


@dataclass(slots=True)
class AuthSession:
    settings: AuthSettings
    store: SecureCredentialStore
    transport: AuthTransport
    gateway: NetworkGateway
    orchestrator: AttestationOrchestrator
    controller: SessionController


def create_store(settings: AuthSettings) -> SecureCredentialStore:
    if settings.store_backend == "keyring":
        return KeyringCredentialStore(settings.keyring_service)
    if settings.store_backend == "file":
        return FileCredentialStore(settings.store_file())
    if settings.store_backend == "memory":
        return MemoryCredentialStore()
    raise ValueError(f"unknown store backend {settings.store_backend!r}")


def build_session(
    settings: AuthSettings,
    *,
    provider: AttestationProvider | None = None,
    store: SecureCredentialStore | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> AuthSession:
    store = store if store is not None else create_store(settings)
    provider = provider if provider is not None else load_provider(settings.attestation_provider)
    transport = AuthTransport.from_settings(settings, transport=http_transport)
    gateway = NetworkGateway.from_settings(
        settings,
        token_source=lambda: store.get(const.TOKEN_ENTRY),
        transport=http_transport,
    )
    orchestrator = AttestationOrchestrator(transport, provider)
    controller = SessionController(orchestrator=orchestrator, transport=transport, store=store, gateway=gateway)
    return AuthSession(
        settings=settings,
        store=store,
        transport=transport,
        gateway=gateway,
        orchestrator=orchestrator,
        controller=controller,
    )
