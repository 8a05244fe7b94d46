from __future__ import annotations

import asyncio
import base64
import json
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from jackpotiq.config import const
from jackpotiq.services.auth import (
    AttestationOrchestrator,
    AuthTransport,
    MemoryCredentialStore,
    NetworkGateway,
    SessionController,
    StaticAttestationProvider,
)

BASE_URL = "https://api.test/api/"
CHALLENGE_BYTES = b"server-nonce-0123456789"


@dataclass
class FakeAuthServer:
    """Scriptable stand-in for the three auth endpoints plus one app endpoint."""

    challenge: str = base64.b64encode(CHALLENGE_BYTES).decode("ascii")
    challenge_status: int = 200
    verify_status: int = 200
    verify_body: Any = field(default_factory=lambda: {"token": "jwt-abc"})
    token_status: int = 200
    token_body: Any = field(default_factory=lambda: {"token": "jwt-refreshed"})
    app_status: int = 200
    app_body: Any = field(default_factory=lambda: {"ok": True})
    calls: list[tuple[str, str, Any]] = field(default_factory=list)
    headers: list[httpx.Headers] = field(default_factory=list)

    def paths(self) -> list[str]:
        return [path for _method, path, _body in self.calls]

    def _respond(self, status: int, body: Any) -> httpx.Response:
        if isinstance(body, (bytes, str)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))
        self.headers.append(request.headers)
        if path.endswith(const.CHALLENGE_PATH):
            return self._respond(self.challenge_status, {"challenge": self.challenge})
        if path.endswith(const.VERIFY_PATH):
            return self._respond(self.verify_status, self.verify_body)
        if path.endswith(const.TOKEN_PATH):
            return self._respond(self.token_status, self.token_body)
        return self._respond(self.app_status, self.app_body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class GatedProvider(StaticAttestationProvider):
    """Blocks inside generate_key until the test opens the gate."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def generate_key(self):
        self.entered.set()
        await self.gate.wait()
        return await super().generate_key()


@pytest.fixture
def server() -> FakeAuthServer:
    return FakeAuthServer()


@pytest.fixture
def provider() -> StaticAttestationProvider:
    return StaticAttestationProvider()


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def transport(server) -> AuthTransport:
    return AuthTransport(base_url=BASE_URL, transport=server.transport())


@pytest.fixture
def gateway(server, store) -> NetworkGateway:
    return NetworkGateway(BASE_URL, token_source=lambda: store.get(const.TOKEN_ENTRY), transport=server.transport())


@pytest.fixture
def orchestrator(transport, provider) -> AttestationOrchestrator:
    return AttestationOrchestrator(transport, provider)


@pytest.fixture
def controller(orchestrator, transport, store, gateway) -> SessionController:
    return SessionController(orchestrator=orchestrator, transport=transport, store=store, gateway=gateway)
