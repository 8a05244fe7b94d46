from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from jackpotiq.config import const
from jackpotiq.services.auth import (
    AttestationOrchestrator,
    AuthErrorKind,
    AuthState,
    AuthStatus,
    AuthTransport,
    MemoryCredentialStore,
    SessionController,
    StaticAttestationProvider,
    StorageFailed,
    Unauthorized,
)

from .conftest import BASE_URL, GatedProvider

def _controller(transport, store, gateway, provider) -> SessionController:
    orchestrator = AttestationOrchestrator(transport, provider)
    return SessionController(orchestrator=orchestrator, transport=transport, store=store, gateway=gateway)

def test_initial_state_is_idle(controller):
    assert controller.state == AuthState.idle()

@pytest.mark.anyio
async def test_fresh_install_authenticates_via_attestation(controller, store, gateway, server):
    state = await controller.authenticate()

    assert state.status is AuthStatus.AUTHENTICATED
    assert store.get(const.TOKEN_ENTRY) == "jwt-abc"
    assert gateway.token == "jwt-abc"
    assert const.TOKEN_PATH not in " ".join(server.paths())

@pytest.mark.anyio
async def test_device_id_from_verification_is_persisted(controller, store, server):
    server.verify_body = {"token": "jwt-abc", "deviceId": "dev-7"}
    await controller.authenticate()
    assert store.get(const.DEVICE_ID_ENTRY) == "dev-7"
    assert controller.device_id() == "dev-7"

@pytest.mark.anyio
async def test_invalid_challenge_fails_without_key(controller, provider, server, store):
    server.challenge = "###"
    state = await controller.authenticate()

    assert state == AuthState.failed(AuthErrorKind.INVALID_CHALLENGE_DATA)
    assert provider.generated == []
    assert store.get(const.TOKEN_ENTRY) is None

@pytest.mark.anyio
async def test_stored_device_identity_uses_refresh_only(controller, provider, store, server):
    store.set(const.DEVICE_ID_ENTRY, "dev-42")

    state = await controller.authenticate()

    assert state.is_authenticated
    assert provider.generated == []
    assert provider.attested == []
    assert server.calls == [("POST", "/api/auth/token", {"deviceId": "dev-42"})]
    assert store.get(const.TOKEN_ENTRY) == "jwt-refreshed"

@pytest.mark.anyio
async def test_refresh_failure_falls_back_to_attestation(controller, provider, store, server):
    store.set(const.DEVICE_ID_ENTRY, "dev-42")
    server.token_status = 503

    state = await controller.authenticate()

    assert state.is_authenticated
    assert provider.generated == ["key-123"]
    assert store.get(const.TOKEN_ENTRY) == "jwt-abc"
    # transient failure keeps the identifier for the next launch
    assert store.get(const.DEVICE_ID_ENTRY) == "dev-42"

@pytest.mark.anyio
async def test_rejected_device_identity_is_discarded(controller, provider, store, server):
    store.set(const.DEVICE_ID_ENTRY, "dev-42")
    store.set(const.TOKEN_ENTRY, "stale")
    server.token_status = 401

    state = await controller.authenticate()

    assert state.is_authenticated
    assert provider.generated == ["key-123"]
    assert store.get(const.DEVICE_ID_ENTRY) is None
    assert store.get(const.TOKEN_ENTRY) == "jwt-abc"

@pytest.mark.anyio
async def test_verify_unauthorized_fails_and_clears_token(controller, store, gateway, server):
    store.set(const.TOKEN_ENTRY, "previous-token")
    gateway.set_token("previous-token")
    server.verify_status = 401

    state = await controller.authenticate()

    assert state == AuthState.failed(AuthErrorKind.UNAUTHORIZED)
    assert store.get(const.TOKEN_ENTRY) is None
    assert gateway.token is None

@pytest.mark.anyio
async def test_other_failures_keep_previous_token(controller, store, server):
    store.set(const.TOKEN_ENTRY, "previous-token")
    server.verify_status = 500

    state = await controller.authenticate()

    assert state == AuthState.failed(AuthErrorKind.SERVER_ERROR)
    assert store.get(const.TOKEN_ENTRY) == "previous-token"

@pytest.mark.anyio
async def test_unsupported_device_uses_local_identifier(transport, store, gateway, server):
    controller = _controller(transport, store, gateway, StaticAttestationProvider(supported=False))

    state = await controller.authenticate()

    assert state.is_authenticated
    device_id = store.get(const.DEVICE_ID_ENTRY)
    assert device_id and len(device_id) == 36
    assert server.calls == [("POST", "/api/auth/token", {"deviceId": device_id})]
    assert store.get(const.TOKEN_ENTRY) == "jwt-refreshed"

@pytest.mark.anyio
async def test_identifier_only_path_can_fail(transport, store, gateway, server):
    server.token_status = 401
    controller = _controller(transport, store, gateway, StaticAttestationProvider(supported=False))

    state = await controller.authenticate()

    assert state == AuthState.failed(AuthErrorKind.UNAUTHORIZED)
    assert store.get(const.TOKEN_ENTRY) is None

@pytest.mark.anyio
async def test_unsupported_device_keeps_identifier_on_transient_refresh_failure(transport, store, gateway, server):
    store.set(const.DEVICE_ID_ENTRY, "dev-42")
    server.token_status = 500
    controller = _controller(transport, store, gateway, StaticAttestationProvider(supported=False))

    state = await controller.authenticate()

    assert state == AuthState.failed(AuthErrorKind.SERVER_ERROR)
    assert store.get(const.DEVICE_ID_ENTRY) == "dev-42"
    assert server.calls == [("POST", "/api/auth/token", {"deviceId": "dev-42"})]

    server.token_status = 200
    assert (await controller.authenticate()).is_authenticated
    assert server.calls[-1] == ("POST", "/api/auth/token", {"deviceId": "dev-42"})

@pytest.mark.anyio
async def test_unsupported_device_replaces_rejected_identifier(transport, store, gateway, server):
    store.set(const.DEVICE_ID_ENTRY, "dev-42")
    rejected = []

    def handler(request):
        body = json.loads(request.content)
        server.calls.append((request.method, request.url.path, body))
        if body["deviceId"] == "dev-42":
            rejected.append(body["deviceId"])
            return httpx.Response(401, json={})
        return httpx.Response(200, json={"token": "jwt-new"})

    transport = AuthTransport(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    controller = _controller(transport, store, gateway, StaticAttestationProvider(supported=False))

    state = await controller.authenticate()

    assert state.is_authenticated
    assert rejected == ["dev-42"]
    assert store.get(const.DEVICE_ID_ENTRY) not in (None, "dev-42")
    assert store.get(const.TOKEN_ENTRY) == "jwt-new"

@pytest.mark.anyio
async def test_undecodable_token_response_sets_no_token(controller, store, server):
    server.verify_body = {"unexpected": True}
    state = await controller.authenticate()
    assert state == AuthState.failed(AuthErrorKind.DECODING_FAILED)
    assert store.get(const.TOKEN_ENTRY) is None

@pytest.mark.anyio
async def test_concurrent_authenticate_runs_one_sequence(transport, store, gateway, server):
    provider = GatedProvider()
    controller = _controller(transport, store, gateway, provider)

    calls = [asyncio.ensure_future(controller.authenticate()) for _ in range(4)]
    await provider.entered.wait()
    assert controller.state.status is AuthStatus.AUTHENTICATING
    provider.gate.set()
    states = await asyncio.gather(*calls)

    assert set(states) == {AuthState.authenticated()}
    assert provider.generated == ["key-123"]
    assert server.paths().count("/api/auth/verify-attestation") == 1

@pytest.mark.anyio
async def test_authenticate_when_authenticated_is_a_no_op(controller, server):
    await controller.authenticate()
    calls = len(server.calls)

    state = await controller.authenticate()

    assert state.is_authenticated
    assert len(server.calls) == calls

@pytest.mark.anyio
async def test_failed_state_allows_retry(controller, server):
    server.verify_status = 500
    assert (await controller.authenticate()).status is AuthStatus.FAILED
    server.verify_status = 200
    assert (await controller.authenticate()).is_authenticated

@pytest.mark.anyio
async def test_storage_failure_is_reported_not_raised(transport, gateway, provider):
    class BrokenStore(MemoryCredentialStore):
        def _write(self, key, value):
            raise StorageFailed()

    controller = _controller(transport, BrokenStore(), gateway, provider)
    state = await controller.authenticate()
    assert state == AuthState.failed(AuthErrorKind.STORAGE_FAILED)

@pytest.mark.anyio
async def test_cancelled_authentication_restores_previous_state(transport, store, gateway):
    provider = GatedProvider()
    controller = _controller(transport, store, gateway, provider)

    call = asyncio.ensure_future(controller.authenticate())
    await provider.entered.wait()
    call.cancel()
    with pytest.raises(asyncio.CancelledError):
        await call
    for _ in range(3):
        await asyncio.sleep(0)

    assert controller.state == AuthState.idle()
    assert store.get(const.TOKEN_ENTRY) is None

@pytest.mark.anyio
async def test_listeners_observe_transitions_in_order(controller):
    seen: list[tuple[AuthStatus, AuthStatus]] = []
    unsubscribe = controller.subscribe(lambda prev, cur: seen.append((prev.status, cur.status)))

    await controller.authenticate()
    controller.logout()
    unsubscribe()
    await controller.authenticate()

    assert seen == [
        (AuthStatus.IDLE, AuthStatus.AUTHENTICATING),
        (AuthStatus.AUTHENTICATING, AuthStatus.AUTHENTICATED),
        (AuthStatus.AUTHENTICATED, AuthStatus.IDLE),
    ]

@pytest.mark.anyio
async def test_failing_listener_does_not_break_publication(controller):
    seen = []

    def broken(prev, cur):
        raise RuntimeError("listener bug")

    controller.subscribe(broken)
    controller.subscribe(lambda prev, cur: seen.append(cur.status))

    state = await controller.authenticate()

    assert state.is_authenticated
    assert seen == [AuthStatus.AUTHENTICATING, AuthStatus.AUTHENTICATED]

@pytest.mark.anyio
async def test_logout_clears_token_and_keeps_device(controller, store, gateway, server):
    server.verify_body = {"token": "jwt-abc", "deviceId": "dev-7"}
    await controller.authenticate()

    controller.logout()

    assert controller.state == AuthState.idle()
    assert store.get(const.TOKEN_ENTRY) is None
    assert store.get(const.DEVICE_ID_ENTRY) == "dev-7"
    assert gateway.token is None

@pytest.mark.anyio
async def test_logout_can_forget_device(controller, store, server):
    server.verify_body = {"token": "jwt-abc", "deviceId": "dev-7"}
    await controller.authenticate()

    controller.logout(forget_device=True)

    assert store.get(const.DEVICE_ID_ENTRY) is None

def test_restore_adopts_persisted_token(controller, store, gateway, server):
    store.set(const.TOKEN_ENTRY, "persisted")

    state = controller.restore()

    assert state.is_authenticated
    assert gateway.token == "persisted"
    assert server.calls == []

def test_restore_without_token_stays_idle(controller):
    assert controller.restore() == AuthState.idle()

@pytest.mark.anyio
async def test_gateway_unauthorized_invalidates_session(controller, gateway, store, server):
    await controller.authenticate()
    server.app_status = 401

    with pytest.raises(Unauthorized):
        await gateway.get("stats", params={"type": "powerball"})

    assert controller.state == AuthState.failed(AuthErrorKind.UNAUTHORIZED)
    assert store.get(const.TOKEN_ENTRY) is None

    # explicit re-authentication by the caller
    server.app_status = 200
    assert (await controller.authenticate()).is_authenticated
    assert await gateway.get("stats") == {"ok": True}

@pytest.mark.anyio
async def test_gateway_unauthorized_during_authentication_clears_stale_token(transport, store, gateway, server):
    store.set(const.TOKEN_ENTRY, "stale-token")
    provider = GatedProvider()
    controller = _controller(transport, store, gateway, provider)

    call = asyncio.ensure_future(controller.authenticate())
    await provider.entered.wait()
    server.app_status = 401
    with pytest.raises(Unauthorized):
        await gateway.get("stats")
    assert controller.state.status is AuthStatus.AUTHENTICATING

    server.verify_status = 500
    provider.gate.set()
    state = await call

    assert state == AuthState.failed(AuthErrorKind.SERVER_ERROR)
    assert store.get(const.TOKEN_ENTRY) is None
    assert gateway.token is None

@pytest.mark.anyio
async def test_logout_during_authentication_wins(transport, store, gateway, server):
    provider = GatedProvider()
    controller = _controller(transport, store, gateway, provider)
    server.verify_body = {"token": "jwt-abc", "deviceId": "dev-7"}

    call = asyncio.ensure_future(controller.authenticate())
    await provider.entered.wait()
    controller.logout(forget_device=True)
    provider.gate.set()
    state = await call

    assert state == AuthState.idle()
    assert controller.state == AuthState.idle()
    assert store.get(const.TOKEN_ENTRY) is None
    assert store.get(const.DEVICE_ID_ENTRY) is None
    assert gateway.token is None

    assert (await controller.authenticate()).is_authenticated
    assert store.get(const.TOKEN_ENTRY) == "jwt-abc"

def test_summary_never_contains_secrets():
    state = AuthState.failed(AuthErrorKind.UNAUTHORIZED)
    assert state.summary == "The server rejected this device."
    assert str(state) == "failed(unauthorized)"
