"""Session state machine.

``authenticate()`` prefers the cheap path: when a device identifier is stored
it only asks the token endpoint for a fresh session token.  A full attestation
runs when no identifier is stored or the refresh fails; devices without
attestation support get a locally generated identifier instead.

    Idle/Failed --authenticate()--> Authenticating --> Authenticated | Failed(reason)
    Authenticated --logout()--> Idle
    Authenticated --401 from gateway--> Failed(unauthorized)

Any ``Unauthorized`` clears the stored session token before the next attempt.
Other failures leave a previously stored token and device identifier as they
were.  A ``logout()`` while a flow runs discards whatever that flow obtains.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from jackpotiq.config import const

from .errors import AuthError, NotAvailable, StorageFailed, Unauthorized
from .gateway import NetworkGateway
from .ids import DeviceId, SessionToken, generate_device_id
from .keyring import SecureCredentialStore
from .orchestrator import AttestationOrchestrator
from .singleflight import SingleFlight
from .state import AuthState, AuthStatus
from .transport import AuthTransport

__all__ = ["SessionController", "StateListener"]

log = logging.getLogger("jackpotiq.auth.session")

StateListener = Callable[[AuthState, AuthState], None]


class SessionController:
    def __init__(
        self,
        *,
        orchestrator: AttestationOrchestrator,
        transport: AuthTransport,
        store: SecureCredentialStore,
        gateway: NetworkGateway | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._transport = transport
        self._store = store
        self._gateway = gateway
        self._state = AuthState.idle()
        self._listeners: list[StateListener] = []
        self._flight: SingleFlight[AuthState] = SingleFlight("authenticate")
        # bumped by logout(); a flow started under an older epoch keeps nothing
        self._epoch = 0
        self._flow_epoch = 0
        if gateway is not None:
            gateway.on_unauthorized(self.handle_unauthorized)

    # ---------- observation ---------------------------------------------------
    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener(previous, current)`` on every transition, in order."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, state: AuthState) -> None:
        previous, self._state = self._state, state
        if previous == state:
            return
        log.info("auth state %s -> %s", previous, state)
        for listener in list(self._listeners):
            try:
                listener(previous, state)
            except Exception:
                log.exception("auth state listener failed")

    # ---------- credentials ---------------------------------------------------
    def current_token(self) -> SessionToken | None:
        token = self._store.get(const.TOKEN_ENTRY)
        return SessionToken(token) if token else None

    def device_id(self) -> DeviceId | None:
        value = self._store.get(const.DEVICE_ID_ENTRY)
        return DeviceId(value) if value else None

    def _superseded(self) -> bool:
        return self._epoch != self._flow_epoch

    def _save_session(self, token: str, *, device_id: str | None = None) -> None:
        if self._superseded():
            log.info("logout during authentication; discarding issued token")
            return
        self._store.set(const.TOKEN_ENTRY, token)
        if device_id:
            self._store.set(const.DEVICE_ID_ENTRY, device_id)
        if self._gateway is not None:
            self._gateway.set_token(token)

    def _invalidate(self, *, forget_device: bool = False) -> None:
        """Drop credentials the server rejected; storage faults are logged."""
        if self._gateway is not None:
            self._gateway.clear_token()
        entries = [const.TOKEN_ENTRY]
        if forget_device:
            entries.append(const.DEVICE_ID_ENTRY)
        for entry in entries:
            try:
                self._store.delete(entry)
            except StorageFailed:
                log.error("failed to clear rejected credential entry=%s", entry)

    # ---------- lifecycle -----------------------------------------------------
    def restore(self) -> AuthState:
        """Adopt a token persisted by a previous run without any network call."""
        if self._state.status is not AuthStatus.IDLE:
            return self._state
        try:
            token = self._store.get(const.TOKEN_ENTRY)
        except StorageFailed as exc:
            log.error("could not read stored session token")
            self._publish(AuthState.failed(exc.kind))
            return self._state
        if token:
            if self._gateway is not None:
                self._gateway.set_token(token)
            self._publish(AuthState.authenticated())
        return self._state

    async def authenticate(self) -> AuthState:
        """Authenticate once; concurrent and repeated calls do not start new work.

        Never raises :class:`AuthError`; failures are reported as ``Failed(reason)``.
        """
        if self._state.is_authenticated:
            return self._state
        return await self._flight.run(self._authenticate)

    def logout(self, *, forget_device: bool = False) -> None:
        self._epoch += 1
        if self._gateway is not None:
            self._gateway.clear_token()
        self._store.delete(const.TOKEN_ENTRY)
        if forget_device:
            self._store.delete(const.DEVICE_ID_ENTRY)
        log.info("logged out forget_device=%s", forget_device)
        self._publish(AuthState.idle())

    def handle_unauthorized(self) -> None:
        """Gateway callback for 401 responses on application requests."""
        log.warning("session token rejected by server")
        self._invalidate()
        if self._state.is_busy:
            # the running flow publishes its own outcome
            return
        self._publish(AuthState.failed(Unauthorized.kind))

    # ---------- flow ----------------------------------------------------------
    async def _authenticate(self) -> AuthState:
        previous = self._state
        self._flow_epoch = self._epoch
        self._publish(AuthState.authenticating())
        try:
            await self._establish_session()
        except asyncio.CancelledError:
            log.info("authentication cancelled")
            self._finish(previous)
            raise
        except Unauthorized as exc:
            log.warning("authentication rejected by server")
            self._invalidate()
            self._finish(AuthState.failed(exc.kind))
        except AuthError as exc:
            log.warning("authentication failed reason=%s", exc.kind)
            self._finish(AuthState.failed(exc.kind))
        else:
            self._finish(AuthState.authenticated())
        return self._state

    def _finish(self, state: AuthState) -> None:
        if self._superseded():
            # logout() already published Idle
            return
        self._publish(state)

    async def _establish_session(self) -> None:
        device_id = self._store.get(const.DEVICE_ID_ENTRY)
        refresh_error: AuthError | None = None
        if device_id:
            try:
                await self._refresh(device_id)
                return
            except Unauthorized:
                log.warning("stored device identifier rejected; falling back to attestation")
                self._invalidate(forget_device=True)
                device_id = None
            except AuthError as exc:
                log.info("token refresh failed reason=%s; falling back to attestation", exc.kind)
                refresh_error = exc

        try:
            result = await self._orchestrator.perform_attestation()
        except NotAvailable:
            if refresh_error is not None:
                # the stored identifier is still valid as far as we know
                raise refresh_error
            await self._identifier_only()
            return
        self._save_session(result.token, device_id=result.device_id)
        log.info("authenticated via attestation")

    async def _refresh(self, device_id: str) -> None:
        response = await self._transport.issue_token(device_id)
        self._save_session(response.token)
        log.info("authenticated via token refresh")

    async def _identifier_only(self) -> None:
        log.info("attestation unavailable; using identifier-only path")
        device_id = generate_device_id()
        self._store.set(const.DEVICE_ID_ENTRY, device_id)
        response = await self._transport.issue_token(device_id)
        self._save_session(response.token)
        log.info("authenticated via local device identifier")
