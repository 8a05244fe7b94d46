# src/jackpotiq/services/auth/gateway.py
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

import httpx

from .errors import DecodingFailed, InvalidURL, RequestFailed, ServerError, Unauthorized
from .transport import validate_base_url

__all__ = ["NetworkGateway"]

log = logging.getLogger("jackpotiq.auth.gateway")

TokenSource = Callable[[], "str | None"]
UnauthorizedHandler = Callable[[], None]


class NetworkGateway:
    """Outbound application requests carrying the session bearer token.

    The gateway never re-authenticates or retries.  A 401 response is reported
    to every registered handler and then raised as :class:`Unauthorized`; the
    caller decides whether to call ``authenticate()`` and try again.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        token_source: TokenSource | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        validate_base_url(base_url)
        self.base_url = base_url
        self.timeout = timeout
        self._token: str | None = None
        self._token_source = token_source
        self._transport = transport
        self._unauthorized_handlers: list[UnauthorizedHandler] = []

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "NetworkGateway":
        return cls(settings.base_url, timeout=settings.timeout, **kwargs)

    # ---------- token ---------------------------------------------------------
    def set_token(self, token: str) -> None:
        self._token = token

    def clear_token(self) -> None:
        self._token = None

    @property
    def token(self) -> str | None:
        if self._token:
            return self._token
        if self._token_source is not None:
            return self._token_source()
        return None

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def on_unauthorized(self, handler: UnauthorizedHandler) -> Callable[[], None]:
        self._unauthorized_handlers.append(handler)

        def _remove() -> None:
            if handler in self._unauthorized_handlers:
                self._unauthorized_handlers.remove(handler)

        return _remove

    # ---------- requests ------------------------------------------------------
    async def get(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, *, json: Any | None = None) -> Any:
        return await self.request("POST", path, json=json)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any | None = None,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        token = self.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
            log.debug("auth token present")
        else:
            log.debug("no auth token available")

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.InvalidURL as exc:
            raise InvalidURL() from exc
        except httpx.RequestError as exc:
            log.error("request failed method=%s path=%s error=%s", method, path, type(exc).__name__)
            raise RequestFailed(f"{method} {path} failed") from exc

        status = response.status_code
        log.debug("response status=%s path=%s", status, path)
        if status == 401:
            log.warning("unauthorized path=%s", path)
            self._notify_unauthorized()
            raise Unauthorized()
        if not 200 <= status < 300:
            log.error("server error status=%s path=%s", status, path)
            raise ServerError(status)
        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            log.error("decoding failed path=%s", path)
            raise DecodingFailed() from None

    def _notify_unauthorized(self) -> None:
        for handler in list(self._unauthorized_handlers):
            try:
                handler()
            except Exception:
                log.exception("unauthorized handler failed")
