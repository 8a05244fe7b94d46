# src/jackpotiq/services/auth/transport.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from jackpotiq.config import const

from .errors import DecodingFailed, InvalidURL, RequestFailed, ServerError, Unauthorized
from .models import ChallengeResponse, TokenRequest, TokenResponse, VerifyRequest, VerifyResponse

__all__ = ["AuthTransport", "validate_base_url"]

log = logging.getLogger("jackpotiq.auth.transport")

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_base_url(base_url: str) -> httpx.URL:
    try:
        url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise InvalidURL() from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidURL()
    return url


@dataclass(slots=True)
class AuthTransport:
    """Stateless request/response calls for the three authentication endpoints."""

    base_url: str = const.API_BASE_URL
    timeout: float = const.REQUEST_TIMEOUT
    challenge_path: str = const.CHALLENGE_PATH
    verify_path: str = const.VERIFY_PATH
    token_path: str = const.TOKEN_PATH
    # test seam: an httpx transport such as httpx.MockTransport
    transport: httpx.AsyncBaseTransport | None = None
    default_headers: dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})

    def __post_init__(self) -> None:
        validate_base_url(self.base_url)

    # ---------- public helpers ------------------------------------------------
    @classmethod
    def from_settings(cls, settings: Any, *, transport: httpx.AsyncBaseTransport | None = None) -> "AuthTransport":
        return cls(
            base_url=settings.base_url,
            timeout=settings.timeout,
            challenge_path=settings.challenge_path,
            verify_path=settings.verify_path,
            token_path=settings.token_path,
            transport=transport,
        )

    async def fetch_challenge(self) -> str:
        """Return the base64 challenge exactly as the server sent it."""
        log.debug("requesting challenge")
        body = await self._request("GET", self.challenge_path, response_model=ChallengeResponse)
        log.debug("challenge received")
        return body.challenge

    async def verify_attestation(self, *, key_id: str, challenge: str, attestation: str) -> VerifyResponse:
        payload = VerifyRequest(key_id=key_id, challenge=challenge, attestation=attestation)
        log.debug("sending attestation for verification")
        return await self._request(
            "POST",
            self.verify_path,
            json=payload.model_dump(by_alias=True),
            response_model=VerifyResponse,
        )

    async def issue_token(self, device_id: str) -> TokenResponse:
        payload = TokenRequest(device_id=device_id)
        log.debug("sending token request")
        return await self._request(
            "POST",
            self.token_path,
            json=payload.model_dump(by_alias=True),
            response_model=TokenResponse,
        )

    # ---------- internals -----------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        response_model: Type[ModelT],
        json: Mapping[str, Any] | None = None,
    ) -> ModelT:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
                headers=self.default_headers,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.InvalidURL as exc:
            raise InvalidURL() from exc
        except httpx.RequestError as exc:
            log.error("request failed method=%s path=%s error=%s", method, path, type(exc).__name__)
            raise RequestFailed(f"{method} {path} failed") from exc

        status = response.status_code
        log.debug("response status=%s path=%s", status, path)
        if status == 401:
            log.warning("unauthorized path=%s", path)
            raise Unauthorized()
        if not 200 <= status < 300:
            log.error("server error status=%s path=%s", status, path)
            raise ServerError(status)

        try:
            return response_model.model_validate(response.json())
        except (ValueError, ValidationError):
            # not chained: ValidationError embeds the response values
            log.error("decoding failed path=%s", path)
            raise DecodingFailed() from None
