"""Full device attestation: challenge, key, statement, server verification.

``perform_attestation`` runs the four steps strictly in order and converts
every step failure into a categorized :class:`AuthError`.  Nothing survives a
failed run: a key generated for a run that does not complete verification is
abandoned, and the next run generates a fresh one.  Concurrent calls share a
single run (see :class:`SingleFlight`).

Challenge bytes, key identifiers and statements are never logged.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import logging
from dataclasses import dataclass
from typing import Callable

from .errors import AttestationFailed, AuthError, InvalidChallengeData, KeyGenerationFailed, NotAvailable
from .ids import DeviceId, KeyId, SessionToken
from .provider import AttestationProvider
from .singleflight import SingleFlight
from .transport import AuthTransport

__all__ = ["AttestationOrchestrator", "AttestationResult", "decode_challenge"]

log = logging.getLogger("jackpotiq.auth.orchestrator")


@dataclass(frozen=True, slots=True)
class AttestationResult:
    token: SessionToken
    device_id: DeviceId | None = None

    def __repr__(self) -> str:
        return f"AttestationResult(token=***, device_id={'***' if self.device_id else None})"


def decode_challenge(encoded: str) -> bytes:
    """Strict base64 decode; raises InvalidChallengeData on any malformed input."""
    try:
        challenge = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise InvalidChallengeData() from None
    if not challenge:
        raise InvalidChallengeData()
    return challenge


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


class AttestationOrchestrator:
    def __init__(
        self,
        transport: AuthTransport,
        provider: AttestationProvider,
        *,
        client_data_hash: Callable[[bytes], bytes] = _sha256,
    ) -> None:
        self._transport = transport
        self._provider = provider
        self._hash = client_data_hash
        self._flight: SingleFlight[AttestationResult] = SingleFlight("attestation")

    @property
    def in_flight(self) -> bool:
        return self._flight.in_flight

    def is_supported(self) -> bool:
        try:
            return bool(self._provider.is_supported())
        except Exception:
            log.warning("attestation support probe failed", exc_info=True)
            return False

    async def perform_attestation(self) -> AttestationResult:
        """Run (or join) one attestation and return the issued session token."""
        return await self._flight.run(self._attest)

    async def _attest(self) -> AttestationResult:
        if not self.is_supported():
            log.info("attestation not supported on this device")
            raise NotAvailable()

        # Step 1: challenge. Decoded before any hardware work.
        challenge = decode_challenge(await self._transport.fetch_challenge())
        log.debug("challenge decoded")

        # Step 2: fresh hardware key
        key_id = await self._generate_key()

        # Step 3: statement over the challenge hash
        statement = await self._generate_statement(key_id, challenge)

        # Step 4: server verification
        log.debug("verifying attestation")
        try:
            response = await self._transport.verify_attestation(
                key_id=key_id,
                challenge=base64.b64encode(challenge).decode("ascii"),
                attestation=base64.b64encode(statement).decode("ascii"),
            )
        except AuthError as exc:
            log.error("attestation verification failed reason=%s", exc.kind)
            raise
        log.info("attestation verified")
        device_id = DeviceId(response.device_id) if response.device_id else None
        return AttestationResult(token=SessionToken(response.token), device_id=device_id)

    async def _generate_key(self) -> KeyId:
        try:
            key_id = await self._provider.generate_key()
        except Exception as exc:
            log.error("key generation failed")
            raise KeyGenerationFailed() from exc
        if not key_id:
            log.error("key generation returned no key id")
            raise KeyGenerationFailed()
        return KeyId(key_id)

    async def _generate_statement(self, key_id: KeyId, challenge: bytes) -> bytes:
        log.debug("generating attestation statement")
        try:
            statement = await self._provider.attest(key_id, self._hash(challenge))
        except Exception as exc:
            log.error("attestation statement generation failed")
            raise AttestationFailed() from exc
        if not statement:
            log.error("attestation statement is empty")
            raise AttestationFailed()
        return bytes(statement)
