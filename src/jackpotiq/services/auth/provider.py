"""Platform attestation capability.

The hardware primitive (key generation inside a secure element and statement
signing) lives outside this package.  Production builds inject an object
satisfying :class:`AttestationProvider`; hosts without such hardware use
:class:`UnsupportedAttestationProvider`, which routes the session through the
identifier-only path.
"""
from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .ids import KeyId

__all__ = [
    "AttestationProvider",
    "UnsupportedAttestationProvider",
    "StaticAttestationProvider",
    "load_provider",
]


@runtime_checkable
class AttestationProvider(Protocol):
    def is_supported(self) -> bool: ...

    async def generate_key(self) -> KeyId: ...

    async def attest(self, key_id: KeyId, client_data_hash: bytes) -> bytes: ...


class UnsupportedAttestationProvider:
    """Provider for hosts with no attestation hardware."""

    def is_supported(self) -> bool:
        return False

    async def generate_key(self) -> KeyId:
        raise RuntimeError("attestation is not supported on this host")

    async def attest(self, key_id: KeyId, client_data_hash: bytes) -> bytes:
        raise RuntimeError("attestation is not supported on this host")


@dataclass
class StaticAttestationProvider:
    """Deterministic provider returning canned key IDs and statements."""

    key_id: str = "key-123"
    statement: bytes = b"attestation-statement"
    supported: bool = True
    key_error: Exception | None = None
    attest_error: Exception | None = None
    generated: list[str] = field(default_factory=list)
    attested: list[tuple[str, bytes]] = field(default_factory=list)

    def is_supported(self) -> bool:
        return self.supported

    async def generate_key(self) -> KeyId:
        if self.key_error is not None:
            raise self.key_error
        self.generated.append(self.key_id)
        return KeyId(self.key_id)

    async def attest(self, key_id: KeyId, client_data_hash: bytes) -> bytes:
        if self.attest_error is not None:
            raise self.attest_error
        self.attested.append((key_id, client_data_hash))
        return self.statement


def load_provider(dotted: str | None) -> AttestationProvider:
    """Resolve ``"package.module:attribute"`` to a provider instance.

    The attribute may be a provider instance, a class or a zero-argument factory.
    """

    if not dotted:
        return UnsupportedAttestationProvider()
    module_name, sep, attr = dotted.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"attestation provider must look like 'module:attribute', got {dotted!r}")
    module = importlib.import_module(module_name)
    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part)
    provider = target() if isinstance(target, type) or (callable(target) and not isinstance(target, AttestationProvider)) else target
    if not isinstance(provider, AttestationProvider):
        raise TypeError(f"{dotted} does not provide an AttestationProvider")
    return provider

