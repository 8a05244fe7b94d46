"""Runtime settings for the authentication client."""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping
import os

import yaml

from jackpotiq.config import const

__all__ = ["AuthSettings", "load_settings", "ENV_OVERRIDES"]


ENV_OVERRIDES: dict[str, str] = {
    "JACKPOTIQ_API_BASE": "base_url",
    "JACKPOTIQ_TIMEOUT": "timeout",
    "JACKPOTIQ_STORE": "store_backend",
    "JACKPOTIQ_STORE_PATH": "store_path",
    "JACKPOTIQ_ATTESTATION_PROVIDER": "attestation_provider",
    "JACKPOTIQ_LOG_LEVEL": "log_level",
}


@dataclass
class AuthSettings:
    base_url: str = const.API_BASE_URL
    timeout: float = const.REQUEST_TIMEOUT
    challenge_path: str = const.CHALLENGE_PATH
    verify_path: str = const.VERIFY_PATH
    token_path: str = const.TOKEN_PATH
    store_backend: str = "keyring"
    # Store default-friendly path; resolve via store_file()
    store_path: str = const.DEFAULT_STORE_PATH
    keyring_service: str = const.KEYRING_SERVICE
    # "module:attribute" of an AttestationProvider factory; None means unsupported
    attestation_provider: str | None = None
    log_level: str = "INFO"

    def store_file(self) -> Path:
        return Path(self.store_path or const.DEFAULT_STORE_PATH).expanduser()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AuthSettings":
        known = {f.name for f in fields(cls)}
        settings = cls(**{k: v for k, v in data.items() if k in known})
        settings._normalize()
        return settings

    def _normalize(self) -> None:
        try:
            self.timeout = float(self.timeout)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"timeout must be a number, got {self.timeout!r}") from exc
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        self.store_backend = str(self.store_backend or "keyring").lower()
        if self.store_backend not in const.STORE_BACKENDS:
            raise ValueError(f"unknown store backend {self.store_backend!r}; expected one of {', '.join(const.STORE_BACKENDS)}")
        self.log_level = str(self.log_level or "INFO").upper()
        if not self.attestation_provider:
            self.attestation_provider = None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid settings file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"settings file {path} must contain a mapping")
    # allow both a flat file and a nested "auth:" section
    section = data.get("auth")
    return dict(section) if isinstance(section, dict) else dict(data)


def load_settings(path: Path | str | None = None, *, environ: Mapping[str, str] | None = None) -> AuthSettings:
    """Build settings from an optional YAML file, then environment overrides."""

    env = os.environ if environ is None else environ
    payload: dict[str, Any] = {}
    if path is not None:
        candidate = Path(path).expanduser()
        if candidate.exists():
            payload.update(_read_yaml(candidate))
    for var, attr in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            payload[attr] = value
    return AuthSettings.from_mapping(payload)
