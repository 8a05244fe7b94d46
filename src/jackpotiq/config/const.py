# src/jackpotiq/config/const.py
from __future__ import annotations

# Hard defaults (changed by developers in code/build)
API_BASE_URL: str = "https://jackpot-iq-api-669259029283.us-central1.run.app/api/"
REQUEST_TIMEOUT: float = 30.0

CHALLENGE_PATH: str = "auth/app-attest-challenge"
VERIFY_PATH: str = "auth/verify-attestation"
TOKEN_PATH: str = "auth/token"

KEYRING_SERVICE: str = "com.jackpotiq.app"
STORE_BACKENDS: tuple[str, ...] = ("keyring", "file", "memory")
DEFAULT_STORE_PATH: str = "~/.jackpotiq/credentials.json"

# Fixed secure-store entry names; changing them orphans existing installs
TOKEN_ENTRY: str = "auth_token"
DEVICE_ID_ENTRY: str = "device_id"
