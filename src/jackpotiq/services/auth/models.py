# services/auth/models.py
"""Request/response bodies of the authentication endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChallengeResponse(BaseModel):
    """GET challenge -> single-use nonce, base64 encoded."""
    challenge: str


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key_id: str = Field(alias="keyID")
    challenge: str
    attestation: str


class VerifyResponse(BaseModel):
    token: str = Field(min_length=1)
    device_id: Optional[str] = Field(default=None, alias="deviceId")


class TokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId")


class TokenResponse(BaseModel):
    token: str = Field(min_length=1)
