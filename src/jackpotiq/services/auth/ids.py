"""Identifier types used by the authentication flow.

Locally generated device identifiers are UUIDv7 values so that records created
by the identifier-only path sort by creation time on the server side.  The
generator follows the bit layout of draft-ietf-uuidrev-rfc4122bis section 5.2.
"""
from __future__ import annotations

import secrets
import time
import uuid
from typing import NewType

__all__ = [
    "DeviceId",
    "KeyId",
    "SessionToken",
    "generate_device_id",
    "uuid7",
]

DeviceId = NewType("DeviceId", str)
KeyId = NewType("KeyId", str)
SessionToken = NewType("SessionToken", str)


_UUID7_MASK_48 = (1 << 48) - 1
_UUID7_VERSION_BITS = 0x7
_UUID7_VARIANT_BITS = 0b10


def uuid7(ts: float | None = None) -> uuid.UUID:
    """Return a UUID version 7 value.

    Args:
        ts: Optional timestamp (seconds). When omitted the current time is used.
    """

    if ts is None:
        ts = time.time()

    unix_ts_ms = int(ts * 1000)
    if unix_ts_ms < 0 or unix_ts_ms > _UUID7_MASK_48:
        raise ValueError("timestamp out of range for UUIDv7")

    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    value = (unix_ts_ms & _UUID7_MASK_48) << 80
    value |= _UUID7_VERSION_BITS << 76
    value |= rand_a << 64
    value |= _UUID7_VARIANT_BITS << 62
    value |= rand_b

    return uuid.UUID(int=value)


def generate_device_id() -> DeviceId:
    return DeviceId(str(uuid7()))
