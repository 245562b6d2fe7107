"""Tracking numbers, pickup codes and public tokens."""
from __future__ import annotations

import secrets
import string
import time


_ALPHANUMERIC = string.ascii_letters + string.digits

TRACKING_PREFIX = 'ABIS'
PUBLIC_TOKEN_BYTES = 10  # 20 hex characters


def _random_code(length: int) -> str:
    return ''.join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def generate_tracking_number() -> str:
    """Millisecond timestamp plus a short random suffix, e.g. ABIS-1718000000000-a1B2c3."""
    return f"{TRACKING_PREFIX}-{int(time.time() * 1000)}-{_random_code(6)}"


def generate_pickup_code(length: int = 6) -> str:
    return _random_code(length).upper()


def generate_public_token() -> str:
    return secrets.token_hex(PUBLIC_TOKEN_BYTES)
