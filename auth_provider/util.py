"""
Small shared helpers.
"""

import base64
import secrets
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Naive UTC "now", matching how every timestamp column is stored.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_secure_token(length: int = 32) -> str:
    """
    Opaque URL-safe token built from `length` random bytes.
    """
    return base64.urlsafe_b64encode(secrets.token_bytes(length)).rstrip(b"=").decode("ascii")


def get_client_ip(request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
