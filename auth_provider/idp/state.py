"""
Opaque, URL-safe state payloads: JSON, then base64url without padding.
"""

import base64
import binascii
import json
import time
from typing import Any, Dict, Optional


class StateDecodeError(ValueError):
    pass


def encode_state(payload: Dict[str, Any]) -> str:
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_state(state: str) -> Any:
    if not isinstance(state, str) or not state:
        raise StateDecodeError("Empty state")
    if any(ch in state for ch in "+/="):
        raise StateDecodeError("State is not base64url")
    try:
        raw = base64.b64decode(state + "=" * (-len(state) % 4), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise StateDecodeError(f"Malformed base64url: {exc}") from exc
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StateDecodeError(f"Malformed JSON: {exc}") from exc


def generate_authorization_state(
    csrf_token: str, client_id: Optional[str] = None, return_to: Optional[str] = None
) -> str:
    """
    CSRF-bearing state for flows resuming authorization after sign-in.
    Absent optional fields are left out entirely rather than sent as null.
    """
    payload = {"csrfToken": csrf_token}
    if client_id:
        payload["clientId"] = client_id
    if return_to:
        payload["returnTo"] = return_to
    payload["timestamp"] = int(time.time() * 1000)
    return encode_state(payload)


def validate_authorization_state(state: str) -> Dict[str, Any]:
    try:
        payload = decode_state(state)
    except StateDecodeError:
        payload = None
    if not isinstance(payload, dict) or not payload.get("csrfToken"):
        raise StateDecodeError("Invalid state parameter")
    return payload
