"""
PKCE (RFC 7636) verification, S256 only.
"""

import base64
import hashlib
import secrets
from typing import Optional

from auth_provider.constants import PKCE_METHOD_S256


def compute_s256_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_code_verifier(
    code_challenge: str, code_challenge_method: Optional[str], code_verifier: Optional[str]
) -> bool:
    """
    Recompute the challenge from the verifier and compare; any method other
    than S256 (including a missing one) fails closed.
    """
    if not code_challenge or not code_verifier:
        return False
    if code_challenge_method != PKCE_METHOD_S256:
        return False
    try:
        expected = compute_s256_challenge(code_verifier)
    except UnicodeEncodeError:
        return False
    return secrets.compare_digest(expected.encode("ascii"), code_challenge.encode("utf-8"))
