"""
Opportunistic deletion of already-expired rows.
"""

import asyncio
from typing import Dict

from loguru import logger
from auth_provider.database import get_session
from auth_provider.idp.repository import (
    AccessTokenRepository,
    AuthorizationCodeRepository,
    RefreshTokenRepository,
)
from auth_provider.mfa.repository import EmailMfaCodeRepository
from auth_provider.ratelimit import limiter
from auth_provider.user.repository import SessionRepository, VerificationTokenRepository
from auth_provider.util import utcnow


async def sweep_expired() -> Dict[str, int]:
    now = utcnow()
    async with get_session() as session:
        # Refresh tokens go before access tokens, so an access token whose
        # refresh token just expired is released in the same pass.
        counts = {
            "authorization_codes": await AuthorizationCodeRepository(session).delete_expired(now),
            "refresh_tokens": await RefreshTokenRepository(session).delete_expired(now),
            "access_tokens": await AccessTokenRepository(session).delete_expired(now),
            "email_mfa_codes": await EmailMfaCodeRepository(session).delete_expired(now),
            "sessions": await SessionRepository(session).delete_expired(now),
            "verification_tokens": await VerificationTokenRepository(session).delete_expired(now),
        }
        await session.commit()
    if any(counts.values()):
        logger.info(f"Swept expired rows: {counts}")
    return counts


async def run_sweeper(interval: int):
    """
    Sweep forever every `interval` seconds; failures are logged and retried
    on the next tick.
    """
    while True:
        await asyncio.sleep(interval)
        limiter.cleanup()
        try:
            await sweep_expired()
        except Exception as exc:
            logger.error(f"Expiry sweep failed: {exc}")
