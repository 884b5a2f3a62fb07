"""
Issue and verify one-time email codes.
"""

import hashlib
import secrets
from datetime import timedelta
from urllib.parse import urlencode

from loguru import logger
from auth_provider.config import settings
from auth_provider.constants import MFA_CODE_EXPIRY_MINUTES
from auth_provider.database import generate_uuid, get_session
from auth_provider.mfa.mailer import get_mailer
from auth_provider.mfa.repository import EmailMfaCodeRepository
from auth_provider.mfa.schemas import EmailMfaCode
from auth_provider.util import utcnow


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def generate_code() -> str:
    """
    Six digits, leading zeros kept.
    """
    return f"{secrets.randbelow(1_000_000):06d}"


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def build_magic_link(email: str, code: str, callback_url: str) -> str:
    query = urlencode({"email": email, "code": code, "callbackUrl": callback_url})
    return f"{settings.base_url.rstrip('/')}{settings.email_verify_path}?{query}"


async def create_email_verification(email: str, callback_url: str = "/") -> str:
    """
    Replace any pending code for this address with a fresh one and email it.
    Delivery failures propagate: the caller has no other way to learn the
    code never reached the user. Returns the new code's id.
    """
    email = normalize_email(email)
    code = generate_code()
    now = utcnow()
    expires_at = now + timedelta(minutes=MFA_CODE_EXPIRY_MINUTES)
    code_id = generate_uuid()

    async with get_session() as session:
        repo = EmailMfaCodeRepository(session)
        await repo.delete_expired(now)
        await repo.delete_unconsumed_by_email(email)
        await repo.create(
            EmailMfaCode(
                id=code_id,
                email=email,
                code_hash=hash_code(code),
                expires_at=expires_at,
                attempt_count=0,
                created_at=now,
            )
        )
        await session.commit()

    magic_link = build_magic_link(email, code, callback_url or "/")
    if not settings.is_production:
        logger.info(f"Verification code for {email}: {code} ({magic_link})")

    await get_mailer().send_verification_email(
        email=email,
        code=code,
        magic_link=magic_link,
        expires_at=expires_at,
        expires_in_minutes=MFA_CODE_EXPIRY_MINUTES,
    )
    return code_id


async def verify_email_code(email: str, code: str, consume: bool = True) -> bool:
    """
    Check a submitted code against the latest pending one for the address.
    An expired code is burned on first check. Any storage failure counts as
    a failed verification.
    """
    email = normalize_email(email)
    if not email or not code:
        return False
    try:
        async with get_session() as session:
            repo = EmailMfaCodeRepository(session)
            stored = await repo.find_latest_unconsumed(email)
            if stored is None:
                return False

            now = utcnow()
            if stored.expires_at <= now:
                await repo.mark_consumed(stored.id, now)
                await session.commit()
                return False

            if not secrets.compare_digest(stored.code_hash, hash_code(code)):
                await repo.increment_attempt_count(stored.id)
                await session.commit()
                return False

            if consume:
                consumed = await repo.mark_consumed(stored.id, now)
                await session.commit()
                return consumed
            return True
    except Exception as exc:
        logger.error(f"Email code verification failed for {email}: {exc}")
        return False
