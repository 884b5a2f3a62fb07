"""
Email sign-in and onboarding built on the session adapter.
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple

from loguru import logger
from auth_provider.config import settings
from auth_provider.database import get_session
from auth_provider.mfa.service import normalize_email, verify_email_code
from auth_provider.user.adapter import AdapterUser, adapter
from auth_provider.user.repository import UserProfileRepository, UserRepository
from auth_provider.user.schemas import OnboardingArgs
from auth_provider.util import generate_secure_token, utcnow


class SignInResult:
    """Outcome of a successful email sign-in."""

    def __init__(self, session_token: str, expires: datetime, user: AdapterUser, onboarding_completed: bool):
        self.session_token = session_token
        self.expires = expires
        self.user = user
        self.onboarding_completed = onboarding_completed


async def sign_in_with_email(email: str, code: str) -> Optional[SignInResult]:
    """
    Redeem an email code and open a session, creating the user on first
    sign-in.
    """
    email = normalize_email(email)
    if not await verify_email_code(email, code, consume=True):
        return None

    now = utcnow()
    user = await adapter.get_user_by_email(email)
    if user is None:
        user = await adapter.create_user(email=email, email_verified=now)
    elif user.emailVerified is None:
        user = await adapter.update_user(user.id, emailVerified=now)

    session_token = generate_secure_token()
    expires = now + timedelta(days=settings.session_max_age_days)
    await adapter.create_session(session_token, user.id, expires)

    async with get_session() as session:
        profile = await UserProfileRepository(session).find_by_user_id(int(user.id))
    logger.info(f"User {user.id} signed in with email code")
    return SignInResult(
        session_token=session_token,
        expires=expires,
        user=user,
        onboarding_completed=bool(profile and profile.onboarding_completed),
    )


async def sign_out(session_token: str) -> bool:
    if not session_token:
        return False
    return await adapter.delete_session(session_token)


async def complete_onboarding(user_id: int, args: OnboardingArgs) -> Tuple[str, bool]:
    first_name, last_name = args.split_full_name()
    async with get_session() as session:
        await UserRepository(session).update(
            user_id, name=args.name, first_name=first_name, last_name=last_name
        )
        profile = await UserProfileRepository(session).upsert(user_id, onboarding_completed=True)
        await session.commit()
    logger.info(f"User {user_id} completed onboarding")
    return args.name, profile.onboarding_completed
