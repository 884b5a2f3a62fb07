"""
Bridge exposing user, session and verification-token primitives to the
session management layer. User ids cross this boundary as strings and a
missing email is represented as an empty string.
"""

from datetime import datetime
from typing import Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel
from auth_provider.database import get_session
from auth_provider.user.repository import (
    SessionRepository,
    UserProfileRepository,
    UserRepository,
    VerificationTokenRepository,
)
from auth_provider.user.schemas import Session, User
from auth_provider.util import utcnow

USER_FIELDS = {
    "email": "email",
    "emailVerified": "email_verified",
    "name": "name",
    "image": "avatar_url",
}


class AdapterUser(BaseModel):
    id: str
    email: str
    emailVerified: Optional[datetime] = None
    name: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "AdapterUser":
        return cls(
            id=str(user.id),
            email=user.email or "",
            emailVerified=user.email_verified,
            name=user.name,
            image=user.avatar_url,
        )


class AdapterSession(BaseModel):
    sessionToken: str
    userId: str
    expires: datetime

    @classmethod
    def from_session(cls, session: Session) -> "AdapterSession":
        return cls(
            sessionToken=session.session_token,
            userId=str(session.user_id),
            expires=session.expires,
        )


class VerificationTokenData(BaseModel):
    identifier: str
    token: str
    expires: datetime


def _user_id(value: Union[str, int]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SessionAdapter:
    async def create_user(
        self,
        email: Optional[str],
        name: Optional[str] = None,
        image: Optional[str] = None,
        email_verified: Optional[datetime] = None,
    ) -> AdapterUser:
        """
        Create the user along with an empty profile (onboarding pending).
        """
        async with get_session() as session:
            user = await UserRepository(session).create(
                User(
                    email=email or None,
                    name=name,
                    avatar_url=image,
                    email_verified=email_verified,
                )
            )
            await UserProfileRepository(session).create(user.id, onboarding_completed=False)
            await session.commit()
            logger.info(f"Created user {user.id}")
            return AdapterUser.from_user(user)

    async def get_user(self, user_id: Union[str, int]) -> Optional[AdapterUser]:
        if (uid := _user_id(user_id)) is None:
            return None
        async with get_session() as session:
            user = await UserRepository(session).find_by_id(uid)
            return AdapterUser.from_user(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[AdapterUser]:
        if not email:
            return None
        async with get_session() as session:
            user = await UserRepository(session).find_by_email(email)
            return AdapterUser.from_user(user) if user else None

    async def update_user(self, user_id: Union[str, int], **fields) -> Optional[AdapterUser]:
        if (uid := _user_id(user_id)) is None:
            return None
        values = {USER_FIELDS[key]: value for key, value in fields.items() if key in USER_FIELDS}
        if "email" in values:
            values["email"] = values["email"] or None
        async with get_session() as session:
            user = await UserRepository(session).update(uid, **values)
            await session.commit()
            return AdapterUser.from_user(user) if user else None

    async def delete_user(self, user_id: Union[str, int]) -> bool:
        if (uid := _user_id(user_id)) is None:
            return False
        async with get_session() as session:
            await UserProfileRepository(session).delete_by_user_id(uid)
            deleted = await UserRepository(session).delete(uid)
            await session.commit()
        if deleted:
            logger.info(f"Deleted user {uid}")
        return deleted

    async def create_session(
        self, session_token: str, user_id: Union[str, int], expires: datetime
    ) -> AdapterSession:
        async with get_session() as session:
            created = await SessionRepository(session).create(
                session_token, _user_id(user_id), expires
            )
            await session.commit()
            return AdapterSession.from_session(created)

    async def get_session_and_user(
        self, session_token: str
    ) -> Optional[Tuple[AdapterSession, AdapterUser]]:
        """
        Fetch a session with its owner; an expired session is deleted and
        reported as missing.
        """
        if not session_token:
            return None
        async with get_session() as session:
            sessions = SessionRepository(session)
            found = await sessions.find_by_token(session_token)
            if found is None:
                return None
            if found.expires <= utcnow():
                await sessions.delete(session_token)
                await session.commit()
                return None
            user = await UserRepository(session).find_by_id(found.user_id)
            if user is None:
                return None
            return AdapterSession.from_session(found), AdapterUser.from_user(user)

    async def update_session(
        self, session_token: str, expires: Optional[datetime] = None
    ) -> Optional[AdapterSession]:
        if expires is None:
            return None
        async with get_session() as session:
            updated = await SessionRepository(session).update_expiry(session_token, expires)
            await session.commit()
            return AdapterSession.from_session(updated) if updated else None

    async def delete_session(self, session_token: str) -> bool:
        async with get_session() as session:
            deleted = await SessionRepository(session).delete(session_token)
            await session.commit()
            return deleted

    async def create_verification_token(
        self, identifier: str, token: str, expires: datetime
    ) -> VerificationTokenData:
        async with get_session() as session:
            await VerificationTokenRepository(session).create(identifier, token, expires)
            await session.commit()
        return VerificationTokenData(identifier=identifier, token=token, expires=expires)

    async def use_verification_token(
        self, identifier: str, token: str
    ) -> Optional[VerificationTokenData]:
        """
        Single use: the token is deleted by the same statement that reads it.
        """
        async with get_session() as session:
            row = await VerificationTokenRepository(session).use(identifier, token)
            await session.commit()
        return VerificationTokenData(**row) if row else None


adapter = SessionAdapter()
