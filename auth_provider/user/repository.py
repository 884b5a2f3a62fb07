"""
Repositories for users, profiles, sessions and verification tokens.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from auth_provider.database.repository import Repository
from auth_provider.user.schemas import Session, User, UserProfile, VerificationToken


class UserRepository(Repository):
    async def create(self, user: User) -> User:
        return await self._add(user)

    async def find_by_id(self, user_id: int) -> Optional[User]:
        return (
            await self.session.execute(select(User).where(User.id == user_id))
        ).scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[User]:
        return (
            await self.session.execute(select(User).where(User.email == email))
        ).scalar_one_or_none()

    async def update(self, user_id: int, **values) -> Optional[User]:
        if values:
            await self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        user = await self.find_by_id(user_id)
        if user is not None:
            await self.session.refresh(user)
        return user

    async def delete(self, user_id: int) -> bool:
        return await self._delete_where(delete(User).where(User.id == user_id)) == 1


class UserProfileRepository(Repository):
    async def find_by_user_id(self, user_id: int) -> Optional[UserProfile]:
        return (
            await self.session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
        ).scalar_one_or_none()

    async def create(self, user_id: int, onboarding_completed: bool = False) -> UserProfile:
        return await self._add(
            UserProfile(user_id=user_id, onboarding_completed=onboarding_completed)
        )

    async def upsert(self, user_id: int, **values) -> UserProfile:
        profile = await self.find_by_user_id(user_id)
        if profile is None:
            return await self._add(UserProfile(user_id=user_id, **values))
        for key, value in values.items():
            setattr(profile, key, value)
        await self.session.flush()
        return profile

    async def delete_by_user_id(self, user_id: int) -> int:
        return await self._delete_where(delete(UserProfile).where(UserProfile.user_id == user_id))


class SessionRepository(Repository):
    async def create(self, session_token: str, user_id: int, expires: datetime) -> Session:
        return await self._add(Session(session_token=session_token, user_id=user_id, expires=expires))

    async def find_by_token(self, session_token: str) -> Optional[Session]:
        return (
            await self.session.execute(
                select(Session).where(Session.session_token == session_token)
            )
        ).scalar_one_or_none()

    async def update_expiry(self, session_token: str, expires: datetime) -> Optional[Session]:
        found = await self.find_by_token(session_token)
        if found is None:
            return None
        found.expires = expires
        await self.session.flush()
        return found

    async def delete(self, session_token: str) -> bool:
        return (
            await self._delete_where(delete(Session).where(Session.session_token == session_token))
            == 1
        )

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete_where(delete(Session).where(Session.expires <= now))


class VerificationTokenRepository(Repository):
    async def create(self, identifier: str, token: str, expires: datetime) -> VerificationToken:
        return await self._add(
            VerificationToken(identifier=identifier, token=token, expires=expires)
        )

    async def use(self, identifier: str, token: str) -> Optional[dict]:
        """
        Atomically delete and return the token, None if it did not exist.
        """
        result = await self.session.execute(
            delete(VerificationToken)
            .where(VerificationToken.identifier == identifier, VerificationToken.token == token)
            .returning(
                VerificationToken.identifier, VerificationToken.token, VerificationToken.expires
            )
            .execution_options(synchronize_session=False)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete_where(delete(VerificationToken).where(VerificationToken.expires <= now))
