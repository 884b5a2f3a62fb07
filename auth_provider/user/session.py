"""
Resolution of the ambient signed-in user for a request.
"""

from functools import lru_cache
from typing import Optional, Protocol

from fastapi import Request
from pydantic import BaseModel
from auth_provider.config import settings
from auth_provider.database import get_session
from auth_provider.user.adapter import adapter
from auth_provider.user.repository import UserProfileRepository


class SessionUser(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    onboarding_completed: bool = False


class SessionReader(Protocol):
    async def read(self, request: Request) -> Optional[SessionUser]: ...


class CookieSessionReader:
    """
    Reads the session cookie and resolves it through the session adapter.
    """

    def __init__(self, cookie_name: str = None):
        self.cookie_name = cookie_name or settings.session_cookie_name

    async def read(self, request: Request) -> Optional[SessionUser]:
        token = request.cookies.get(self.cookie_name)
        if not token:
            return None
        found = await adapter.get_session_and_user(token)
        if not found:
            return None
        _, user = found
        async with get_session() as session:
            profile = await UserProfileRepository(session).find_by_user_id(int(user.id))
        return SessionUser(
            id=int(user.id),
            email=user.email,
            name=user.name,
            onboarding_completed=bool(profile and profile.onboarding_completed),
        )


@lru_cache()
def get_session_reader() -> SessionReader:
    return CookieSessionReader()
