"""
Unit test conftest: in-memory database, fake sessions and an HTTP client.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["REQUIRE_CLIENT_SECRET"] = "false"

from typing import Optional  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from auth_provider.database import Base, engine  # noqa: E402
import auth_provider.idp.schemas  # noqa: E402,F401
import auth_provider.mfa.schemas  # noqa: E402,F401
import auth_provider.user.schemas  # noqa: E402,F401

REDIRECT_URI = "https://app.example/callback"
ALLOWED_ORIGIN = "https://app.example"


class FakeSessionReader:
    """Session reader returning whatever user the test sets."""

    def __init__(self, user=None):
        self.user = user

    async def read(self, request) -> Optional[object]:
        return self.user


@pytest_asyncio.fixture(autouse=True)
async def database():
    from auth_provider.ratelimit import limiter

    limiter.reset()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def oauth_client():
    """Registered active client as (client_id, client_secret)."""
    from auth_provider.idp.service import register_client

    return await register_client(
        name="Test App",
        redirect_uris=[REDIRECT_URI],
        allowed_origin=ALLOWED_ORIGIN,
    )


async def make_user(email="alice@example.com", name="Alice", onboarded=True):
    from auth_provider.database import get_session
    from auth_provider.user.adapter import adapter
    from auth_provider.user.repository import UserProfileRepository
    from auth_provider.user.session import SessionUser
    from auth_provider.util import utcnow

    created = await adapter.create_user(
        email=email, name=name, image="https://cdn.example/a.png", email_verified=utcnow()
    )
    if onboarded:
        async with get_session() as session:
            await UserProfileRepository(session).upsert(int(created.id), onboarding_completed=True)
            await session.commit()
    return SessionUser(
        id=int(created.id), email=created.email, name=created.name, onboarding_completed=onboarded
    )


@pytest_asyncio.fixture
async def user():
    return await make_user()


@pytest.fixture
def session_reader():
    return FakeSessionReader()


@pytest_asyncio.fixture
async def http(session_reader):
    from auth_provider.main import app
    from auth_provider.user.session import get_session_reader

    app.dependency_overrides[get_session_reader] = lambda: session_reader
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
