"""
Application entry point.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from auth_provider.config import settings
from auth_provider.database import create_tables, engine
from auth_provider.idp.router import router as idp_router
from auth_provider.mfa.router import router as mfa_router
from auth_provider.sweeper import run_sweeper
from auth_provider.user.router import router as user_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    sweeper = None
    if settings.sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(run_sweeper(settings.sweep_interval_seconds))
    logger.info(f"Auth provider started ({settings.environment})")
    yield
    if sweeper:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title="auth-provider", lifespan=lifespan)
    app.include_router(idp_router, prefix="/api/oauth", tags=["OAuth2"])
    app.include_router(mfa_router, prefix="/api", tags=["Email verification"])
    app.include_router(user_router, prefix="/api", tags=["Session"])

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    return app


app = create_app()
