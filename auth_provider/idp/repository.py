"""
Repositories for OAuth clients and the three grant artifacts.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, exists, select, update
from auth_provider.database.repository import Repository
from auth_provider.idp.schemas import (
    OAuthAccessToken,
    OAuthAuthorizationCode,
    OAuthClient,
    OAuthRefreshToken,
)


class ClientRepository(Repository):
    async def find_active_by_id(self, client_id: str) -> Optional[OAuthClient]:
        return (
            await self.session.execute(
                select(OAuthClient).where(
                    OAuthClient.client_id == client_id, OAuthClient.is_active.is_(True)
                )
            )
        ).scalar_one_or_none()

    async def find_active_by_origin(self, origin: str) -> Optional[OAuthClient]:
        return (
            (
                await self.session.execute(
                    select(OAuthClient)
                    .where(OAuthClient.allowed_origin == origin, OAuthClient.is_active.is_(True))
                    .limit(1)
                )
            )
            .scalars()
            .first()
        )

    async def create(self, client: OAuthClient) -> OAuthClient:
        return await self._add(client)

    async def deactivate(self, client_id: str) -> bool:
        result = await self.session.execute(
            update(OAuthClient)
            .where(OAuthClient.client_id == client_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1


class AuthorizationCodeRepository(Repository):
    async def create(self, code: OAuthAuthorizationCode) -> OAuthAuthorizationCode:
        return await self._add(code)

    async def find_by_code(self, code: str) -> Optional[OAuthAuthorizationCode]:
        return (
            await self.session.execute(
                select(OAuthAuthorizationCode).where(OAuthAuthorizationCode.code == code)
            )
        ).scalar_one_or_none()

    async def find_valid(
        self, code: str, client_id: str, redirect_uri: str, now: datetime
    ) -> Optional[OAuthAuthorizationCode]:
        """
        Match on the (code, client, redirect) triple and an unexpired row.
        """
        return (
            await self.session.execute(
                select(OAuthAuthorizationCode).where(
                    OAuthAuthorizationCode.code == code,
                    OAuthAuthorizationCode.client_id == client_id,
                    OAuthAuthorizationCode.redirect_uri == redirect_uri,
                    OAuthAuthorizationCode.expires > now,
                )
            )
        ).scalar_one_or_none()

    async def consume(self, code: str) -> bool:
        """
        Delete the code, True only if this call removed exactly one row.
        """
        return (
            await self._delete_where(
                delete(OAuthAuthorizationCode).where(OAuthAuthorizationCode.code == code)
            )
            == 1
        )

    async def delete_by_client_id(self, client_id: str) -> int:
        return await self._delete_where(
            delete(OAuthAuthorizationCode).where(OAuthAuthorizationCode.client_id == client_id)
        )

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete_where(
            delete(OAuthAuthorizationCode).where(OAuthAuthorizationCode.expires <= now)
        )


class AccessTokenRepository(Repository):
    async def create(self, token: OAuthAccessToken) -> OAuthAccessToken:
        return await self._add(token)

    async def find_by_token(self, token: str) -> Optional[OAuthAccessToken]:
        return (
            await self.session.execute(
                select(OAuthAccessToken).where(OAuthAccessToken.token == token)
            )
        ).scalar_one_or_none()

    async def find_valid(self, token: str, now: datetime) -> Optional[OAuthAccessToken]:
        return (
            await self.session.execute(
                select(OAuthAccessToken).where(
                    OAuthAccessToken.token == token, OAuthAccessToken.expires > now
                )
            )
        ).scalar_one_or_none()

    async def delete(self, token: str) -> bool:
        return (
            await self._delete_where(
                delete(OAuthAccessToken).where(OAuthAccessToken.token == token)
            )
            == 1
        )

    async def delete_by_client_id(self, client_id: str) -> int:
        return await self._delete_where(
            delete(OAuthAccessToken).where(OAuthAccessToken.client_id == client_id)
        )

    async def delete_expired(self, now: datetime) -> int:
        """
        Expired access tokens still backing a live refresh token are kept,
        deleting them would cascade into the refresh token.
        """
        live_refresh = exists().where(
            OAuthRefreshToken.access_token == OAuthAccessToken.token,
            OAuthRefreshToken.expires > now,
        )
        return await self._delete_where(
            delete(OAuthAccessToken).where(OAuthAccessToken.expires <= now, ~live_refresh)
        )


class RefreshTokenRepository(Repository):
    async def create(self, token: OAuthRefreshToken) -> OAuthRefreshToken:
        return await self._add(token)

    async def find_by_token(self, token: str) -> Optional[OAuthRefreshToken]:
        return (
            await self.session.execute(
                select(OAuthRefreshToken).where(OAuthRefreshToken.token == token)
            )
        ).scalar_one_or_none()

    async def find_valid(
        self, token: str, client_id: str, now: datetime
    ) -> Optional[OAuthRefreshToken]:
        return (
            await self.session.execute(
                select(OAuthRefreshToken).where(
                    OAuthRefreshToken.token == token,
                    OAuthRefreshToken.client_id == client_id,
                    OAuthRefreshToken.expires > now,
                )
            )
        ).scalar_one_or_none()

    async def delete(self, token: str) -> bool:
        return (
            await self._delete_where(
                delete(OAuthRefreshToken).where(OAuthRefreshToken.token == token)
            )
            == 1
        )

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete_where(
            delete(OAuthRefreshToken).where(OAuthRefreshToken.expires <= now)
        )
