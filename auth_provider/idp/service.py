"""
Service layer for the OAuth2 authorization server.
"""

from datetime import timedelta
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from loguru import logger
from auth_provider.config import settings
from auth_provider.constants import (
    ACCESS_TOKEN_EXPIRY_SECONDS,
    AUTH_CODE_EXPIRY_SECONDS,
    DEFAULT_CLIENT_SCOPES,
    PKCE_METHOD_S256,
    REFRESH_TOKEN_EXPIRY_DAYS,
    SUPPORTED_RESPONSE_TYPES,
)
from auth_provider.database import get_session
from auth_provider.idp.errors import (
    INVALID_CLIENT,
    INVALID_GRANT,
    INVALID_REQUEST,
    INVALID_SCOPE,
    INVALID_TOKEN,
    UNSUPPORTED_RESPONSE_TYPE,
    OAuthError,
)
from auth_provider.idp.pkce import verify_code_verifier
from auth_provider.idp.repository import (
    AccessTokenRepository,
    AuthorizationCodeRepository,
    ClientRepository,
    RefreshTokenRepository,
)
from auth_provider.idp.response import TokenResponse, UserInfoResponse
from auth_provider.idp.schemas import (
    AuthorizeArgs,
    OAuthAccessToken,
    OAuthAuthorizationCode,
    OAuthClient,
    OAuthRefreshToken,
    join_scopes,
)
from auth_provider.user.repository import UserRepository
from auth_provider.user.session import SessionUser
from auth_provider.util import generate_secure_token, utcnow


def with_query(uri: str, params: dict) -> str:
    """
    Append params to a URI, keeping any query it already carries.
    """
    parts = urlsplit(uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunsplit(parts._replace(query=urlencode(query)))


def validate_redirect_uri(client: OAuthClient, redirect_uri: str) -> bool:
    return client.is_valid_redirect_uri(redirect_uri)


def validate_scopes(client: OAuthClient, scopes: List[str]) -> bool:
    return client.validate_requested_scopes(scopes)[0]


async def get_active_client(client_id: str) -> Optional[OAuthClient]:
    if not client_id:
        return None
    async with get_session() as session:
        return await ClientRepository(session).find_active_by_id(client_id)


async def validate_client(client_id: str, client_secret: Optional[str] = None) -> Optional[OAuthClient]:
    """
    Load an active client; the secret, when given, must match.
    """
    client = await get_active_client(client_id)
    if client is None:
        return None
    if client_secret is not None and not client.verify_secret(client_secret):
        return None
    return client


async def register_client(
    name: str,
    redirect_uris: List[str],
    allowed_origin: Optional[str] = None,
    scopes=DEFAULT_CLIENT_SCOPES,
) -> Tuple[str, str]:
    """
    Provision a new client, returning (client_id, client_secret). The plain
    secret is only ever available here.
    """
    client_id = OAuthClient.generate_client_id()
    client_secret = OAuthClient.generate_secret()
    async with get_session() as session:
        await ClientRepository(session).create(
            OAuthClient(
                client_id=client_id,
                name=name,
                client_secret_hash=OAuthClient.hash_secret(client_secret),
                redirect_uris=list(redirect_uris),
                allowed_origin=allowed_origin,
                scopes=join_scopes(scopes),
                is_active=True,
            )
        )
        await session.commit()
    logger.info(f"Registered OAuth client {client_id} ({name})")
    return client_id, client_secret


async def deactivate_client(client_id: str) -> bool:
    """
    Deactivate a client and revoke its outstanding codes and tokens (refresh
    tokens go with their access tokens).
    """
    async with get_session() as session:
        deactivated = await ClientRepository(session).deactivate(client_id)
        if deactivated:
            await AuthorizationCodeRepository(session).delete_by_client_id(client_id)
            await AccessTokenRepository(session).delete_by_client_id(client_id)
        await session.commit()
    if deactivated:
        logger.info(f"Deactivated OAuth client {client_id}")
    return deactivated


async def create_authorization_code(
    client_id: str,
    user_id: int,
    redirect_uri: str,
    scopes: List[str],
    code_challenge: Optional[str] = None,
    code_challenge_method: Optional[str] = None,
) -> str:
    code = generate_secure_token()
    now = utcnow()
    async with get_session() as session:
        await AuthorizationCodeRepository(session).create(
            OAuthAuthorizationCode(
                code=code,
                client_id=client_id,
                user_id=user_id,
                redirect_uri=redirect_uri,
                scopes=join_scopes(scopes),
                code_challenge=code_challenge,
                code_challenge_method=code_challenge_method if code_challenge else None,
                expires=now + timedelta(seconds=AUTH_CODE_EXPIRY_SECONDS),
                created_at=now,
            )
        )
        await session.commit()
    logger.info(f"Issued authorization code for {client_id=} {user_id=}")
    return code


def _resume_url(path: str, request_url: str) -> str:
    return f"{settings.base_url.rstrip('/')}{path}?{urlencode({'callbackUrl': request_url})}"


async def authorize(
    args: AuthorizeArgs, user: Optional[SessionUser], request_url: str
) -> str:
    """
    Run the authorization request through validation and session branching,
    returning the URL to redirect to. Requests without a safe redirect target
    raise OAuthError; later failures are reported on the redirect itself.
    """
    if not args.response_type or not args.client_id or not args.redirect_uri:
        raise OAuthError(INVALID_REQUEST, "Missing required parameters")
    if args.response_type not in SUPPORTED_RESPONSE_TYPES:
        raise OAuthError(UNSUPPORTED_RESPONSE_TYPE, "Only authorization code flow is supported")

    client = await get_active_client(args.client_id)
    if client is None:
        raise OAuthError(INVALID_CLIENT, "Invalid client_id")
    if not validate_redirect_uri(client, args.redirect_uri):
        raise OAuthError(INVALID_REQUEST, "Invalid redirect_uri")

    scopes_ok, scopes = client.validate_requested_scopes(args.requested_scopes)
    if not scopes_ok:
        return with_query(
            args.redirect_uri,
            {
                "error": INVALID_SCOPE,
                "error_description": "Requested scope exceeds the scopes allowed for this client",
                "state": args.state,
            },
        )
    if args.code_challenge and args.code_challenge_method != PKCE_METHOD_S256:
        return with_query(
            args.redirect_uri,
            {
                "error": INVALID_REQUEST,
                "error_description": "Only the S256 code_challenge_method is supported",
                "state": args.state,
            },
        )

    if user is None:
        return _resume_url(settings.login_path, request_url)
    if not user.onboarding_completed:
        return _resume_url(settings.onboarding_path, request_url)

    code = await create_authorization_code(
        client_id=client.client_id,
        user_id=user.id,
        redirect_uri=args.redirect_uri,
        scopes=scopes,
        code_challenge=args.code_challenge,
        code_challenge_method=args.code_challenge_method,
    )
    return with_query(args.redirect_uri, {"code": code, "state": args.state})


async def _issue_token_pair(session, client_id: str, user_id: int, scopes: str) -> TokenResponse:
    now = utcnow()
    access_token = generate_secure_token()
    refresh_token = generate_secure_token()
    await AccessTokenRepository(session).create(
        OAuthAccessToken(
            token=access_token,
            client_id=client_id,
            user_id=user_id,
            scopes=scopes,
            expires=now + timedelta(seconds=ACCESS_TOKEN_EXPIRY_SECONDS),
            created_at=now,
        )
    )
    await RefreshTokenRepository(session).create(
        OAuthRefreshToken(
            token=refresh_token,
            access_token=access_token,
            client_id=client_id,
            user_id=user_id,
            scopes=scopes,
            expires=now + timedelta(days=REFRESH_TOKEN_EXPIRY_DAYS),
            created_at=now,
        )
    )
    return TokenResponse(
        access_token=access_token,
        expires_in=ACCESS_TOKEN_EXPIRY_SECONDS,
        refresh_token=refresh_token,
        scope=scopes,
    )


def _check_client_secret(client: OAuthClient, client_secret: Optional[str], required: bool):
    if client_secret:
        if not client.verify_secret(client_secret):
            logger.warning(f"Client secret mismatch for {client.client_id}")
            raise OAuthError(INVALID_CLIENT, "Invalid client credentials", status_code=401)
    elif required:
        raise OAuthError(INVALID_CLIENT, "Client authentication required", status_code=401)


async def exchange_authorization_code(
    code: str,
    client_id: str,
    client_secret: Optional[str],
    redirect_uri: str,
    code_verifier: Optional[str] = None,
) -> TokenResponse:
    """
    Redeem an authorization code. Every code-side failure is reported as the
    same invalid_grant so callers cannot tell which check failed.
    """
    client = await get_active_client(client_id)
    if client is None:
        raise OAuthError(INVALID_CLIENT, "Invalid client credentials", status_code=401)

    # A presented secret is checked before the code is looked up, so a wrong
    # secret never reveals whether the code exists.
    _check_client_secret(client, client_secret, required=settings.require_client_secret)

    async with get_session() as session:
        codes = AuthorizationCodeRepository(session)
        stored = await codes.find_valid(code, client_id, redirect_uri, utcnow())
        if stored is None:
            raise OAuthError(INVALID_GRANT)

        # PKCE-bound codes may come from public clients without a secret.
        if not stored.code_challenge and not client_secret:
            raise OAuthError(INVALID_CLIENT, "Client authentication required", status_code=401)
        if stored.code_challenge and not verify_code_verifier(
            stored.code_challenge, stored.code_challenge_method, code_verifier
        ):
            logger.warning(f"PKCE verification failed for {client_id=}")
            raise OAuthError(INVALID_GRANT)

        if not await codes.consume(code):
            raise OAuthError(INVALID_GRANT)

        tokens = await _issue_token_pair(session, client_id, stored.user_id, stored.scopes)
        await session.commit()

    logger.info(f"Exchanged authorization code for tokens: {client_id=} user_id={stored.user_id}")
    return tokens


async def refresh_access_token(
    refresh_token: str, client_id: str, client_secret: Optional[str]
) -> TokenResponse:
    """
    Rotate a refresh token: the old pair is deleted and a new pair minted with
    the same scopes, all in one transaction.
    """
    client = await get_active_client(client_id)
    if client is None:
        raise OAuthError(INVALID_CLIENT, "Invalid client credentials", status_code=401)
    _check_client_secret(client, client_secret, required=settings.require_client_secret)

    async with get_session() as session:
        refresh_tokens = RefreshTokenRepository(session)
        stored = await refresh_tokens.find_valid(refresh_token, client_id, utcnow())
        if stored is None:
            raise OAuthError(INVALID_GRANT)

        if not await refresh_tokens.delete(refresh_token):
            raise OAuthError(INVALID_GRANT)
        await AccessTokenRepository(session).delete(stored.access_token)

        tokens = await _issue_token_pair(session, client_id, stored.user_id, stored.scopes)
        await session.commit()

    logger.info(f"Rotated refresh token: {client_id=} user_id={stored.user_id}")
    return tokens


async def validate_access_token(token: str) -> Optional[OAuthAccessToken]:
    if not token:
        return None
    async with get_session() as session:
        return await AccessTokenRepository(session).find_valid(token, utcnow())


async def get_user_info(token: str) -> Tuple[dict, str]:
    """
    Claims for the token's user gated by granted scope, plus the client id the
    token was issued to.
    """
    access = await validate_access_token(token)
    if access is None:
        raise OAuthError(INVALID_TOKEN, "Invalid or expired access token", status_code=401)
    async with get_session() as session:
        user = await UserRepository(session).find_by_id(access.user_id)
    if user is None:
        raise OAuthError(INVALID_TOKEN, "Invalid or expired access token", status_code=401)

    scopes = access.scope_list
    claims = {"sub": str(user.id)}
    if "profile" in scopes:
        claims["name"] = user.name
        claims["picture"] = user.avatar_url
    if "email" in scopes:
        claims["email"] = user.email
        claims["email_verified"] = user.email_verified is not None
    return UserInfoResponse(**claims).model_dump(exclude_unset=True), access.client_id
