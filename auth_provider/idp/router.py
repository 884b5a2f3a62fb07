"""
OAuth2 router: authorization, token and userinfo endpoints.
"""

import base64
import binascii
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from auth_provider.idp.errors import INVALID_REQUEST, UNSUPPORTED_GRANT_TYPE, OAuthError
from auth_provider.idp.origin import apply_cors, preflight_response
from auth_provider.idp.schemas import AuthorizeArgs
from auth_provider.idp.service import (
    authorize,
    exchange_authorization_code,
    get_user_info,
    refresh_access_token,
)
from auth_provider.ratelimit import enforce_rate_limit
from auth_provider.user.session import SessionReader, get_session_reader

router = APIRouter()

NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def _error_response(exc: OAuthError) -> JSONResponse:
    headers = dict(NO_STORE)
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer" if exc.error != "invalid_client" else "Basic"
    return JSONResponse(content=exc.to_dict(), status_code=exc.status_code, headers=headers)


def _basic_credentials(request: Request) -> tuple[Optional[str], Optional[str]]:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Basic "):
        return None, None
    try:
        decoded = base64.b64decode(auth_header[6:]).decode()
        client_id, client_secret = decoded.split(":", 1)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None, None
    return client_id or None, client_secret or None


@router.get("/authorize")
async def authorize_endpoint(
    request: Request,
    response_type: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    scope: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    code_challenge: Optional[str] = Query(None),
    code_challenge_method: Optional[str] = Query(None),
    session_reader: SessionReader = Depends(get_session_reader),
):
    """
    OAuth2 Authorization Endpoint.
    Sends the browser to sign-in or onboarding when needed, otherwise back to
    the client with a fresh authorization code.
    """
    args = AuthorizeArgs(
        response_type=response_type,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
    )
    try:
        user = await session_reader.read(request)
        location = await authorize(args, user, str(request.url))
    except OAuthError as exc:
        logger.warning(f"Authorization request rejected: {exc.error} ({exc.error_description})")
        return await apply_cors(_error_response(exc), request, client_id=args.client_id)
    return await apply_cors(
        RedirectResponse(url=location, status_code=307), request, client_id=args.client_id
    )


@router.post("/token", dependencies=[Depends(enforce_rate_limit)])
async def token_endpoint(
    request: Request,
    grant_type: Optional[str] = Form(None),
    code: Optional[str] = Form(None),
    redirect_uri: Optional[str] = Form(None),
    client_id: Optional[str] = Form(None),
    client_secret: Optional[str] = Form(None),
    refresh_token: Optional[str] = Form(None),
    code_verifier: Optional[str] = Form(None),
):
    """OAuth2 Token Endpoint."""
    # Form fields win over the Basic authorization header.
    header_client_id, header_client_secret = _basic_credentials(request)
    client_id = client_id or header_client_id
    client_secret = client_secret or header_client_secret

    try:
        if not grant_type or not client_id:
            raise OAuthError(INVALID_REQUEST, "Missing required parameters")
        if grant_type == "authorization_code":
            if not code or not redirect_uri:
                raise OAuthError(INVALID_REQUEST, "Missing code or redirect_uri")
            tokens = await exchange_authorization_code(
                code=code,
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri,
                code_verifier=code_verifier,
            )
        elif grant_type == "refresh_token":
            if not refresh_token:
                raise OAuthError(INVALID_REQUEST, "Missing refresh_token")
            tokens = await refresh_access_token(
                refresh_token=refresh_token,
                client_id=client_id,
                client_secret=client_secret,
            )
        else:
            raise OAuthError(UNSUPPORTED_GRANT_TYPE)
    except OAuthError as exc:
        logger.warning(f"Token request rejected: {exc.error} {client_id=} {grant_type=}")
        return await apply_cors(_error_response(exc), request, client_id=client_id)

    return await apply_cors(
        JSONResponse(content=tokens.model_dump(), headers=NO_STORE),
        request,
        client_id=client_id,
    )


@router.api_route("/userinfo", methods=["GET", "POST"])
async def userinfo_endpoint(request: Request):
    """OpenID Connect UserInfo Endpoint."""
    auth_header = request.headers.get("Authorization")
    try:
        if not auth_header or not auth_header.startswith("Bearer ") or not auth_header[7:].strip():
            raise OAuthError(
                INVALID_REQUEST, "Missing or invalid Authorization header", status_code=401
            )
        claims, client_id = await get_user_info(auth_header[7:].strip())
    except OAuthError as exc:
        return await apply_cors(_error_response(exc), request, match_origin=True)
    return await apply_cors(JSONResponse(content=claims), request, client_id=client_id)


@router.options("/authorize")
@router.options("/token")
@router.options("/userinfo")
async def oauth_preflight(request: Request):
    return await preflight_response(request)
