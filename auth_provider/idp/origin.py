"""
Per-client CORS decisions for the OAuth endpoints.
"""

from typing import Optional

from fastapi import Request, Response
from auth_provider.constants import CORS_ALLOW_HEADERS, CORS_ALLOW_METHODS
from auth_provider.database import get_session
from auth_provider.idp.repository import ClientRepository
from auth_provider.idp.schemas import OAuthClient


def origin_allowed(origin: Optional[str], client: Optional[OAuthClient]) -> bool:
    """
    Exact (scheme, host and port, case-sensitive) match against the client's
    single registered origin.
    """
    if not origin or client is None or not client.is_active or not client.allowed_origin:
        return False
    return origin == client.allowed_origin


def cors_headers(origin: Optional[str], client: Optional[OAuthClient]) -> dict:
    if not origin_allowed(origin, client):
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


def preflight_headers(origin: Optional[str], client: Optional[OAuthClient]) -> dict:
    headers = {
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }
    headers.update(cors_headers(origin, client))
    return headers


async def resolve_cors_client(
    origin: Optional[str], client_id: Optional[str] = None
) -> Optional[OAuthClient]:
    """
    The requesting client when one is named, otherwise whichever active client
    registered this origin (preflights and unauthenticated requests).
    """
    if not origin:
        return None
    async with get_session() as session:
        repo = ClientRepository(session)
        if client_id:
            return await repo.find_active_by_id(client_id)
        return await repo.find_active_by_origin(origin)


async def apply_cors(
    response: Response,
    request: Request,
    client: Optional[OAuthClient] = None,
    client_id: Optional[str] = None,
    match_origin: bool = False,
) -> Response:
    """
    Attach CORS headers for the requesting client. Without a known client,
    `match_origin` falls back to any active client registered for the origin.
    """
    origin = request.headers.get("Origin")
    if not origin:
        return response
    if client is None and (client_id or match_origin):
        client = await resolve_cors_client(origin, client_id)
    for key, value in cors_headers(origin, client).items():
        response.headers[key] = value
    return response


async def preflight_response(request: Request) -> Response:
    origin = request.headers.get("Origin")
    client = await resolve_cors_client(origin)
    return Response(status_code=204, headers=preflight_headers(origin, client))
