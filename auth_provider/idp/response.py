"""
Response models for the OAuth2 endpoints.
"""

from typing import Optional
from pydantic import BaseModel


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str
    scope: str


class UserInfoResponse(BaseModel):
    """
    Claims released for an access token; absent claims are omitted from the
    serialized body.
    """

    sub: str
    name: Optional[str] = None
    picture: Optional[str] = None
    email: Optional[str] = None
    email_verified: Optional[bool] = None
