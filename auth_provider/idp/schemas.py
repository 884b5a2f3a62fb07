"""
Database models for the OAuth2 authorization server.

Scopes are stored as a single space-delimited string on every grant artifact,
and redirect URIs as a JSON list on the client. Authorization codes, access
tokens and refresh tokens are opaque random strings used directly as primary
keys; a grant artifact is consumed by deleting its row.
"""

import secrets
from typing import List, Optional, Tuple

from passlib.hash import argon2
from pydantic import BaseModel, field_validator
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
from auth_provider.constants import DEFAULT_CLIENT_SCOPES
from auth_provider.database import Base
from auth_provider.util import generate_secure_token


def split_scopes(scope: Optional[str]) -> List[str]:
    return [s for s in (scope or "").split(" ") if s]


def join_scopes(scopes) -> str:
    return " ".join(scopes)


class ScopedMixin:
    scopes = Column(Text, nullable=False, default="")

    @property
    def scope_list(self) -> List[str]:
        return split_scopes(self.scopes)


class OAuthClient(Base):
    __tablename__ = "oauth_clients"

    client_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    client_secret_hash = Column(String, nullable=False)
    redirect_uris = Column(JSON, nullable=False, default=list)
    allowed_origin = Column(String, nullable=True, index=True)
    scopes = Column(Text, nullable=False, default=" ".join(DEFAULT_CLIENT_SCOPES))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())

    @property
    def scope_list(self) -> List[str]:
        return split_scopes(self.scopes)

    @staticmethod
    def generate_client_id() -> str:
        return f"client_{secrets.token_hex(16)}"

    @staticmethod
    def generate_secret() -> str:
        return generate_secure_token(32)

    @staticmethod
    def hash_secret(secret: str) -> str:
        return argon2.hash(secret)

    def verify_secret(self, secret: str) -> bool:
        if not secret or not self.client_secret_hash:
            return False
        try:
            return argon2.verify(secret, self.client_secret_hash)
        except (ValueError, TypeError):
            return False

    def is_valid_redirect_uri(self, uri: str) -> bool:
        """
        Exact, case-sensitive membership in the registered set.
        """
        return uri in (self.redirect_uris or [])

    def validate_requested_scopes(self, requested: List[str]) -> Tuple[bool, List[str]]:
        """
        An empty request resolves to the client's full scope set, otherwise
        every requested scope must be allowed for this client.
        """
        allowed = self.scope_list
        if not requested:
            return True, allowed
        if all(scope in allowed for scope in requested):
            return True, requested
        return False, requested


class OAuthAuthorizationCode(ScopedMixin, Base):
    __tablename__ = "oauth_authorization_codes"

    code = Column(String, primary_key=True)
    client_id = Column(
        String, ForeignKey("oauth_clients.client_id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    redirect_uri = Column(String, nullable=False)
    code_challenge = Column(String, nullable=True)
    code_challenge_method = Column(String, nullable=True)
    expires = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())


class OAuthAccessToken(ScopedMixin, Base):
    __tablename__ = "oauth_access_tokens"

    token = Column(String, primary_key=True)
    client_id = Column(
        String, ForeignKey("oauth_clients.client_id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())


class OAuthRefreshToken(ScopedMixin, Base):
    __tablename__ = "oauth_refresh_tokens"

    token = Column(String, primary_key=True)
    access_token = Column(
        String,
        ForeignKey("oauth_access_tokens.token", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    client_id = Column(
        String, ForeignKey("oauth_clients.client_id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())


class AuthorizeArgs(BaseModel):
    """
    Query parameters accepted by the authorization endpoint.
    """

    response_type: Optional[str] = None
    client_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    scope: Optional[str] = None
    state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None

    @field_validator("*")
    @classmethod
    def empty_as_missing(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def requested_scopes(self) -> List[str]:
        return split_scopes(self.scope)
