"""
Lifetimes and fixed protocol values.
"""

AUTH_CODE_EXPIRY_SECONDS = 600
ACCESS_TOKEN_EXPIRY_SECONDS = 3600
REFRESH_TOKEN_EXPIRY_DAYS = 30
MFA_CODE_EXPIRY_MINUTES = 10

DEFAULT_CLIENT_SCOPES = ("openid", "profile", "email")
SUPPORTED_RESPONSE_TYPES = ("code",)
PKCE_METHOD_S256 = "S256"

CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization"
