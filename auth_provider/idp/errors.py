"""
OAuth2 error type carrying the canonical error code.
"""

from typing import Optional

INVALID_REQUEST = "invalid_request"
INVALID_CLIENT = "invalid_client"
INVALID_GRANT = "invalid_grant"
INVALID_SCOPE = "invalid_scope"
INVALID_TOKEN = "invalid_token"
UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"


class OAuthError(Exception):
    def __init__(
        self,
        error: str,
        error_description: Optional[str] = None,
        status_code: int = 400,
    ):
        super().__init__(error_description or error)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.error_description:
            body["error_description"] = self.error_description
        return body
