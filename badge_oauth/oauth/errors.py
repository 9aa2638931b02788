# badge_oauth/oauth/errors.py
from fastapi import HTTPException, status
from typing import Dict, Optional

REALM = "badge_oauth"


class OAuthError(HTTPException):
    """
    Base class for OAuth 2.0 errors. Subclasses set the RFC error code and
    default HTTP status; `to_dict()` gives the flat JSON body.
    """
    error: str = "invalid_request"
    default_status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        error_description: str | None = None,
        error_uri: str | None = None,
        status_code: int | None = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.error_description = error_description
        self.error_uri = error_uri
        super().__init__(
            status_code=status_code or self.default_status_code,
            detail=self.to_dict(),
            headers=headers
        )

    def to_dict(self) -> Dict[str, str]:
        """Error body according to RFC 6749 Section 5.2."""
        body = {"error": self.error}
        if self.error_description:
            body["error_description"] = self.error_description
        if self.error_uri:
            body["error_uri"] = self.error_uri
        return body


class InvalidRequestError(OAuthError):
    """Missing, repeated or malformed request parameter. (RFC 6749 - Section 5.2)"""
    error = "invalid_request"


class InvalidClientError(OAuthError):
    """
    Client authentication failed. Answered with 401 and a Basic challenge
    at the token and revocation endpoints; the authorization endpoint
    reports an unknown client with a plain 400.
    (RFC 6749 - Section 5.2)
    """
    error = "invalid_client"
    default_status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(
        self,
        error_description: str | None = "Client authentication failed.",
        error_uri: str | None = None,
        status_code: int = status.HTTP_401_UNAUTHORIZED
    ):
        headers = None
        if status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": f'Basic realm="{REALM}"'}
        super().__init__(error_description, error_uri, status_code=status_code, headers=headers)


class InvalidGrantError(OAuthError):
    """
    Authorization code, refresh token or resource owner credentials are
    unknown, expired, or bound to another client or redirect URI.
    (RFC 6749 - Section 5.2)
    """
    error = "invalid_grant"

    def __init__(
        self,
        error_description: str | None = "Invalid authorization grant or refresh token.",
        error_uri: str | None = None
    ):
        super().__init__(error_description, error_uri)


class UnauthorizedClientError(OAuthError):
    """Client may not use this grant type. (RFC 6749 - Section 5.2)"""
    error = "unauthorized_client"


class UnsupportedGrantTypeError(OAuthError):
    """(RFC 6749 - Section 5.2)"""
    error = "unsupported_grant_type"


class UnsupportedResponseTypeError(OAuthError):
    """Only response_type=code is served. (RFC 6749 - Section 4.1.2.1)"""
    error = "unsupported_response_type"


class InvalidScopeError(OAuthError):
    """None of the requested scopes is recognized. (RFC 6749 - Section 5.2)"""
    error = "invalid_scope"


class InvalidClientMetadataError(OAuthError):
    """Registration metadata rejected. (RFC 7591 - Section 3.2.2)"""
    error = "invalid_client_metadata"


class InvalidRedirectUriError(OAuthError):
    """A registered redirect URI is not absolute or carries a fragment. (RFC 7591 - Section 3.2.2)"""
    error = "invalid_redirect_uri"


def _bearer_challenge(error: str, error_description: str | None, scope: str | None = None) -> str:
    # RFC 6750 Section 3
    challenge = f'Bearer realm="{REALM}", error="{error}"'
    if scope:
        challenge += f', scope="{scope}"'
    if error_description:
        challenge += f', error_description="{error_description}"'
    return challenge


class InvalidTokenError(OAuthError):
    """Bearer token missing, expired, revoked or malformed. (RFC 6750 - Section 3.1)"""
    error = "invalid_token"
    default_status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, error_description: str | None = "The access token is invalid."):
        super().__init__(
            error_description,
            headers={"WWW-Authenticate": _bearer_challenge(self.error, error_description)}
        )


class InsufficientScopeError(OAuthError):
    """Bearer token lacks a scope the resource needs. (RFC 6750 - Section 3.1)"""
    error = "insufficient_scope"
    default_status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        required_scope: str | None = None,
        error_description: str | None = "The access token does not carry the required scope."
    ):
        super().__init__(
            error_description,
            headers={"WWW-Authenticate": _bearer_challenge(self.error, error_description, required_scope)}
        )


class ServerError(OAuthError):
    """Unexpected failure inside the authorization server."""
    error = "server_error"
    default_status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        error_description: str | None = "The authorization server encountered an internal error.",
        error_uri: str | None = None
    ):
        super().__init__(error_description, error_uri)
