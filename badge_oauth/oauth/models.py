# badge_oauth/oauth/models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClientMetadata(BaseModel):
    """Client metadata submitted for dynamic registration (RFC 7591 Section 2)."""
    model_config = ConfigDict(extra="ignore")

    client_name: Optional[str] = None
    client_uri: Optional[str] = None
    logo_uri: Optional[str] = None
    tos_uri: Optional[str] = None
    policy_uri: Optional[str] = None
    software_id: Optional[str] = None
    software_version: Optional[str] = None
    redirect_uris: Optional[List[str]] = None
    token_endpoint_auth_method: str = "client_secret_basic"
    grant_types: List[str] = Field(default_factory=lambda: ["authorization_code", "refresh_token"])
    response_types: List[str] = Field(default_factory=lambda: ["code"])
    scope: Optional[str] = None


class ClientRegistration(BaseModel):
    """A registered OAuth client, returned verbatim by the registration endpoint."""
    client_id: str
    client_secret: str
    client_name: str
    client_uri: Optional[str] = None
    logo_uri: Optional[str] = None
    tos_uri: Optional[str] = None
    policy_uri: Optional[str] = None
    software_id: Optional[str] = None
    software_version: Optional[str] = None
    redirect_uris: List[str]
    token_endpoint_auth_method: str = "client_secret_basic"
    grant_types: List[str] = Field(default_factory=lambda: ["authorization_code", "refresh_token"])
    response_types: List[str] = Field(default_factory=lambda: ["code"])
    scope: str = ""
    client_id_issued_at: int
    client_secret_expires_at: int


class AuthRequest(BaseModel):
    """OAuth authorization request parameters as per RFC 6749 and RFC 7636."""
    response_type: Optional[str] = None
    client_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    scope: str = Field(default="", description="Space-separated list of requested scopes.")
    state: Optional[str] = Field(
        default=None,
        description="An opaque value used to maintain state between the request and callback."
    )
    code_challenge: Optional[str] = Field(default=None, description="PKCE code challenge.")
    code_challenge_method: str = Field(
        default="S256",
        description="PKCE code challenge method ('S256' or 'plain')."
    )


class TokenRequest(BaseModel):
    """Token endpoint parameters for every supported grant type."""
    model_config = ConfigDict(extra="ignore")

    grant_type: Optional[str] = None
    code: Optional[str] = None
    redirect_uri: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    code_verifier: Optional[str] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class RevocationRequest(BaseModel):
    """Token revocation parameters as per RFC 7009 Section 2.1."""
    model_config = ConfigDict(extra="ignore")

    token: Optional[str] = None
    token_type_hint: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None


class TokenResponse(BaseModel):
    """OAuth token response structure as per RFC 6749."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: Optional[str] = None
    scope: str = ""


class AuthCodeData(BaseModel):
    """Internal representation of authorization code data for storage and validation."""
    code: str
    client_id: str
    redirect_uri: str  # kept as a plain string, matching is exact
    scope: str = ""
    state: str = ""
    code_challenge: str
    code_challenge_method: str
    user_id: str
    expires_at: datetime
    issued_at: datetime = Field(default_factory=utc_now)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) > self.expires_at


class RefreshTokenData(BaseModel):
    """Internal representation of refresh token data for token renewal."""
    token: str
    client_id: str
    user_id: str
    scope: str = ""  # scopes originally granted
    expires_at: datetime
    issued_at: datetime = Field(default_factory=utc_now)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) > self.expires_at


class AccessTokenPayload(BaseModel):
    """Claims carried by a verified bearer access token."""
    sub: str
    name: str
    scope: List[str] = Field(default_factory=list)
    iat: int
    exp: int
    jti: Optional[str] = None


class WellKnownOAuthMetadata(BaseModel):
    """OAuth 2.0 server metadata as defined in RFC 8414 for discovery endpoint."""
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    revocation_endpoint: str
    scopes_supported: List[str]
    response_types_supported: List[str] = ["code"]
    grant_types_supported: List[str] = ["authorization_code", "refresh_token", "password"]
    token_endpoint_auth_methods_supported: List[str] = ["client_secret_basic", "client_secret_post"]
    revocation_endpoint_auth_methods_supported: List[str] = ["client_secret_basic", "client_secret_post"]
    code_challenge_methods_supported: List[str] = ["S256", "plain"]
