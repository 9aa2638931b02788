# badge_oauth/oauth/__init__.py
# OAuth 2.0 Authorization Server Package for Open Badges v3.0

# Core OAuth models and data structures
from .models import (
    ClientMetadata,
    ClientRegistration,
    AuthRequest,
    TokenRequest,
    RevocationRequest,
    TokenResponse,
    AuthCodeData,
    RefreshTokenData,
    AccessTokenPayload,
    WellKnownOAuthMetadata
)

# OAuth error types and exception handling
from .errors import (
    OAuthError,
    InvalidRequestError,
    InvalidClientError,
    InvalidGrantError,
    UnauthorizedClientError,
    UnsupportedGrantTypeError,
    UnsupportedResponseTypeError,
    InvalidScopeError,
    InvalidClientMetadataError,
    InvalidRedirectUriError,
    ServerError,
    InvalidTokenError,
    InsufficientScopeError
)

# Open Badges scope vocabulary
from .scopes import (
    RECOGNIZED_SCOPES,
    PASSWORD_GRANT_SCOPES,
    filter_recognized_scopes,
)

# PKCE (Proof Key for Code Exchange) utilities
from .pkce import (
    generate_pkce_code_verifier,
    generate_pkce_code_challenge,
    verify_pkce_code_verifier
)

# Client authentication strategies
from .client_auth import (
    ClientAuthenticator,
    BasicAuthCredentialExtractor,
    RequestBodyCredentialExtractor
)

# Token minting and subject resolution seams
from .token_issuer import TokenIssuerProtocol, JwtTokenIssuer
from .subject import SubjectResolver, DemoSubjectResolver

# Abstract storage interfaces for dependency injection
from .storage_interfaces import (
    AbstractOAuthClientStore,
    AbstractAuthCodeStore,
    AbstractRefreshTokenStore,
    AbstractRevocationStore
)

# In-memory storage implementations
from .storage import (
    InMemoryOAuthClientStore,
    InMemoryAuthCodeStore,
    InMemoryRefreshTokenStore,
    InMemoryRevocationStore,
    AuthorizationServerState,
    create_in_memory_state
)

# Main OAuth provider implementation
from .provider import BadgeOAuthProvider

# FastAPI routers and resource-side dependency
from .endpoints import oauth_router, metadata_router
from .bearer import require_bearer_token

__all__ = [
    # Core models and data structures
    "ClientMetadata",
    "ClientRegistration",
    "AuthRequest",
    "TokenRequest",
    "RevocationRequest",
    "TokenResponse",
    "AuthCodeData",
    "RefreshTokenData",
    "AccessTokenPayload",
    "WellKnownOAuthMetadata",

    # Error handling
    "OAuthError",
    "InvalidRequestError",
    "InvalidClientError",
    "InvalidGrantError",
    "UnauthorizedClientError",
    "UnsupportedGrantTypeError",
    "UnsupportedResponseTypeError",
    "InvalidScopeError",
    "InvalidClientMetadataError",
    "InvalidRedirectUriError",
    "ServerError",
    "InvalidTokenError",
    "InsufficientScopeError",

    # Scopes
    "RECOGNIZED_SCOPES",
    "PASSWORD_GRANT_SCOPES",
    "filter_recognized_scopes",

    # Security utilities
    "generate_pkce_code_verifier",
    "generate_pkce_code_challenge",
    "verify_pkce_code_verifier",
    "ClientAuthenticator",
    "BasicAuthCredentialExtractor",
    "RequestBodyCredentialExtractor",

    # Tokens and subjects
    "TokenIssuerProtocol",
    "JwtTokenIssuer",
    "SubjectResolver",
    "DemoSubjectResolver",

    # Storage
    "AbstractOAuthClientStore",
    "AbstractAuthCodeStore",
    "AbstractRefreshTokenStore",
    "AbstractRevocationStore",
    "InMemoryOAuthClientStore",
    "InMemoryAuthCodeStore",
    "InMemoryRefreshTokenStore",
    "InMemoryRevocationStore",
    "AuthorizationServerState",
    "create_in_memory_state",

    # Core provider
    "BadgeOAuthProvider",

    # API endpoints
    "oauth_router",
    "metadata_router",
    "require_bearer_token",
]
