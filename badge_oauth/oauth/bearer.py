# badge_oauth/oauth/bearer.py
import logging
from typing import Awaitable, Callable, List, Optional

from fastapi import Request

from .errors import InvalidTokenError, InsufficientScopeError, ServerError
from .models import AccessTokenPayload
from .scopes import join_scopes

logger = logging.getLogger(__name__)


def require_bearer_token(
    required_scopes: Optional[List[str]] = None
) -> Callable[[Request], Awaitable[AccessTokenPayload]]:
    """
    Dependency factory for resource routes protected by access tokens
    issued by this server.

    Usage:
        @router.get("/credentials")
        async def list_credentials(
            token: Annotated[AccessTokenPayload, Depends(require_bearer_token([CREDENTIAL_READONLY_SCOPE]))]
        ): ...
    """
    needed = list(required_scopes or [])

    async def bearer_dependency(request: Request) -> AccessTokenPayload:
        auth_header = request.headers.get("authorization")
        if not auth_header:
            raise InvalidTokenError("Missing bearer token.")

        scheme, _, token = auth_header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise InvalidTokenError("Malformed Authorization header.")

        token_issuer = getattr(request.app.state, "token_issuer", None)
        if token_issuer is None:
            logger.error("CRITICAL: token issuer not found on app.state.")
            raise ServerError(error_description="Authorization server is not configured.")

        payload = await token_issuer.verify_token(token)
        if payload is None:
            raise InvalidTokenError("The access token is invalid, expired or revoked.")

        missing = [scope for scope in needed if scope not in payload.scope]
        if missing:
            logger.info(f"Token for '{payload.sub}' lacks scopes {missing}.")
            raise InsufficientScopeError(required_scope=join_scopes(missing))

        return payload

    return bearer_dependency
