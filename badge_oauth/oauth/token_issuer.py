# badge_oauth/oauth/token_issuer.py
import logging
import secrets
import time
from typing import List, Optional, Protocol

import jwt
from pydantic import ValidationError as PydanticValidationError

from .models import AccessTokenPayload
from .storage_interfaces import AbstractRevocationStore

logger = logging.getLogger(__name__)

MIN_SECRET_KEY_LENGTH = 32


class TokenIssuerProtocol(Protocol):
    """Mints and verifies the opaque bearer tokens handed out by the token endpoint."""

    def issue_token(self, subject: str, display_name: str, scopes: List[str]) -> str:
        ...

    async def verify_token(self, token: str) -> Optional[AccessTokenPayload]:
        ...


class JwtTokenIssuer:
    """
    Signs access tokens as JWTs.

    Verification also consults the revocation store, so a token revoked
    through the revocation endpoint stops verifying immediately.
    """

    def __init__(
        self,
        secret_key: str,
        revocation_store: AbstractRevocationStore,
        algorithm: str = "HS256",
        expires_in_seconds: int = 3600
    ):
        if not secret_key or len(secret_key) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(
                f"JWT secret key must be at least {MIN_SECRET_KEY_LENGTH} characters long."
            )
        self._secret_key = secret_key
        self.revocation_store = revocation_store
        self.algorithm = algorithm
        self.expires_in_seconds = expires_in_seconds

    def issue_token(self, subject: str, display_name: str, scopes: List[str]) -> str:
        issued_at = int(time.time())
        payload = {
            "sub": subject,
            "name": display_name,
            "scope": list(scopes),
            "iat": issued_at,
            "exp": issued_at + self.expires_in_seconds,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    async def verify_token(self, token: str) -> Optional[AccessTokenPayload]:
        if await self.revocation_store.is_revoked(token):
            logger.info(f"Rejected revoked access token '{token[:8]}...'.")
            return None
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except jwt.PyJWTError as e:
            logger.info(f"Access token verification failed: {e}")
            return None
        try:
            return AccessTokenPayload.model_validate(claims)
        except PydanticValidationError as e:
            logger.warning(f"Access token carries malformed claims: {e.errors()}")
            return None
