# badge_oauth/oauth/storage_interfaces.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import AuthCodeData, ClientRegistration, RefreshTokenData


class AbstractOAuthClientStore(ABC):
    """Abstract base class for storing dynamically registered OAuth clients."""

    @abstractmethod
    async def save_client(self, client: ClientRegistration) -> None:
        """Store a client registration. The client_id must not already exist."""
        pass

    @abstractmethod
    async def load_client(self, client_id: str) -> Optional[ClientRegistration]:
        """Retrieve a client registration by client ID."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Clean up storage resources."""
        pass


class AbstractAuthCodeStore(ABC):
    """Abstract base class for storing and redeeming OAuth authorization codes."""

    @abstractmethod
    async def save_auth_code(self, auth_code_data: AuthCodeData) -> None:
        """Store an authorization code with its associated data."""
        pass

    @abstractmethod
    async def load_auth_code(self, code: str) -> Optional[AuthCodeData]:
        """
        Retrieve authorization code data by code value. Expired codes are
        removed and reported as absent.
        """
        pass

    @abstractmethod
    async def redeem_auth_code(
        self,
        code: str,
        validate: Callable[[AuthCodeData], None]
    ) -> Optional[AuthCodeData]:
        """
        Atomically look up, validate and delete an authorization code.

        Returns None when the code is unknown or expired (expired codes are
        removed). `validate` may raise to reject the redemption, in which
        case the code is left in place. Concurrent redemptions of the same
        code must yield at most one non-None result.
        """
        pass

    @abstractmethod
    async def delete_auth_code(self, code: str) -> None:
        """Remove an authorization code from storage."""
        pass

    @abstractmethod
    async def purge_expired(self) -> int:
        """Remove every expired code. Returns the number removed."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Clean up storage resources."""
        pass


class AbstractRefreshTokenStore(ABC):
    """Abstract base class for storing refresh tokens."""

    @abstractmethod
    async def save_refresh_token(self, refresh_token_data: RefreshTokenData) -> None:
        """Store a refresh token with its metadata."""
        pass

    @abstractmethod
    async def load_refresh_token(self, refresh_token: str) -> Optional[RefreshTokenData]:
        """
        Retrieve refresh token data by token value. Expired tokens are
        removed and reported as absent.
        """
        pass

    @abstractmethod
    async def delete_refresh_token(self, refresh_token: str) -> bool:
        """Remove a refresh token. Returns True if it existed."""
        pass

    @abstractmethod
    async def purge_expired(self) -> int:
        """Remove every expired refresh token. Returns the number removed."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Clean up storage resources."""
        pass


class AbstractRevocationStore(ABC):
    """Abstract base class for the set of explicitly revoked token strings."""

    @abstractmethod
    async def revoke(self, token: str) -> None:
        """Add a token string to the revocation set."""
        pass

    @abstractmethod
    async def is_revoked(self, token: str) -> bool:
        """Check whether a token string has been revoked."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Clean up storage resources."""
        pass
