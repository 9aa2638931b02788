# badge_oauth/oauth/storage.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

from .models import AuthCodeData, ClientRegistration, RefreshTokenData, utc_now
from .storage_interfaces import (
    AbstractAuthCodeStore,
    AbstractOAuthClientStore,
    AbstractRefreshTokenStore,
    AbstractRevocationStore,
)

logger = logging.getLogger(__name__)


class InMemoryOAuthClientStore(AbstractOAuthClientStore):
    """
    Process-local registry of OAuth clients.

    Registrations live for the lifetime of the server process only.
    """

    def __init__(self):
        self._clients: Dict[str, ClientRegistration] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        logger.info("InMemoryOAuthClientStore initialized.")

    async def teardown(self) -> None:
        logger.info(f"InMemoryOAuthClientStore teardown ({len(self._clients)} clients dropped).")
        self._clients.clear()

    async def save_client(self, client: ClientRegistration) -> None:
        async with self._lock:
            if client.client_id in self._clients:
                raise ValueError(f"client_id '{client.client_id}' is already registered.")
            self._clients[client.client_id] = client

    async def load_client(self, client_id: str) -> Optional[ClientRegistration]:
        return self._clients.get(client_id)


class InMemoryAuthCodeStore(AbstractAuthCodeStore):
    """
    Process-local storage for authorization codes.

    A single lock guards every mutation so that lookup, validation and
    deletion during redemption happen as one step.
    """

    def __init__(self):
        self._codes: Dict[str, AuthCodeData] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        logger.info("InMemoryAuthCodeStore initialized.")

    async def teardown(self) -> None:
        logger.info("InMemoryAuthCodeStore teardown.")
        self._codes.clear()

    async def save_auth_code(self, auth_code_data: AuthCodeData) -> None:
        async with self._lock:
            self._codes[auth_code_data.code] = auth_code_data

    async def load_auth_code(self, code: str) -> Optional[AuthCodeData]:
        async with self._lock:
            return self._get_unexpired(code)

    async def redeem_auth_code(
        self,
        code: str,
        validate: Callable[[AuthCodeData], None]
    ) -> Optional[AuthCodeData]:
        async with self._lock:
            auth_code_data = self._get_unexpired(code)
            if auth_code_data is None:
                return None
            # Raising here leaves the code in place for a later attempt
            validate(auth_code_data)
            del self._codes[code]
            return auth_code_data

    async def delete_auth_code(self, code: str) -> None:
        async with self._lock:
            self._codes.pop(code, None)

    async def purge_expired(self) -> int:
        async with self._lock:
            now = utc_now()
            expired = [code for code, data in self._codes.items() if data.is_expired(now)]
            for code in expired:
                del self._codes[code]
            return len(expired)

    def _get_unexpired(self, code: str) -> Optional[AuthCodeData]:
        # Caller must hold self._lock
        auth_code_data = self._codes.get(code)
        if auth_code_data is None:
            return None
        if auth_code_data.is_expired():
            logger.info(f"Authorization code '{code[:8]}...' expired; removing it.")
            del self._codes[code]
            return None
        return auth_code_data


class InMemoryRefreshTokenStore(AbstractRefreshTokenStore):
    """Process-local storage for refresh tokens with lazy expiry on read."""

    def __init__(self):
        self._tokens: Dict[str, RefreshTokenData] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        logger.info("InMemoryRefreshTokenStore initialized.")

    async def teardown(self) -> None:
        logger.info("InMemoryRefreshTokenStore teardown.")
        self._tokens.clear()

    async def save_refresh_token(self, refresh_token_data: RefreshTokenData) -> None:
        async with self._lock:
            self._tokens[refresh_token_data.token] = refresh_token_data

    async def load_refresh_token(self, refresh_token: str) -> Optional[RefreshTokenData]:
        async with self._lock:
            rt_data = self._tokens.get(refresh_token)
            if rt_data is None:
                return None
            if rt_data.is_expired():
                logger.info(f"Refresh token '{refresh_token[:8]}...' expired; removing it.")
                del self._tokens[refresh_token]
                return None
            return rt_data

    async def delete_refresh_token(self, refresh_token: str) -> bool:
        async with self._lock:
            return self._tokens.pop(refresh_token, None) is not None

    async def purge_expired(self) -> int:
        async with self._lock:
            now = utc_now()
            expired = [token for token, data in self._tokens.items() if data.is_expired(now)]
            for token in expired:
                del self._tokens[token]
            return len(expired)


class InMemoryRevocationStore(AbstractRevocationStore):
    """Append-only set of revoked token strings."""

    def __init__(self):
        self._revoked: Set[str] = set()

    async def initialize(self) -> None:
        logger.info("InMemoryRevocationStore initialized.")

    async def teardown(self) -> None:
        logger.info("InMemoryRevocationStore teardown.")
        self._revoked.clear()

    async def revoke(self, token: str) -> None:
        self._revoked.add(token)

    async def is_revoked(self, token: str) -> bool:
        return token in self._revoked


@dataclass
class AuthorizationServerState:
    """All mutable state of the authorization server, injected at construction."""
    client_store: AbstractOAuthClientStore
    auth_code_store: AbstractAuthCodeStore
    refresh_token_store: AbstractRefreshTokenStore
    revocation_store: AbstractRevocationStore

    async def initialize(self) -> None:
        for store in self._stores():
            await store.initialize()

    async def teardown(self) -> None:
        for store in reversed(self._stores()):
            try:
                await store.teardown()
            except Exception as e_td:
                logger.error(f"Teardown error in {type(store).__name__}: {e_td}", exc_info=True)

    async def purge_expired(self) -> int:
        """Compaction pass over the expiring stores. Returns the number of records removed."""
        removed_codes = await self.auth_code_store.purge_expired()
        removed_tokens = await self.refresh_token_store.purge_expired()
        if removed_codes or removed_tokens:
            logger.info(
                f"Expiry sweep removed {removed_codes} authorization codes "
                f"and {removed_tokens} refresh tokens."
            )
        return removed_codes + removed_tokens

    def _stores(self):
        return [
            self.client_store,
            self.auth_code_store,
            self.refresh_token_store,
            self.revocation_store,
        ]


def create_in_memory_state() -> AuthorizationServerState:
    """Build a fresh, non-durable state with in-memory stores."""
    return AuthorizationServerState(
        client_store=InMemoryOAuthClientStore(),
        auth_code_store=InMemoryAuthCodeStore(),
        refresh_token_store=InMemoryRefreshTokenStore(),
        revocation_store=InMemoryRevocationStore(),
    )
