# badge_oauth/oauth/client_auth.py
import base64
import logging
import secrets
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Sequence

from .errors import InvalidClientError
from .models import ClientRegistration
from .storage_interfaces import AbstractOAuthClientStore

logger = logging.getLogger(__name__)

INVALID_CLIENT_CREDENTIALS = "Invalid client credentials."
MISSING_CLIENT_CREDENTIALS = "Missing client credentials."


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str


class ClientCredentialExtractor(Protocol):
    """
    Pulls client credentials out of a request. Returns None when the request
    does not use this extractor's method.
    """

    def extract(
        self,
        headers: Mapping[str, str],
        params: Mapping[str, Optional[str]]
    ) -> Optional[ClientCredentials]:
        ...


class BasicAuthCredentialExtractor:
    """HTTP Basic authentication (RFC 6749 - Section 2.3.1)."""

    def extract(
        self,
        headers: Mapping[str, str],
        params: Mapping[str, Optional[str]]
    ) -> Optional[ClientCredentials]:
        auth_header = headers.get("authorization")
        if not auth_header:
            return None
        scheme, _, encoded = auth_header.partition(" ")
        if scheme.lower() != "basic":
            return None

        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except ValueError:
            logger.warning("Malformed Basic authorization header.")
            raise InvalidClientError(INVALID_CLIENT_CREDENTIALS)

        client_id, _, client_secret = decoded.partition(":")
        return ClientCredentials(client_id=client_id, client_secret=client_secret)


class RequestBodyCredentialExtractor:
    """client_id / client_secret sent as request parameters (client_secret_post)."""

    def extract(
        self,
        headers: Mapping[str, str],
        params: Mapping[str, Optional[str]]
    ) -> Optional[ClientCredentials]:
        client_id = params.get("client_id")
        client_secret = params.get("client_secret")
        if not client_id or not client_secret:
            return None
        return ClientCredentials(client_id=client_id, client_secret=client_secret)


DEFAULT_CREDENTIAL_EXTRACTORS: Sequence[ClientCredentialExtractor] = (
    BasicAuthCredentialExtractor(),
    RequestBodyCredentialExtractor(),
)


class ClientAuthenticator:
    """
    Authenticates confidential clients at the token and revocation endpoints.

    Extractors are tried in order and the first one that finds credentials
    wins. Unknown clients and wrong secrets produce the same error so that
    client ids cannot be enumerated.
    """

    def __init__(
        self,
        client_store: AbstractOAuthClientStore,
        extractors: Sequence[ClientCredentialExtractor] = DEFAULT_CREDENTIAL_EXTRACTORS
    ):
        self.client_store = client_store
        self.extractors = list(extractors)

    async def authenticate(
        self,
        headers: Mapping[str, str],
        params: Mapping[str, Optional[str]]
    ) -> ClientRegistration:
        credentials: Optional[ClientCredentials] = None
        for extractor in self.extractors:
            credentials = extractor.extract(headers, params)
            if credentials is not None:
                break

        if credentials is None:
            logger.warning("Client authentication failed: no credentials supplied.")
            raise InvalidClientError(MISSING_CLIENT_CREDENTIALS)

        client = await self.client_store.load_client(credentials.client_id)
        if client is None or not secrets.compare_digest(
            client.client_secret.encode("utf-8", "surrogatepass"),
            credentials.client_secret.encode("utf-8", "surrogatepass")
        ):
            logger.warning(f"Client authentication failed for client_id '{credentials.client_id}'.")
            raise InvalidClientError(INVALID_CLIENT_CREDENTIALS)

        return client
