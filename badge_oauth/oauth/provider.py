# badge_oauth/oauth/provider.py
import logging
import secrets
import time
from typing import Any, Dict, List, Mapping, Optional
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode, urlsplit

from pydantic import ValidationError as PydanticValidationError

from .client_auth import ClientAuthenticator
from .errors import (
    InvalidRequestError, InvalidClientError, InvalidGrantError, InvalidScopeError,
    InvalidClientMetadataError, InvalidRedirectUriError, UnsupportedGrantTypeError,
    UnsupportedResponseTypeError, ServerError
)
from .models import (
    AuthRequest, TokenRequest, TokenResponse, RevocationRequest, AuthCodeData,
    RefreshTokenData, ClientMetadata, ClientRegistration
)
from .pkce import verify_pkce_code_verifier
from .scopes import PASSWORD_GRANT_SCOPES, filter_recognized_scopes, join_scopes, split_scope
from .storage import AuthorizationServerState
from .token_issuer import TokenIssuerProtocol

logger = logging.getLogger(__name__)

# OAuth token and code lifetime configuration
AUTH_CODE_LIFETIME_SECONDS = 600  # 10 minutes
ACCESS_TOKEN_LIFETIME_SECONDS = 3600  # 1 hour
REFRESH_TOKEN_LIFETIME_SECONDS = 3600 * 24 * 30  # 30 days
CLIENT_SECRET_LIFETIME_SECONDS = 3600 * 24 * 365  # 1 year

CLIENT_ID_BYTES = 8
CLIENT_SECRET_BYTES = 16
AUTH_CODE_BYTES = 32
REFRESH_TOKEN_BYTES = 32
CLIENT_ID_MINT_ATTEMPTS = 5

MIN_PASSWORD_LENGTH = 6


def _append_query(uri: str, params: Dict[str, str]) -> str:
    """Appends parameters to a redirect URI, keeping any query it already has."""
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{urlencode(params)}"


class BadgeOAuthProvider:
    """
    Core logic for the embedded Open Badges OAuth 2.0 Authorization Server.
    Handles client registration, authorization requests, token issuance and
    revocation. All state is reached through the injected stores.
    """

    def __init__(self,
                 state: AuthorizationServerState,
                 token_issuer: TokenIssuerProtocol,
                 client_authenticator: Optional[ClientAuthenticator] = None):
        self.state = state
        self.token_issuer = token_issuer
        self.client_authenticator = client_authenticator or ClientAuthenticator(state.client_store)
        logger.info("BadgeOAuthProvider initialized with client, auth_code, refresh_token and revocation stores.")

    # --- Dynamic client registration (RFC 7591) ---

    async def register_client(self, raw_metadata: Any) -> ClientRegistration:
        """
        Validates client metadata, mints client credentials and stores the
        registration.

        Raises:
            InvalidClientMetadataError: If client_name or redirect_uris are missing or malformed
            InvalidRedirectUriError: If a redirect URI is not absolute
            InvalidScopeError: If a scope was supplied but none of it is recognized
        """
        if not isinstance(raw_metadata, dict):
            raise InvalidClientMetadataError("Client metadata must be a JSON object.")
        try:
            metadata = ClientMetadata.model_validate(raw_metadata)
        except PydanticValidationError as e:
            logger.warning(f"Invalid client metadata: {e.errors()}")
            error_details = "; ".join(
                f"{'.'.join(str(loc) for loc in err.get('loc', ())) or 'metadata'}: {err.get('msg', 'Invalid')}"
                for err in e.errors()
            )
            raise InvalidClientMetadataError(f"Invalid client metadata: {error_details}")

        if not metadata.client_name or not metadata.redirect_uris:
            raise InvalidClientMetadataError("client_name and redirect_uris are required")

        for redirect_uri in metadata.redirect_uris:
            parts = urlsplit(redirect_uri)
            if not parts.scheme or parts.fragment:
                logger.warning(f"Rejected redirect_uri '{redirect_uri}' for client '{metadata.client_name}'.")
                raise InvalidRedirectUriError(
                    f"redirect_uri '{redirect_uri}' must be an absolute URI without a fragment."
                )

        if metadata.scope and not filter_recognized_scopes(metadata.scope):
            raise InvalidScopeError("No valid scopes provided")

        for _ in range(CLIENT_ID_MINT_ATTEMPTS):
            issued_at = int(time.time())
            registration = ClientRegistration(
                client_id=secrets.token_hex(CLIENT_ID_BYTES),
                client_secret=secrets.token_hex(CLIENT_SECRET_BYTES),
                client_name=metadata.client_name,
                client_uri=metadata.client_uri,
                logo_uri=metadata.logo_uri,
                tos_uri=metadata.tos_uri,
                policy_uri=metadata.policy_uri,
                software_id=metadata.software_id,
                software_version=metadata.software_version,
                redirect_uris=list(metadata.redirect_uris),
                token_endpoint_auth_method=metadata.token_endpoint_auth_method,
                grant_types=list(metadata.grant_types),
                response_types=list(metadata.response_types),
                scope=metadata.scope or "",
                client_id_issued_at=issued_at,
                client_secret_expires_at=issued_at + CLIENT_SECRET_LIFETIME_SECONDS,
            )
            try:
                await self.state.client_store.save_client(registration)
            except ValueError:
                logger.warning("Minted client_id collided with an existing client. Retrying.")
                continue
            logger.info(f"OAuth2 client registered: {registration.client_id} ({registration.client_name})")
            return registration

        raise ServerError("Could not allocate a unique client_id.")

    # --- Authorization endpoint (RFC 6749 Section 4.1.1, RFC 7636) ---

    async def validate_client_and_redirect(self, auth_request: AuthRequest) -> ClientRegistration:
        """
        Runs the checks that must pass before the redirect_uri can be trusted.
        Errors raised here are reported directly to the user agent, never
        through a redirect.

        Raises:
            InvalidRequestError: For missing parameters or an unregistered redirect_uri
            UnsupportedResponseTypeError: If response_type is not 'code'
            InvalidClientError: For unknown clients (HTTP 400)
        """
        if not auth_request.response_type or not auth_request.client_id or not auth_request.redirect_uri:
            raise InvalidRequestError("Missing required parameters")

        if auth_request.response_type != "code":
            logger.warning(f"Unsupported response_type: {auth_request.response_type}")
            raise UnsupportedResponseTypeError("Only authorization_code flow is supported")

        client = await self.state.client_store.load_client(auth_request.client_id)
        if not client:
            logger.warning(f"Unknown client_id: {auth_request.client_id}")
            raise InvalidClientError("Unknown client_id", status_code=400)

        if auth_request.redirect_uri not in client.redirect_uris:
            logger.warning(
                f"Redirect URI '{auth_request.redirect_uri}' not registered for client '{client.client_id}'. "
                f"Registered: {client.redirect_uris}"
            )
            raise InvalidRequestError("Invalid redirect_uri")

        return client

    async def validate_authorization_parameters(
        self,
        auth_request: AuthRequest,
        client: ClientRegistration
    ) -> List[str]:
        """
        Validates PKCE and scope once the redirect_uri is trusted. Errors
        raised here are delivered to the client through its redirect_uri.

        Returns:
            List[str]: Granted scopes (the recognized subset of the request)
        """
        if not auth_request.code_challenge:
            logger.warning(f"PKCE code_challenge missing for client '{client.client_id}'.")
            raise InvalidRequestError("code_challenge is required")

        granted_scopes = filter_recognized_scopes(auth_request.scope)
        if auth_request.scope and not granted_scopes:
            logger.warning(
                f"Client '{client.client_id}' requested scopes '{auth_request.scope}', "
                f"but none are recognized."
            )
            raise InvalidScopeError("No valid scopes provided")

        logger.debug(
            f"Requested scopes: '{auth_request.scope}', Granted scopes: {granted_scopes} "
            f"for client '{client.client_id}'."
        )
        return granted_scopes

    async def generate_auth_code_and_build_redirect(
        self,
        auth_request: AuthRequest,
        client: ClientRegistration,
        user_id: str,
        granted_scopes: List[str]
    ) -> str:
        """
        Generates an authorization code, stores it, and builds the redirect URI
        carrying code, state and the granted scope.
        """
        auth_code_str = secrets.token_hex(AUTH_CODE_BYTES)
        granted_scope_str = join_scopes(granted_scopes)

        auth_code_data = AuthCodeData(
            code=auth_code_str,
            client_id=client.client_id,
            redirect_uri=auth_request.redirect_uri,
            scope=granted_scope_str,
            state=auth_request.state or "",
            code_challenge=auth_request.code_challenge,
            code_challenge_method=auth_request.code_challenge_method,
            user_id=user_id,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=AUTH_CODE_LIFETIME_SECONDS),
        )
        await self.state.auth_code_store.save_auth_code(auth_code_data)
        logger.info(
            f"OAuth2 authorization code issued: {auth_code_str[:8]}... "
            f"for client {client.client_id}, user '{user_id}'"
        )

        redirect_params = {"code": auth_code_str}
        if auth_request.state:
            redirect_params["state"] = auth_request.state
        redirect_params["scope"] = granted_scope_str
        return _append_query(auth_request.redirect_uri, redirect_params)

    def build_error_redirect_uri(
        self,
        redirect_uri: str,
        error: str,
        error_description: Optional[str] = None,
        state: Optional[str] = None
    ) -> str:
        """Builds a redirect URI for OAuth error responses (RFC 6749 Section 4.1.2.1)."""
        logger.warning(
            f"Building error redirect to '{redirect_uri}': "
            f"error='{error}', desc='{error_description}', state='{state}'"
        )
        params = {"error": error}
        if error_description:
            params["error_description"] = error_description
        if state:
            params["state"] = state
        return _append_query(redirect_uri, params)

    # --- Token endpoint (RFC 6749 Section 4.1.3 / 6) ---

    async def handle_token_request(
        self,
        token_request: TokenRequest,
        headers: Mapping[str, str]
    ) -> TokenResponse:
        """
        Dispatches a token request on its grant_type.

        Raises:
            InvalidRequestError: If grant_type is missing
            UnsupportedGrantTypeError: For unsupported grant types
        """
        logger.info(f"Handling token request for grant_type '{token_request.grant_type}'.")

        if not token_request.grant_type:
            raise InvalidRequestError("grant_type is required")

        if token_request.grant_type == "authorization_code":
            return await self._handle_auth_code_grant(token_request, headers)
        elif token_request.grant_type == "refresh_token":
            return await self._handle_refresh_token_grant(token_request, headers)
        elif token_request.grant_type == "password":
            return await self._handle_password_grant(token_request)
        else:
            raise UnsupportedGrantTypeError(
                f"Grant type {token_request.grant_type} is not supported"
            )

    async def _authenticate_client(
        self,
        token_request_params: Mapping[str, Optional[str]],
        headers: Mapping[str, str]
    ) -> ClientRegistration:
        return await self.client_authenticator.authenticate(headers, token_request_params)

    async def _handle_auth_code_grant(
        self,
        token_request: TokenRequest,
        headers: Mapping[str, str]
    ) -> TokenResponse:
        """
        Exchanges an authorization code for an access token and a refresh token.

        The code is validated and deleted in one step, so it can be redeemed
        only once. A failed validation leaves the code in place.
        """
        if not all([
            token_request.code, token_request.redirect_uri,
            token_request.client_id, token_request.code_verifier
        ]):
            raise InvalidRequestError("Missing required parameters")

        client = await self._authenticate_client(token_request.model_dump(), headers)
        if client.client_id != token_request.client_id:
            logger.warning(
                f"Authenticated client '{client.client_id}' does not match "
                f"client_id parameter '{token_request.client_id}'."
            )
            raise InvalidClientError("Client authentication mismatch")

        def validate_code(auth_code_data: AuthCodeData) -> None:
            if (auth_code_data.client_id != token_request.client_id
                    or auth_code_data.redirect_uri != token_request.redirect_uri):
                logger.warning(
                    f"Authorization code parameters mismatch for client '{token_request.client_id}'. "
                    f"Expected redirect '{auth_code_data.redirect_uri}', got '{token_request.redirect_uri}'."
                )
                raise InvalidGrantError("Authorization code parameters mismatch")
            if not verify_pkce_code_verifier(
                token_request.code_verifier,
                auth_code_data.code_challenge,
                auth_code_data.code_challenge_method
            ):
                logger.warning(
                    f"PKCE verification failed ({auth_code_data.code_challenge_method}) "
                    f"for client '{token_request.client_id}'."
                )
                raise InvalidGrantError("Invalid code_verifier")

        auth_code_data = await self.state.auth_code_store.redeem_auth_code(
            token_request.code, validate_code
        )
        if auth_code_data is None:
            logger.warning("Invalid authorization code (not found or expired).")
            raise InvalidGrantError("Invalid or expired authorization code")

        access_token = self.token_issuer.issue_token(
            auth_code_data.user_id,
            f"user-{auth_code_data.user_id}",
            split_scope(auth_code_data.scope)
        )

        refresh_token_str = secrets.token_hex(REFRESH_TOKEN_BYTES)
        await self.state.refresh_token_store.save_refresh_token(RefreshTokenData(
            token=refresh_token_str,
            client_id=client.client_id,
            user_id=auth_code_data.user_id,
            scope=auth_code_data.scope,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=REFRESH_TOKEN_LIFETIME_SECONDS),
        ))

        logger.info(
            f"OAuth2 access token issued for user '{auth_code_data.user_id}', "
            f"client '{client.client_id}'."
        )
        return TokenResponse(
            access_token=access_token,
            token_type="Bearer",
            expires_in=ACCESS_TOKEN_LIFETIME_SECONDS,
            refresh_token=refresh_token_str,
            scope=auth_code_data.scope
        )

    async def _handle_refresh_token_grant(
        self,
        token_request: TokenRequest,
        headers: Mapping[str, str]
    ) -> TokenResponse:
        """
        Issues a new access token from a refresh token.

        The requested scope can narrow the grant but never widen it; a request
        that shares nothing with the original grant keeps the original scope.
        The refresh token itself is not rotated.
        """
        if not token_request.refresh_token:
            raise InvalidRequestError("refresh_token is required")

        client = await self._authenticate_client(token_request.model_dump(), headers)

        rt_data = await self.state.refresh_token_store.load_refresh_token(token_request.refresh_token)
        if not rt_data:
            logger.warning("Invalid refresh token (not found or expired).")
            raise InvalidGrantError("Invalid or expired refresh token")

        if rt_data.client_id != client.client_id:
            logger.warning(
                f"Refresh token client_id mismatch. Expected {rt_data.client_id}, "
                f"got {client.client_id}."
            )
            raise InvalidGrantError("Refresh token does not belong to client")

        final_scope = rt_data.scope
        if token_request.scope:
            original_scopes = split_scope(rt_data.scope)
            reduced_scopes = [
                scope for scope in filter_recognized_scopes(token_request.scope)
                if scope in original_scopes
            ]
            if reduced_scopes:
                final_scope = join_scopes(reduced_scopes)
            else:
                logger.info(
                    f"Requested scope '{token_request.scope}' shares nothing with the original grant; "
                    f"keeping '{rt_data.scope}'."
                )

        access_token = self.token_issuer.issue_token(
            rt_data.user_id,
            f"user-{rt_data.user_id}",
            split_scope(final_scope)
        )

        logger.info(f"OAuth2 access token refreshed for user '{rt_data.user_id}', client '{client.client_id}'.")
        return TokenResponse(
            access_token=access_token,
            token_type="Bearer",
            expires_in=ACCESS_TOKEN_LIFETIME_SECONDS,
            scope=final_scope
        )

    async def _handle_password_grant(self, token_request: TokenRequest) -> TokenResponse:
        """
        Legacy resource owner password grant kept for testing convenience.
        There is no credential store: any username with a password of at
        least six characters is accepted.
        """
        if not token_request.username or not token_request.password:
            raise InvalidRequestError("username and password are required")

        if len(token_request.password) < MIN_PASSWORD_LENGTH:
            logger.warning(f"Password grant rejected for '{token_request.username}'.")
            raise InvalidGrantError("Invalid username or password")

        access_token = self.token_issuer.issue_token(
            f"user-{token_request.username}",
            token_request.username,
            PASSWORD_GRANT_SCOPES
        )
        logger.info(f"OAuth2 password grant token issued for '{token_request.username}'.")
        return TokenResponse(
            access_token=access_token,
            token_type="Bearer",
            expires_in=ACCESS_TOKEN_LIFETIME_SECONDS,
            scope=join_scopes(PASSWORD_GRANT_SCOPES)
        )

    # --- Revocation endpoint (RFC 7009) ---

    async def revoke_token(
        self,
        revocation_request: RevocationRequest,
        headers: Mapping[str, str]
    ) -> None:
        """
        Revokes a token. Unknown or already invalid tokens are not an error
        (RFC 7009 Section 2.2).
        """
        if not revocation_request.token:
            raise InvalidRequestError("token is required")

        await self.client_authenticator.authenticate(headers, revocation_request.model_dump())

        token = revocation_request.token
        await self.state.revocation_store.revoke(token)

        removed_refresh_token = False
        if revocation_request.token_type_hint == "refresh_token" or \
                await self.state.refresh_token_store.load_refresh_token(token) is not None:
            removed_refresh_token = await self.state.refresh_token_store.delete_refresh_token(token)

        logger.info(
            f"OAuth2 token revoked: {token[:8]}... "
            f"(refresh token record removed: {removed_refresh_token})"
        )
