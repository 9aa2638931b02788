# badge_oauth/oauth/endpoints.py
from fastapi import APIRouter, Depends, Request, Query
from fastapi.responses import JSONResponse, RedirectResponse
from typing import Annotated, Optional, Dict, Any
import json
import logging
from pydantic import ValidationError as PydanticValidationError

from .provider import BadgeOAuthProvider
from .models import AuthRequest, TokenRequest, RevocationRequest, WellKnownOAuthMetadata
from .errors import OAuthError, InvalidRequestError, InvalidClientMetadataError, ServerError
from .scopes import RECOGNIZED_SCOPES
from .subject import SubjectResolver

logger = logging.getLogger(__name__)
oauth_router = APIRouter()
metadata_router = APIRouter()

# --- Dependency Functions ---

async def get_oauth_provider(request: Request) -> BadgeOAuthProvider:
    """Return the provider assembled by create_app()."""
    provider = getattr(request.app.state, "oauth_provider", None)
    if provider is None:
        logger.error("CRITICAL: BadgeOAuthProvider not found on app.state.")
        raise ServerError(error_description="Authorization server is not configured.")
    return provider

async def get_subject_resolver(request: Request) -> SubjectResolver:
    resolver = getattr(request.app.state, "subject_resolver", None)
    if resolver is None:
        logger.error("CRITICAL: SubjectResolver not found on app.state.")
        raise ServerError(error_description="Authorization server is not configured.")
    return resolver

def _format_validation_errors(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"Field '{str(err.get('loc', ['N/A'])[-1])}': {err.get('msg', 'Invalid')}"
        for err in exc.errors()
    )

async def _read_json_object(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError(error_description="Request body is not valid JSON.")
    if not isinstance(body, dict):
        raise InvalidRequestError(error_description="Request body must be a JSON object.")
    return body

async def _read_request_params(request: Request) -> Dict[str, Any]:
    """
    Reads the body of a token or revocation request. JSON bodies are accepted
    alongside application/x-www-form-urlencoded.
    """
    content_type = request.headers.get("content-type", "").lower()
    if "application/json" in content_type:
        return await _read_json_object(request)
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}

# --- Registration endpoint (RFC 7591) ---

@oauth_router.post("/register", name="oauth_register", status_code=201)
async def register(
    request: Request,
    oauth_provider: Annotated[BadgeOAuthProvider, Depends(get_oauth_provider)],
):
    """Dynamic client registration. Returns the full registration including client_secret."""
    try:
        raw_metadata = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidClientMetadataError(error_description="Client metadata must be a JSON object.")

    try:
        registration = await oauth_provider.register_client(raw_metadata)
    except OAuthError as e:
        logger.warning(f"Client registration rejected: {e.error} - {e.error_description}")
        raise
    except Exception as e:
        logger.error(f"Unexpected error during /register: {e}", exc_info=True)
        raise ServerError(error_description="An unexpected error occurred while registering the client.")

    return JSONResponse(status_code=201, content=registration.model_dump(exclude_none=True))

# --- Authorization endpoint ---

@oauth_router.get("/authorize", name="oauth_authorize", response_class=RedirectResponse)
async def authorize(
    request: Request,
    oauth_provider: Annotated[BadgeOAuthProvider, Depends(get_oauth_provider)],
    subject_resolver: Annotated[SubjectResolver, Depends(get_subject_resolver)],
    response_type: Annotated[Optional[str], Query()] = None,
    client_id: Annotated[Optional[str], Query()] = None,
    redirect_uri: Annotated[Optional[str], Query()] = None,
    scope: Annotated[Optional[str], Query()] = None,
    state: Annotated[Optional[str], Query()] = None,
    code_challenge: Annotated[Optional[str], Query()] = None,
    code_challenge_method: Annotated[Optional[str], Query()] = None
):
    """
    OAuth authorization endpoint. Every request is approved for the subject
    returned by the configured SubjectResolver.

    Until the client and redirect_uri are verified, errors are answered
    directly as JSON. After that, errors go back to the client through a
    redirect to its redirect_uri.
    """
    logger.info(f"Authorization request for client '{client_id}'.")

    auth_params = {
        "response_type": response_type,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": code_challenge_method,
    }
    auth_request = AuthRequest(**{k: v for k, v in auth_params.items() if v is not None})

    try:
        client = await oauth_provider.validate_client_and_redirect(auth_request)
    except OAuthError as e:
        logger.warning(f"Authorization request rejected before redirect: {e.error} - {e.error_description}")
        raise
    except Exception as e:
        logger.error(f"Unexpected error validating authorization request: {e}", exc_info=True)
        raise ServerError(error_description="An unexpected error occurred during authorization.")

    try:
        granted_scopes = await oauth_provider.validate_authorization_parameters(auth_request, client)
        user_id = await subject_resolver.current_subject(request)
        redirect_target = await oauth_provider.generate_auth_code_and_build_redirect(
            auth_request=auth_request,
            client=client,
            user_id=user_id,
            granted_scopes=granted_scopes
        )
        logger.info(f"Authorization approved for client '{client.client_id}'. Redirecting.")
        return RedirectResponse(url=redirect_target, status_code=302)
    except OAuthError as e:
        error_redirect = oauth_provider.build_error_redirect_uri(
            auth_request.redirect_uri,
            error=e.error,
            error_description=e.error_description,
            state=auth_request.state
        )
        return RedirectResponse(url=error_redirect, status_code=302)
    except Exception as e:
        logger.error(f"Unexpected error in authorize for client '{client_id}': {e}", exc_info=True)
        raise ServerError(error_description="An unexpected error occurred during authorization.")

# --- Token endpoint ---

@oauth_router.post("/token", name="oauth_token")
async def token(
    request: Request,
    oauth_provider: Annotated[BadgeOAuthProvider, Depends(get_oauth_provider)],
):
    """OAuth token endpoint for the authorization_code, refresh_token and password grants."""
    params = await _read_request_params(request)
    logger.info(
        f"Token endpoint called. Grant type: '{params.get('grant_type')}' "
        f"Client ID: {params.get('client_id')}"
    )

    try:
        token_request = TokenRequest.model_validate(params)
    except PydanticValidationError as e:
        logger.warning(f"Token request parameter validation failed: {e.errors()}")
        raise InvalidRequestError(
            error_description=f"Invalid token request parameters: {_format_validation_errors(e)}"
        )

    try:
        token_response = await oauth_provider.handle_token_request(
            token_request=token_request,
            headers=request.headers
        )
    except OAuthError as e:
        logger.error(f"Token endpoint OAuthError: {e.error} - {e.error_description}", exc_info=False)
        raise
    except Exception as e:
        logger.error(f"Unexpected error during /token: {e}", exc_info=True)
        raise ServerError(error_description="An unexpected error occurred while processing the token request.")

    return JSONResponse(
        content=token_response.model_dump(exclude_none=True),
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"}
    )

# --- Revocation endpoint (RFC 7009) ---

@oauth_router.post("/revoke", name="oauth_revoke")
async def revoke(
    request: Request,
    oauth_provider: Annotated[BadgeOAuthProvider, Depends(get_oauth_provider)],
):
    """Token revocation. Answers 200 with an empty object whether or not the token was known."""
    params = await _read_request_params(request)

    try:
        revocation_request = RevocationRequest.model_validate(params)
    except PydanticValidationError as e:
        raise InvalidRequestError(
            error_description=f"Invalid revocation request parameters: {_format_validation_errors(e)}"
        )

    try:
        await oauth_provider.revoke_token(revocation_request, request.headers)
    except OAuthError as e:
        logger.warning(f"Revocation rejected: {e.error} - {e.error_description}")
        raise
    except Exception as e:
        logger.error(f"Unexpected error during /revoke: {e}", exc_info=True)
        raise ServerError(error_description="An unexpected error occurred while revoking the token.")

    return JSONResponse(content={})

# --- Discovery (RFC 8414) ---

@metadata_router.get(
    "/.well-known/oauth-authorization-server",
    response_model=WellKnownOAuthMetadata,
    name="oauth_metadata"
)
async def get_oauth_metadata(request: Request):
    """OAuth discovery endpoint providing server metadata."""
    configured_issuer = getattr(request.app.state, "issuer_base_url", None)
    base_url = (configured_issuer or str(request.base_url)).rstrip('/')

    try:
        register_path = request.app.url_path_for("oauth_register")
        authorize_path = request.app.url_path_for("oauth_authorize")
        token_path = request.app.url_path_for("oauth_token")
        revoke_path = request.app.url_path_for("oauth_revoke")
    except Exception as e_url_path:
        logger.error(f"Error generating URL paths for .well-known metadata: {e_url_path}", exc_info=True)
        raise ServerError(error_description="Could not generate .well-known metadata URLs.")

    return WellKnownOAuthMetadata(
        issuer=base_url,
        authorization_endpoint=f"{base_url}{authorize_path}",
        token_endpoint=f"{base_url}{token_path}",
        registration_endpoint=f"{base_url}{register_path}",
        revocation_endpoint=f"{base_url}{revoke_path}",
        scopes_supported=list(RECOGNIZED_SCOPES),
    )
