# badge_oauth/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import logging
import secrets
from typing import Optional
from dotenv import load_dotenv
load_dotenv()

from .settings import settings, Settings
from .oauth.endpoints import oauth_router, metadata_router
from .oauth.errors import OAuthError
from .oauth.provider import BadgeOAuthProvider, ACCESS_TOKEN_LIFETIME_SECONDS
from .oauth.storage import AuthorizationServerState, create_in_memory_state
from .oauth.subject import SubjectResolver, DemoSubjectResolver
from .oauth.token_issuer import TokenIssuerProtocol, JwtTokenIssuer

# Configure logging based on debug mode setting
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level="DEBUG" if settings.debug_mode else settings.log_level.upper(),
        format='%(asctime)s - %(name)s [%(levelname)s] - %(message)s'
    )

logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG if settings.debug_mode else logging.INFO)


async def _run_expiry_sweep(state: AuthorizationServerState, interval_seconds: int) -> None:
    """Periodically purges expired codes and refresh tokens until cancelled."""
    logger.info(f"Expiry sweep started (every {interval_seconds}s).")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await state.purge_expired()
        except Exception as e_sweep:
            logger.error(f"Expiry sweep failed: {e_sweep}", exc_info=True)


@asynccontextmanager
async def badge_oauth_lifespan(app_instance: FastAPI):
    """
    Initializes the authorization server stores on startup, runs the optional
    expiry sweep, and tears everything down on shutdown.
    """
    state: AuthorizationServerState = app_instance.state.authorization_server_state
    logger.info("Application startup initiated.")
    await state.initialize()
    logger.info("All OAuth data stores initialized.")

    sweep_task: Optional[asyncio.Task] = None
    interval = app_instance.state.expiry_sweep_interval_seconds
    if interval > 0:
        sweep_task = asyncio.create_task(_run_expiry_sweep(state, interval))

    yield

    logger.info("Application shutdown initiated.")
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            logger.info("Expiry sweep stopped.")
    await state.teardown()
    logger.info("All components torn down.")


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    """Renders OAuth errors as flat RFC 6749 Section 5.2 bodies."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


def _resolve_jwt_secret(app_settings: Settings) -> str:
    if app_settings.jwt_secret_key:
        return app_settings.jwt_secret_key
    logger.critical(
        "JWT_SECRET_KEY is not set. Generated an ephemeral signing key; "
        "all access tokens become invalid when the process restarts."
    )
    return secrets.token_urlsafe(48)


def create_app(
    state: Optional[AuthorizationServerState] = None,
    token_issuer: Optional[TokenIssuerProtocol] = None,
    subject_resolver: Optional[SubjectResolver] = None,
    app_settings: Optional[Settings] = None
) -> FastAPI:
    """
    Builds the FastAPI application with all authorization server state
    injected. Every argument defaults to the in-process implementation.
    """
    app_settings = app_settings or settings
    state = state or create_in_memory_state()
    if token_issuer is None:
        token_issuer = JwtTokenIssuer(
            secret_key=_resolve_jwt_secret(app_settings),
            revocation_store=state.revocation_store,
            algorithm=app_settings.jwt_algorithm,
            expires_in_seconds=ACCESS_TOKEN_LIFETIME_SECONDS
        )
    subject_resolver = subject_resolver or DemoSubjectResolver()

    app = FastAPI(
        title=app_settings.app_name,
        debug=app_settings.debug_mode,
        version="0.1.0",
        lifespan=badge_oauth_lifespan
    )

    app.state.authorization_server_state = state
    app.state.token_issuer = token_issuer
    app.state.subject_resolver = subject_resolver
    app.state.oauth_provider = BadgeOAuthProvider(state=state, token_issuer=token_issuer)
    app.state.issuer_base_url = app_settings.issuer_base_url
    app.state.expiry_sweep_interval_seconds = app_settings.expiry_sweep_interval_seconds

    app.add_exception_handler(OAuthError, oauth_error_handler)

    @app.get("/health")
    async def health_api():
        """Liveness probe."""
        return {"status": "healthy", "service": app_settings.app_name}

    # Mount routers with appropriate prefixes and tags
    app.include_router(oauth_router, prefix="/oauth2", tags=["Open Badges OAuth 2.0"])
    app.include_router(metadata_router, tags=["OAuth Discovery"])

    logger.info(f"{app_settings.app_name} initialized. Routers mounted.")
    return app


app = create_app()
