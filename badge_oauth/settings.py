# badge_oauth/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# This settings.py file is at <project>/badge_oauth/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"

if DOTENV_PATH.exists():
    logger.debug(f"SETTINGS.PY: .env file found at {DOTENV_PATH}")
else:
    logger.debug(
        f"SETTINGS.PY: .env file not found at {DOTENV_PATH}. "
        "Relying on OS env vars or defaults."
    )


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_name: str = "Open Badges OAuth 2.0 Authorization Server"
    debug_mode: bool = False
    log_level: str = "INFO"

    # Signing key for the bearer access tokens (HS256 needs at least 32 chars)
    jwt_secret_key: Optional[str] = Field(
        default=None,
        description="Secret used to sign access tokens. MUST be set for production."
    )
    jwt_algorithm: str = "HS256"

    # Public base URL used in the discovery document; request base URL otherwise
    issuer_base_url: Optional[str] = None

    # Periodic purge of expired codes and refresh tokens; 0 disables it
    expiry_sweep_interval_seconds: int = Field(default=0, ge=0)

    model_config = SettingsConfigDict(
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8'
    )


settings = Settings()

logger.debug(
    f"SETTINGS.PY: debug_mode={settings.debug_mode}, log_level='{settings.log_level}', "
    f"jwt_secret_key={'********' if settings.jwt_secret_key else 'None'}, "
    f"expiry_sweep_interval_seconds={settings.expiry_sweep_interval_seconds}"
)
