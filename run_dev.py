import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Logging must be configured before the application package is imported
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s RUN_DEV.PY - [%(levelname)s] - %(message)s'
)
logger = logging.getLogger("run_dev")

TRUTHY = {"true", "1", "yes", "on", "t"}


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in TRUTHY


def main() -> None:
    dotenv_path = Path(__file__).parent.resolve() / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=True)
        logger.info(f"Loaded environment from {dotenv_path}")
    else:
        logger.warning(f"No .env at {dotenv_path}; using OS environment and settings defaults.")

    logger.info(f"JWT_SECRET_KEY: {'********' if os.getenv('JWT_SECRET_KEY') else 'unset (ephemeral key)'}")
    logger.info(f"ISSUER_BASE_URL: {os.getenv('ISSUER_BASE_URL')}")
    logger.info(f"EXPIRY_SWEEP_INTERVAL_SECONDS: {os.getenv('EXPIRY_SWEEP_INTERVAL_SECONDS')}")

    host = os.getenv("DEV_SERVER_HOST", "127.0.0.1")
    port = int(os.getenv("DEV_SERVER_PORT", "8000"))
    log_level = os.getenv("DEV_SERVER_LOG_LEVEL", "info").lower()
    reload = _env_flag("DEV_SERVER_RELOAD", default=_env_flag("DEBUG_MODE", default=False))

    logger.info(f"Serving badge_oauth.main:app on {host}:{port} (log level {log_level}, reload {reload})")
    uvicorn.run("badge_oauth.main:app", host=host, port=port, log_level=log_level, reload=reload)


if __name__ == "__main__":
    main()
