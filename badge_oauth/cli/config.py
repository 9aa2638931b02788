# badge_oauth/cli/config.py
import os
from dotenv import load_dotenv
from pathlib import Path

# This cli/config.py file is at <project>/badge_oauth/cli/config.py
project_root = Path(__file__).parent.parent.parent.resolve()

# Load environment variables from .env file, overriding system environment variables
load_dotenv(dotenv_path=project_root / '.env', override=True)

# Base URL of the authorization server the CLI talks to
BADGE_OAUTH_CLI_API_BASE_URL = os.getenv("BADGE_OAUTH_CLI_API_BASE_URL", "http://127.0.0.1:8000")
