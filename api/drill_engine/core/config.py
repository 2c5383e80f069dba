from pydantic_settings import BaseSettings
import os
from pathlib import Path

# Try to load .env file explicitly before creating Settings
try:
    from dotenv import load_dotenv
    import logging
    _logger = logging.getLogger(__name__)

    # Look for .env in api directory (parent of drill_engine directory)
    api_dir = Path(__file__).parent.parent.parent
    env_path = api_dir / ".env"

    if env_path.exists():
        load_dotenv(env_path, override=False)
        _logger.info(f"Loaded .env file from: {env_path}")
    else:
        current_env = Path(".env")
        if current_env.exists():
            load_dotenv(current_env, override=False)
            _logger.info(f"Loaded .env file from: {current_env.absolute()}")
        else:
            _logger.debug(f".env file not found at {env_path} or {current_env.absolute()}")
except Exception as e:
    import logging
    _logger = logging.getLogger(__name__)
    _logger.warning(f"Error loading .env file: {e}")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = ""

    # API
    api_v1_prefix: str = "/api/v1"

    # CORS
    cors_origins: list[str] = ["*"]

    # Gated progression
    pass_threshold: int = 65
    default_duration_days: int = 1

    # In-memory practice sessions idle longer than this are dropped
    practice_session_ttl_minutes: int = 60

    # Speechace pronunciation scoring
    speechace_api_key: str = ""
    speechace_api_endpoint: str = "https://api.speechace.co"
    speechace_dialect: str = "en-us"
    oracle_timeout_seconds: int = 15

    # Notification channels (empty URL disables the channel)
    email_api_url: str = ""
    email_api_key: str = ""
    email_from: str = ""
    push_api_url: str = ""
    app_base_url: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = False

    def __init__(self, **kwargs):
        # Hosting platforms provide DATABASE_URL uppercase
        if not kwargs.get("database_url"):
            kwargs["database_url"] = os.getenv("DATABASE_URL", "")
        if not kwargs.get("speechace_api_key"):
            kwargs["speechace_api_key"] = os.getenv("SPEECHACE_API_KEY", "")
        if not kwargs.get("email_api_key"):
            kwargs["email_api_key"] = os.getenv("EMAIL_API_KEY", "")
        super().__init__(**kwargs)


# Create settings instance
settings = Settings()

# Validate required DATABASE_URL
if not settings.database_url:
    raise ValueError("DATABASE_URL environment variable is required")
