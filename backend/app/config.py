import logging
import os
import sys

from pydantic_settings import BaseSettings
from typing import Optional


def setup_logging():
    """Configure application logging."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# Initialize logging on import
setup_logging()

logger = logging.getLogger(__name__)

# Database path - use data directory for persistence
DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")


def default_database_url() -> str:
    """SQLite file under the backend data directory."""
    return f"sqlite:///{os.path.join(DATA_DIR, 'analyzer.db')}"


class Settings(BaseSettings):
    # Credential backfilled into the synthesized default (OpenRouter) profile.
    # Keep it out of source control; set DEFAULT_API_KEY in .env instead.
    default_api_key: Optional[str] = None

    # Persistence
    database_url: str = default_database_url()

    # Timeout settings (seconds, per HTTP attempt)
    provider_timeout: int = 60

    # Retry / backoff (milliseconds)
    retry_attempts: int = 3
    fallback_attempts: int = 2
    backoff_base_ms: int = 600
    backoff_jitter_ms: int = 250
    backoff_max_ms: int = 30000

    # Prompt building
    prompt_max_bytes: int = 100 * 1024
    prompt_top_n: int = 10
    temperature: float = 0.2

    # Sent to OpenRouter for attribution
    app_title: str = "Spring Boot Startup Analyzer"
    app_url: str = "http://localhost:8000"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
