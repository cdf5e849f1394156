from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Built once at process start and passed to whatever needs it; nothing reads
    runtime credentials from the environment at call time.
    """

    # ------------------------------------------------------------------
    # Runtime selection
    # ------------------------------------------------------------------
    # "simulator": in-memory runtime, no external calls (default)
    # "n8n":       self-hosted or cloud n8n REST API
    # "pipedream": Pipedream REST API
    runtime_provider: Literal["simulator", "n8n", "pipedream"] = "simulator"
    runtime_timeout_seconds: float = 30.0

    # ------------------------------------------------------------------
    # n8n credentials
    # ------------------------------------------------------------------
    n8n_api_url: str = "http://localhost:5678"
    n8n_api_key: Optional[str] = None       # X-N8N-API-KEY

    # ------------------------------------------------------------------
    # Pipedream credentials
    # ------------------------------------------------------------------
    pipedream_api_url: str = "https://api.pipedream.com/v1"
    pipedream_api_key: Optional[str] = None  # Bearer token

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------
    # Appended to the built-in supported apps, e.g. SUPPORTED_APPS='["airtable"]'
    supported_apps: list[str] = []

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
