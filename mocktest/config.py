from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="MOCKTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    log_level: str = "INFO"

    # Backend API
    api_base_url: str = "http://localhost:5001/api"
    api_timeout: float = 120.0  # large multipart uploads
    beacon_timeout: float = 2.0
    submit_max_retries: int = 3

    # Session cadence (seconds)
    sync_interval: int = 15
    time_sync_interval: int = 15
    keepalive_interval: int = 600
    redirect_delay: int = 3

    # Violations
    max_warnings: int = 5
    warning_timeout: int = 60
    blur_threshold: float = 0.5

    # Local state
    identity_file: Path = Path.home() / ".mocktest" / "candidate.json"
    percentile_table: Optional[Path] = None

    # Local service
    host: str = "127.0.0.1"
    port: int = 8000


# Global settings instance
settings = Settings()
