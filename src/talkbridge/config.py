"""
TalkBridge Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables.
"""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_cache_dir() -> str:
    """
    Get XDG-compliant cache directory for TalkBridge.

    Follows XDG Base Directory Specification:
    - Uses $XDG_CACHE_HOME/talkbridge if XDG_CACHE_HOME is set
    - Falls back to $HOME/.cache/talkbridge if not set
    - Returns relative path .talkbridge_cache if HOME not available (dev/testing)

    Returns:
        str: Path to cache directory
    """
    xdg_cache_home = os.getenv("XDG_CACHE_HOME")
    if xdg_cache_home:
        return str(Path(xdg_cache_home) / "talkbridge")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".cache" / "talkbridge")

    return ".talkbridge_cache"


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for TalkBridge logs.

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "talkbridge" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "talkbridge" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    postgres_db: str = "talkbridge"
    postgres_user: str = "talkbridge"
    postgres_password: str = "talkbridge_dev_password"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    database_url_override: str = Field(default="", validation_alias="DATABASE_URL")

    db_pool_size: int = 5
    db_pool_max_overflow: int = 5
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Full DATABASE_URL if given, otherwise built from components."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # LLM API (OpenAI-compatible)
    ai_api_key: str = ""
    ai_api_endpoint: str = "https://chat-ai.academiccloud.de/v1"
    ai_default_model: str = "meta-llama-3.1-8b-instruct"
    ai_embedding_model: str = "e5-mistral-7b-instruct"
    ai_request_timeout: float = 180.0
    ai_max_retries: int = 3
    ai_initial_backoff: float = 1.0
    ai_max_backoff: float = 60.0

    # Outbound rate limiting (shared across worker processes)
    rate_limit_enabled: bool = True
    rate_limit_min_interval: float = 5.0
    rate_limit_lock_path: str = f"{get_xdg_cache_dir()}/api_call.lock"

    # Nextcloud Talk
    talk_server: str = ""  # Host name of the Nextcloud instance, e.g. cloud.example.org
    talk_bot_secret: str = ""
    talk_timeout: float = 30.0
    talk_verify_signature: bool = True

    # Conversation
    reset_command: str = "((reset))"

    # Worker
    worker_batch_size: int = 5
    worker_poll_interval: float = 5.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    # Application
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5
    log_to_stdout: bool = True  # Log INFO/DEBUG to stdout
    log_to_stderr: bool = True  # Log WARNING/ERROR/CRITICAL to stderr

    # LLM Logging
    llm_logging_enabled: bool = False
    llm_log_requests: bool = True
    llm_log_responses: bool = True

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())


# Global settings instance
settings = Settings()
