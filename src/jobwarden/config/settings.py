"""
Application settings using Pydantic.

Provides environment-based configuration loading with JOBWARDEN_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Cluster connection
    namespace: str = "default"
    kubeconfig: str | None = None
    context: str | None = None
    master_url: str | None = None
    token: str | None = None
    ca_cert: str | None = None
    verify_ssl: bool = True
    request_timeout: float = 30.0

    # Waiting
    poll_interval: float = 1.0
    watch_timeout: int = 300
    watch_read_timeout: float = 2.0
    wait_until_running: float = 600.0  # 10 minutes
    wait_running: float = 3600.0  # 1 hour

    # Lifecycle
    delete: bool = True
    pod_log_tail_lines: int = 1000
    handle_close_timeout: float = 5.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json, console

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "JOBWARDEN_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
