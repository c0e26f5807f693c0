"""
jobwarden configuration.

Pydantic-based settings loaded from JOBWARDEN_* environment variables and
an optional .env file.
"""

from jobwarden.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
