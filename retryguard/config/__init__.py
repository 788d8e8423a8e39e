"""
Configuration module for retryguard.

Settings come from RETRYGUARD_* environment variables, optionally seeded
from a .env file, and are validated by a pydantic model.
"""

from retryguard.config.schema import SupervisorSettings
from retryguard.config.env_loader import ENV_PREFIX, load_settings

__all__ = [
    "SupervisorSettings",
    "ENV_PREFIX",
    "load_settings",
]
