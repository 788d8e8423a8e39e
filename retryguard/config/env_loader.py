"""
Environment Loading

Reads RETRYGUARD_* variables (optionally from a .env file) into a validated
SupervisorSettings.

Usage:
    from retryguard.config.env_loader import load_settings

    settings = load_settings(env_file=Path(".env"))
    policy = RetryPolicy.from_settings(settings)
"""

import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import ValidationError

from retryguard.config.schema import SupervisorSettings
from retryguard.errors.types import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RETRYGUARD_"

# env var suffix -> settings field
ENV_FIELDS = {
    "MAX_ATTEMPTS": "max_attempts",
    "DELAY_SECONDS": "delay_seconds",
    "LOG_LEVEL": "log_level",
    "LOG_JSON": "log_json",
    "LOG_DIR": "log_dir",
}


def _collect(environ: Mapping[str, str]) -> Dict[str, str]:
    values = {}
    for suffix, field_name in ENV_FIELDS.items():
        raw = environ.get(f"{ENV_PREFIX}{suffix}")
        if raw is not None and raw != "":
            values[field_name] = raw
    return values


def load_settings(
    env_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SupervisorSettings:
    """
    Build settings from the environment.

    Args:
        env_file: .env file to load first; existing variables are never overwritten
        environ: Mapping to read instead of os.environ (tests)

    Raises:
        ConfigurationError: if env_file is missing or a value fails validation
    """
    if env_file is not None:
        env_path = Path(env_file)
        if not env_path.exists():
            raise ConfigurationError(f".env file not found: {env_path}", path=str(env_path))
        load_dotenv(env_path, override=False)
        logger.debug(f"Loaded .env from {env_path}")

    values = _collect(os.environ if environ is None else environ)
    try:
        return SupervisorSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid retryguard settings: {e}", fields=sorted(values)) from e
