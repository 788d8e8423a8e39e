"""
Settings validation with Pydantic.

Provides the SupervisorSettings model that the environment loader fills
and RetryPolicy.from_settings() consumes.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SupervisorSettings(BaseModel):
    """Runtime settings for retryguard."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(ge=1, le=100, default=3)
    delay_seconds: float = Field(ge=0, le=3600, default=0.2)
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_json: bool = False
    log_dir: Optional[str] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("log_dir", mode="before")
    @classmethod
    def blank_dir_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v
