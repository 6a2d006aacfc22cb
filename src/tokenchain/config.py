"""Configuration management."""

import logging
import os
from functools import cache

from pydantic import ConfigDict, Field, computed_field, field_validator
from pydantic_settings import BaseSettings

from .consts import DEFAULT_GCE_TIMEOUT_SECONDS, PACKAGE_NAME


class Config(BaseSettings):
    """Configuration for the provider chain and the user token cache."""

    model_config = ConfigDict(
        env_prefix="TOKENCHAIN_", case_sensitive=False, extra="ignore"
    )
    log_level: str = Field(
        default="INFO",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
        description="Logging level",
    )
    verbose: bool = Field(
        default=False,
        description="Log the per-provider trace and disambiguation decisions",
    )

    # User OAuth token cache
    oauth_cache: str = Field(
        default="~/.cache/tokenchain",
        description="Directory holding cached user OAuth tokens",
    )
    use_oauth_cache: bool = Field(
        default=True, description="Persist user OAuth tokens to oauth_cache"
    )
    oauth_email: bool | str | None = Field(
        default=None,
        description="Preferred account: unset, true (use the only match) or an email",
    )
    oauth_client_file: str | None = Field(
        default=None, description="Path to an OAuth client JSON file"
    )
    package: str = Field(
        default=PACKAGE_NAME,
        description="Name of the calling package, part of the cache key",
    )
    interactive: bool | None = Field(
        default=None,
        description="Force interactive mode on or off; unset means detect a TTY",
    )

    # Compute metadata probe
    gce_timeout_seconds: float = Field(
        default=DEFAULT_GCE_TIMEOUT_SECONDS,
        gt=0,
        le=30,
        description="Timeout for detecting the GCE metadata server",
    )
    gce_use_ip: bool = Field(
        default=False, description="Address the metadata server by IP, not hostname"
    )

    @field_validator("oauth_email", mode="before")
    @classmethod
    def _parse_email_preference(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("", "none"):
                return None
            if lowered == "true":
                return True
            if lowered == "false":
                return None
            return value.strip()
        if value is False:
            return None
        return value

    @computed_field
    @property
    def cache_dir(self) -> str | None:
        """Expanded cache directory, or None when the disk cache is off."""
        if not self.use_oauth_cache:
            return None
        return os.path.expanduser(self.oauth_cache)


@cache
def get_config() -> Config:
    """Get a cached Config instance."""
    return Config()


def setup_logging(log_level: str = "INFO", verbose: bool = False) -> logging.Logger:
    """Configure logging for the entire application.

    With ``verbose`` the package logger drops to DEBUG regardless of
    ``log_level``, which exposes the provider trace.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )
    logger = logging.getLogger(PACKAGE_NAME)
    logger.setLevel(logging.DEBUG if verbose else numeric_level)
    return logger
