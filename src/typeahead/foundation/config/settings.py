"""Settings read from ``TYPEAHEAD_*`` environment variables.

Search tunables live under ``TYPEAHEAD_SEARCH_`` and logging under
``TYPEAHEAD_LOG_``. A ``.env`` file in the working directory is read too.

Example:
    >>> from typeahead.foundation.config import get_settings
    >>> get_settings().search.debounce
    0.3

    # TYPEAHEAD_SEARCH_DEBOUNCE=0.5 TYPEAHEAD_LOG_LEVEL=debug
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import (
    Field,
    NonNegativeFloat,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class SearchSettings(BaseSettings):
    """Search controller tunables."""

    model_config = SettingsConfigDict(env_prefix="TYPEAHEAD_SEARCH_", extra="ignore")

    debounce: NonNegativeFloat = Field(default=0.3, description="Quiet period before a lookup, in seconds; 0 disables it")
    grace_period: NonNegativeFloat = Field(
        default=5.0,
        description="How long work keeps running after the last observer leaves, in seconds",
    )
    started: Literal["while_subscribed", "eagerly"] = "while_subscribed"

    @field_validator("started", mode="before")
    @classmethod
    def _normalize_started(cls, v: str) -> str:
        """Accept WHILE_SUBSCRIBED / while-subscribed spellings."""
        return v.lower().replace("-", "_") if isinstance(v, str) else v


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TYPEAHEAD_LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = Field(default=None, description="None picks colors when the output is a tty")

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class TypeaheadSettings(BaseSettings):
    """Root settings object.

    Sections load from their own prefixes, so ``TYPEAHEAD_SEARCH_GRACE_PERIOD=10``
    and ``TYPEAHEAD_LOG_FORMAT=json`` both work alongside ``TYPEAHEAD_ENVIRONMENT``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TYPEAHEAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    environment: Literal["development", "staging", "production"] = "development"
    search: SearchSettings = Field(default_factory=SearchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _lower_environment(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> TypeaheadSettings:
    """Process-wide settings, read once."""
    return TypeaheadSettings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next ``get_settings()`` re-reads the environment."""
    get_settings.cache_clear()
