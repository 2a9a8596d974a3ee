"""Configuration management for the Archetype Manager.

This module provides centralized configuration management using
pydantic-settings, supporting environment variables, .env files, and
runtime overrides.

Engine components never read the settings singleton themselves: the
relevant sub-settings object is passed into their constructors, and a
default-constructed one is used when the caller passes nothing.

Example:
    >>> from archetype_manager.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.overrides.tier_order
    [<OverrideTier.FIXES: 'fixes'>, <OverrideTier.MISSING: 'missing'>, <OverrideTier.CUSTOM: 'custom'>]

Environment Variables:
    ARCHETYPE_MANAGER_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ARCHETYPE_MANAGER_CONTENT_ENABLED: Disable to run in override-only mode
    ARCHETYPE_MANAGER_CONTENT_SOURCE_PATH: JSON content file for the file source
    ARCHETYPE_MANAGER_OVERRIDE_DATABASE_PATH: SQLite file for overrides and tags
    ARCHETYPE_MANAGER_RESOLVER_LEVEL_DISAMBIGUATION: nearest, first or exact
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from archetype_manager.core.exceptions import ConfigurationError
from archetype_manager.models.enums import OverrideTier


class ContentSettings(BaseSettings):
    """Configuration for the archetype/feature content source.

    Attributes:
        enabled: Whether the content source is consulted at all.
        archetype_pack: Identifier of the archetype collection.
        feature_pack: Identifier of the archetype feature collection.
        source_path: Optional JSON file backing the file content source.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCHETYPE_MANAGER_CONTENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = Field(
        default=True,
        description="Consult the content source (False = override-only mode)",
    )
    archetype_pack: str = Field(
        default="pf1e-archetypes.pf-archetypes",
        description="Archetype collection identifier",
    )
    feature_pack: str = Field(
        default="pf1e-archetypes.pf-arch-features",
        description="Archetype feature collection identifier",
    )
    source_path: Path | None = Field(
        default=None,
        description="JSON content file for the file-backed source",
    )


class OverrideSettings(BaseSettings):
    """Configuration for the tiered override store.

    Attributes:
        tier_order: Tiers in descending priority.
        privileged_tiers: Tiers only privileged users may write.
        auto_create_store: Create the backing store on first use.
        database_path: Path to the SQLite database file.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCHETYPE_MANAGER_OVERRIDE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tier_order: list[OverrideTier] = Field(
        default_factory=lambda: [OverrideTier.FIXES, OverrideTier.MISSING, OverrideTier.CUSTOM],
        description="Override tiers in descending priority",
    )
    privileged_tiers: list[OverrideTier] = Field(
        default_factory=lambda: [OverrideTier.FIXES, OverrideTier.MISSING],
        description="Tiers writable only by privileged users",
    )
    auto_create_store: bool = Field(
        default=True,
        description="Create the override store on first use",
    )
    database_path: Path = Field(
        default=Path("data/archetype_manager.db"),
        description="Path to SQLite database",
    )

    @model_validator(mode="after")
    def validate_tier_order(self) -> "OverrideSettings":
        """Ensure the tier order is a permutation of the known tiers.

        Returns:
            Self if validation passes.

        Raises:
            ConfigurationError: If a tier is missing or repeated.
        """
        if sorted(self.tier_order) != sorted(OverrideTier):
            raise ConfigurationError(
                f"tier_order must list each of {[t.value for t in OverrideTier]} exactly once, "
                f"got {[t.value for t in self.tier_order]}",
                config_key="tier_order",
            )
        return self


class ResolverSettings(BaseSettings):
    """Configuration for archetype resolution.

    Attributes:
        show_parse_warnings: Notify when features cannot be auto-parsed.
        persist_user_resolutions: Save "ask user" answers to the fixes tier.
        level_disambiguation: How to pick among same-name associations.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCHETYPE_MANAGER_RESOLVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    show_parse_warnings: bool = Field(
        default=True,
        description="Warn when archetype features cannot be parsed",
    )
    persist_user_resolutions: bool = Field(
        default=True,
        description="Save user resolutions to the fixes tier",
    )
    level_disambiguation: Literal["nearest", "first", "exact"] = Field(
        default="nearest",
        description="Rule for choosing among same-name associations",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        app_version: Application version string.
        debug: Enable debug mode.
        log_level: Application logging level.
        json_logs: Render logs as JSON.
        content: Content source settings.
        overrides: Override store settings.
        resolver: Resolver settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCHETYPE_MANAGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(
        default="PF1e Archetype Manager",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON",
    )

    content: ContentSettings = Field(default_factory=ContentSettings)
    overrides: OverrideSettings = Field(default_factory=OverrideSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The application Settings instance.

    Raises:
        ConfigurationError: If configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load application settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access."""
    get_settings.cache_clear()


__all__ = [
    "ContentSettings",
    "OverrideSettings",
    "ResolverSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
