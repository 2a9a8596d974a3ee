"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        ArchetypeManagerError: Base exception for all application errors.
        ConfigurationError: Configuration-related errors.
        ValidationError: Data validation errors.
        ApplicationError: Base for refused apply/remove operations.

    Configuration:
        Settings: Main application settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up application logging.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
        operation_context: Bind fields for the duration of a block.
"""

from __future__ import annotations

from archetype_manager.core.config import (
    ContentSettings,
    OverrideSettings,
    ResolverSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from archetype_manager.core.exceptions import (
    ApplicationError,
    ArchetypeManagerError,
    ClassMismatchError,
    ConfigurationError,
    ContentSourceError,
    CorruptOverrideRecordError,
    DuplicateApplyError,
    InvalidResultError,
    NoBackupError,
    NotAppliedError,
    OperationInProgressError,
    OverrideStoreError,
    PermissionDeniedError,
    PersistenceError,
    UnresolvedFeaturesError,
    ValidationError,
)
from archetype_manager.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    operation_context,
)


__all__ = [
    # Base exception
    "ArchetypeManagerError",
    # Configuration exceptions
    "ConfigurationError",
    "ValidationError",
    # Content & override exceptions
    "ContentSourceError",
    "OverrideStoreError",
    "CorruptOverrideRecordError",
    # Application exceptions
    "ApplicationError",
    "PermissionDeniedError",
    "DuplicateApplyError",
    "NotAppliedError",
    "UnresolvedFeaturesError",
    "ClassMismatchError",
    "OperationInProgressError",
    "NoBackupError",
    "InvalidResultError",
    "PersistenceError",
    # Configuration
    "ContentSettings",
    "OverrideSettings",
    "ResolverSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "operation_context",
]
