"""Custom exception hierarchy for the Archetype Manager.

This module defines the exception hierarchy used across the archetype
resolution and application engine. All exceptions inherit from
ArchetypeManagerError, enabling unified error handling at the host
boundary while preserving domain-specific context.

Apply/remove refusals are raised internally by the Applicator and turned
into failed OperationResult values before they reach the host; they carry
a FailureReason code so callers can branch without string matching.

Example:
    >>> from archetype_manager.core.exceptions import DuplicateApplyError
    >>> raise DuplicateApplyError("Already applied", slug="two-handed-fighter")
"""

from __future__ import annotations

from typing import Any

from archetype_manager.models.enums import FailureReason


class ArchetypeManagerError(Exception):
    """Base exception for all Archetype Manager errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Configuration & Validation Exceptions
# =============================================================================


class ConfigurationError(ArchetypeManagerError):
    """Raised when application configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with config key context.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


class ValidationError(ArchetypeManagerError):
    """Raised when data validation fails.

    This includes malformed manual archetype entries and diffs that would
    produce an invalid feature progression.
    """

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        invalid_value: Any | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize validation error with field context.

        Args:
            message: Human-readable error description.
            field_name: Name of the field that failed validation.
            invalid_value: The value that failed validation.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if field_name:
            combined_details["field_name"] = field_name
        if invalid_value is not None:
            combined_details["invalid_value"] = invalid_value
        super().__init__(message, details=combined_details)


# =============================================================================
# Content & Override Store Exceptions
# =============================================================================


class ContentSourceError(ArchetypeManagerError):
    """Raised when the archetype/feature content source is unavailable.

    The catalog catches this and degrades to override-only mode.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if source:
            combined_details["source"] = source
        super().__init__(message, details=combined_details)


class OverrideStoreError(ArchetypeManagerError):
    """Raised when an override tier cannot be read or written."""

    def __init__(
        self,
        message: str,
        *,
        tier: str | None = None,
        slug: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize override store error with tier context.

        Args:
            message: Human-readable error description.
            tier: The override tier involved.
            slug: The archetype slug involved.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if tier:
            combined_details["tier"] = tier
        if slug:
            combined_details["slug"] = slug
        super().__init__(message, details=combined_details)


class CorruptOverrideRecordError(OverrideStoreError):
    """Raised when a stored override record cannot be decoded.

    Resolvers treat this as "tier absent"; it never reaches the host.
    """


# =============================================================================
# Application Exceptions
# =============================================================================


class ApplicationError(ArchetypeManagerError):
    """Base exception for refused apply/remove operations.

    Attributes:
        reason: Machine-readable failure code.
    """

    reason: FailureReason = FailureReason.PERSISTENCE_FAILED

    def __init__(
        self,
        message: str,
        *,
        slug: str | None = None,
        class_tag: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application error with archetype context.

        Args:
            message: Human-readable error description.
            slug: The archetype slug involved.
            class_tag: Tag of the class feature holder involved.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if slug:
            combined_details["slug"] = slug
        if class_tag:
            combined_details["class_tag"] = class_tag
        super().__init__(message, details=combined_details)


class PermissionDeniedError(ApplicationError):
    """Raised when the caller may not modify the target holder."""

    reason = FailureReason.PERMISSION_DENIED


class DuplicateApplyError(ApplicationError):
    """Raised when an archetype is already applied to the holder."""

    reason = FailureReason.DUPLICATE_APPLY


class NotAppliedError(ApplicationError):
    """Raised when removing an archetype that is not applied."""

    reason = FailureReason.NOT_APPLIED


class UnresolvedFeaturesError(ApplicationError):
    """Raised when an archetype still has features needing user input."""

    reason = FailureReason.NEEDS_USER_INPUT

    def __init__(
        self,
        message: str,
        *,
        feature_names: list[str] | None = None,
        slug: str | None = None,
        class_tag: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if feature_names:
            combined_details["feature_names"] = feature_names
        super().__init__(message, slug=slug, class_tag=class_tag, details=combined_details)


class ClassMismatchError(ApplicationError):
    """Raised when an archetype belongs to a different class."""

    reason = FailureReason.CLASS_MISMATCH


class OperationInProgressError(ApplicationError):
    """Raised when another apply/remove is pending on the same holder."""

    reason = FailureReason.IN_PROGRESS


class NoBackupError(ApplicationError):
    """Raised when an emergency restore finds no original progression."""

    reason = FailureReason.NO_BACKUP


class InvalidResultError(ApplicationError):
    """Raised when a computed progression fails validation or is out of date."""

    reason = FailureReason.INVALID_RESULT


class PersistenceError(ApplicationError):
    """Raised when a persistence write is rejected mid-operation."""

    reason = FailureReason.PERSISTENCE_FAILED


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
]
