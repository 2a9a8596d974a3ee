"""Enumeration types for the Archetype Manager.

These enums are the shared vocabulary of the engine: how an archetype
feature interacts with the base class, where its interpretation came
from, how a diff entry changes the progression, and why an operation
was refused.
"""

from __future__ import annotations

from enum import StrEnum


class FeatureType(StrEnum):
    """How an archetype feature interacts with the base class progression."""

    REPLACEMENT = "replacement"
    MODIFICATION = "modification"
    ADDITIVE = "additive"
    UNKNOWN = "unknown"

    @property
    def targets_base_feature(self) -> bool:
        """Whether this type needs a matched base feature."""
        return self in (FeatureType.REPLACEMENT, FeatureType.MODIFICATION)


class FeatureSource(StrEnum):
    """Where a parsed feature's interpretation came from."""

    AUTO_PARSE = "auto-parse"
    OVERRIDE = "override"
    USER_FIX = "user-fix"


class DiffStatus(StrEnum):
    """Status of one entry in an archetype diff."""

    UNCHANGED = "unchanged"
    REMOVED = "removed"
    ADDED = "added"
    MODIFIED = "modified"


class OverrideTier(StrEnum):
    """Layers of the override store.

    Default priority is the declaration order: curated fixes, then
    reported-missing archetypes, then homebrew entries.
    """

    FIXES = "fixes"
    MISSING = "missing"
    CUSTOM = "custom"

    @property
    def feature_source(self) -> FeatureSource:
        """The FeatureSource recorded for features taken from this tier."""
        if self is OverrideTier.FIXES:
            return FeatureSource.USER_FIX
        return FeatureSource.OVERRIDE


class ArchetypeOrigin(StrEnum):
    """Where a catalog entry was found."""

    COMPENDIUM = "compendium"
    MISSING = "missing"
    CUSTOM = "custom"


class NotificationLevel(StrEnum):
    """Severity of a user-facing notification."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class FailureReason(StrEnum):
    """Machine-readable reason an apply/remove/restore was refused."""

    PERMISSION_DENIED = "permission_denied"
    DUPLICATE_APPLY = "duplicate_apply"
    NOT_APPLIED = "not_applied"
    NEEDS_USER_INPUT = "needs_user_input"
    CLASS_MISMATCH = "class_mismatch"
    IN_PROGRESS = "in_progress"
    NO_BACKUP = "no_backup"
    INVALID_RESULT = "invalid_result"
    PERSISTENCE_FAILED = "persistence_failed"


__all__ = [
    "FeatureType",
    "FeatureSource",
    "DiffStatus",
    "OverrideTier",
    "ArchetypeOrigin",
    "NotificationLevel",
    "FailureReason",
]
