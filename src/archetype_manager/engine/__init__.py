"""Archetype resolution & application engine.

Components, leaves first:

Submodules:
    classifier: Feature description classification (regex strategy)
    overrides: Tiered override lookup and manual entry validation
    resolver: Raw archetype -> ParsedArchetype, target matching
    diff: Progression vs. archetype diff
    conflicts: Archetype compatibility checks
    applicator: Stacked apply/remove with per-archetype undo records
    ports: Collaborator protocols (progression, tags, overrides, content)
    manager: Facade wiring the whole pipeline

Example:
    >>> from archetype_manager.engine import DiffEngine, FeatureClassifier
    >>>
    >>> FeatureClassifier().classify("Level: 2. Replaces Bravery.").target
    'Bravery'
"""

from __future__ import annotations

# =============================================================================
# Classification
# =============================================================================
from archetype_manager.engine.classifier import (
    FeatureClassifier,
    archetype_short_name,
    normalize_name,
    scope_features,
    slugify,
    strip_html,
)

# =============================================================================
# Ports
# =============================================================================
from archetype_manager.engine.ports import (
    ClassifierStrategy,
    ContentSource,
    FeatureResolver,
    LoggingNotificationSink,
    NotificationSink,
    OverrideStore,
    ProgressionSource,
    TagStore,
    send_notification,
)

# =============================================================================
# Resolution
# =============================================================================
from archetype_manager.engine.overrides import ManualEntryResult, OverrideResolver
from archetype_manager.engine.resolver import ArchetypeResolver

# =============================================================================
# Diff, Conflicts & Application
# =============================================================================
from archetype_manager.engine.applicator import (
    INDEX_KEY,
    STATE_KEY,
    Applicator,
    actor_scope,
    holder_scope,
)
from archetype_manager.engine.conflicts import ConflictChecker
from archetype_manager.engine.diff import DiffEngine
from archetype_manager.engine.manager import ArchetypeManager, ArchetypePreview


__all__ = [
    # Classification
    "FeatureClassifier",
    "archetype_short_name",
    "normalize_name",
    "scope_features",
    "slugify",
    "strip_html",
    # Ports
    "ClassifierStrategy",
    "ContentSource",
    "FeatureResolver",
    "LoggingNotificationSink",
    "NotificationSink",
    "OverrideStore",
    "ProgressionSource",
    "TagStore",
    "send_notification",
    # Resolution
    "ManualEntryResult",
    "OverrideResolver",
    "ArchetypeResolver",
    # Diff, Conflicts & Application
    "DiffEngine",
    "ConflictChecker",
    "Applicator",
    "INDEX_KEY",
    "STATE_KEY",
    "actor_scope",
    "holder_scope",
    "ArchetypeManager",
    "ArchetypePreview",
]
