"""Data models for the Archetype Manager.

Pydantic V2 models for everything the engine reads, produces and
persists, plus the static scalable-feature registry.

Modules:
    enums: Feature types, sources, diff statuses, override tiers.
    archetype: Feature progressions, parsed archetypes, diffs, conflicts.
    overrides: Override store records.
    state: Persisted per-class and per-actor tracking state.
    progression: Scalable class feature series.
"""

from __future__ import annotations

from archetype_manager.models.archetype import (
    ArchetypeConflict,
    AssociationId,
    Classification,
    Conflict,
    DiffEntry,
    FeatureAssociation,
    ParsedArchetype,
    ParsedFeature,
    RawArchetype,
    RawFeature,
    Resolution,
    StackValidation,
)
from archetype_manager.models.enums import (
    ArchetypeOrigin,
    DiffStatus,
    FailureReason,
    FeatureSource,
    FeatureType,
    NotificationLevel,
    OverrideTier,
)
from archetype_manager.models.overrides import (
    OverrideFeature,
    OverrideHit,
    OverrideRecord,
)
from archetype_manager.models.state import (
    ActorArchetypeIndex,
    ActorRef,
    AppliedArchetypeRecord,
    ClassArchetypeState,
    ClassFeatureHolder,
    OperationResult,
)


__all__ = [
    # Enums
    "ArchetypeOrigin",
    "DiffStatus",
    "FailureReason",
    "FeatureSource",
    "FeatureType",
    "NotificationLevel",
    "OverrideTier",
    # Archetypes
    "ArchetypeConflict",
    "AssociationId",
    "Classification",
    "Conflict",
    "DiffEntry",
    "FeatureAssociation",
    "ParsedArchetype",
    "ParsedFeature",
    "RawArchetype",
    "RawFeature",
    "Resolution",
    "StackValidation",
    # Overrides
    "OverrideFeature",
    "OverrideHit",
    "OverrideRecord",
    # State
    "ActorArchetypeIndex",
    "ActorRef",
    "AppliedArchetypeRecord",
    "ClassArchetypeState",
    "ClassFeatureHolder",
    "OperationResult",
]
