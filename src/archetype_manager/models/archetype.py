"""Archetype, feature and diff models.

These are the values that flow through the engine, leaves first:

    RawArchetype/RawFeature -> Classification -> ParsedFeature
    -> ParsedArchetype -> DiffEntry -> Conflict

Every model serializes to plain JSON with ``model_dump(mode="json")`` so
it can be persisted through the tag storage port unchanged.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from archetype_manager.models.enums import DiffStatus, FeatureSource, FeatureType


AssociationId = str | int


# =============================================================================
# Feature Progression
# =============================================================================


class FeatureAssociation(BaseModel):
    """One entry of a class's feature progression.

    Attributes:
        id: Stable reference to the underlying feature definition.
        level: Class level at which the feature is granted.
        name: Resolved display name.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: AssociationId
    level: int
    name: str = ""


# =============================================================================
# Raw Content
# =============================================================================


class RawArchetype(BaseModel):
    """An archetype record as supplied by the content source."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    id: str | None = None
    class_name: str | None = Field(default=None, alias="class")


class RawFeature(BaseModel):
    """An archetype feature record as supplied by the content source."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    description: str = ""
    id: str | None = None
    archetype_id: str | None = None


# =============================================================================
# Classification & Parsing
# =============================================================================


class Classification(BaseModel):
    """Result of classifying one feature description."""

    model_config = ConfigDict(frozen=True)

    type: FeatureType = FeatureType.UNKNOWN
    target: str | None = None
    level: int | None = None


class Resolution(BaseModel):
    """A user's answer for a feature that could not be parsed.

    Attributes:
        level: Level the feature is gained at.
        replaces: Name of the base feature it replaces, if any.
        is_additive: True when the feature replaces nothing.
    """

    model_config = ConfigDict(populate_by_name=True)

    level: int | None = None
    replaces: str | None = None
    is_additive: bool = Field(default=False, alias="isAdditive")

    @model_validator(mode="after")
    def check_choice(self) -> "Resolution":
        """A resolution must name a target or be additive."""
        if self.is_additive:
            self.replaces = None
        elif not self.replaces:
            msg = "A resolution must either name the replaced feature or be additive"
            raise ValueError(msg)
        return self


class ParsedFeature(BaseModel):
    """An archetype feature with its resolved interpretation.

    ``needs_user_input`` is derived, never trusted from input: it is True
    exactly when the type is unknown, or when a replacement/modification
    could not be matched against the progression.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    level: int | None = None
    type: FeatureType = FeatureType.UNKNOWN
    target: str | None = None
    matched_association: FeatureAssociation | None = None
    description: str = ""
    source: FeatureSource = FeatureSource.AUTO_PARSE
    needs_user_input: bool = False

    @model_validator(mode="after")
    def derive_needs_user_input(self) -> "ParsedFeature":
        """Normalize additive features and derive ``needs_user_input``."""
        if self.type is FeatureType.ADDITIVE:
            self.target = None
            self.matched_association = None
        self.needs_user_input = self.type is FeatureType.UNKNOWN or (
            self.type.targets_base_feature and self.matched_association is None
        )
        return self


class ParsedArchetype(BaseModel):
    """An archetype whose features have all been interpreted.

    Attributes:
        slug: Normalized identifier derived from the name.
        name: Display name.
        class_name: Class the archetype belongs to, when known.
        features: Interpreted features in content order.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    slug: str
    name: str
    class_name: str | None = Field(default=None, alias="class")
    features: list[ParsedFeature] = Field(default_factory=list)

    @property
    def unresolved_features(self) -> list[ParsedFeature]:
        """Features still waiting on a user decision."""
        return [f for f in self.features if f.needs_user_input]

    @property
    def needs_user_input(self) -> bool:
        return bool(self.unresolved_features)

    @property
    def targets(self) -> list[str]:
        """Names of the base features this archetype touches."""
        return [f.target for f in self.features if f.target]


# =============================================================================
# Diff & Conflicts
# =============================================================================


class DiffEntry(BaseModel):
    """One row of the comparison between a progression and an archetype.

    ``removed``/``modified`` entries carry ``original``;
    ``added``/``modified`` entries carry ``archetype_feature``.
    """

    model_config = ConfigDict(frozen=True)

    status: DiffStatus
    level: int | None = None
    name: str
    original: FeatureAssociation | None = None
    archetype_feature: ParsedFeature | None = None


class Conflict(BaseModel):
    """A base feature fought over by more than one archetype."""

    target_name: str
    association_id: AssociationId | None = None
    conflicting_slugs: list[str] = Field(default_factory=list)


class ArchetypeConflict(BaseModel):
    """A name-level conflict between two parsed archetypes."""

    feature_name: str
    archetype_a: str
    feature_a: str
    archetype_b: str
    feature_b: str
    is_series_conflict: bool = False
    series: str | None = None

    def pair_key(self) -> tuple[str, ...]:
        return tuple(sorted((self.archetype_a, self.archetype_b, self.feature_name.lower())))


class StackValidation(BaseModel):
    """Outcome of validating a stack of archetypes."""

    valid: bool
    conflicts: list[ArchetypeConflict] = Field(default_factory=list)
    conflict_pairs: list[tuple[str, str]] = Field(default_factory=list)
    cumulative: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)


__all__ = [
    "AssociationId",
    "FeatureAssociation",
    "RawArchetype",
    "RawFeature",
    "Classification",
    "Resolution",
    "ParsedFeature",
    "ParsedArchetype",
    "DiffEntry",
    "Conflict",
    "ArchetypeConflict",
    "StackValidation",
]
