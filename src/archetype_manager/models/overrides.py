"""Override store record models.

An override record corrects or supplies the interpretation of an
archetype's features. Records live in one of the tiers of the override
store, keyed by archetype slug, and are stored as plain JSON:

    {
        "class": "fighter",
        "features": {
            "shattering-strike": {"level": 2, "replaces": "Bravery", "description": ""}
        }
    }

Unknown fields are preserved on both the record and each feature entry.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from archetype_manager.models.enums import FeatureType, OverrideTier


class OverrideFeature(BaseModel):
    """Override for a single archetype feature.

    Attributes:
        level: Level the feature is gained at; None falls back to parsing.
        replaces: Base feature it replaces, or None.
        description: Corrected description text.
        is_additive: Marks a feature with no base-feature interaction.
        name: Optional display name (used by override-only archetypes).
        type: Optional explicit type, used to mark a modification.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    level: int | None = None
    replaces: str | None = None
    description: str = ""
    is_additive: bool = Field(default=False, alias="isAdditive")
    name: str | None = None
    type: FeatureType | None = None

    @field_validator("level", mode="before")
    @classmethod
    def blank_level_is_none(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @field_validator("replaces", mode="before")
    @classmethod
    def blank_replaces_is_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @property
    def resolved_type(self) -> FeatureType:
        """Interpretation of this override on its own."""
        return self.type_at(self.level)

    def type_at(self, level: int | None) -> FeatureType:
        """Interpretation of this override at an effective level.

        A named target is a replacement unless the entry explicitly says
        modification. Without a target the feature is additive when
        flagged so or when it at least has a level, its own or one parsed
        from the raw description.
        """
        if self.replaces:
            if self.type is FeatureType.MODIFICATION:
                return FeatureType.MODIFICATION
            return FeatureType.REPLACEMENT
        if self.is_additive or self.type is FeatureType.ADDITIVE or level is not None:
            return FeatureType.ADDITIVE
        return FeatureType.UNKNOWN

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OverrideRecord(BaseModel):
    """Override record for one archetype in one tier."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    class_name: str = Field(default="", alias="class")
    name: str | None = None
    features: dict[str, OverrideFeature] = Field(default_factory=dict)

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OverrideHit(BaseModel):
    """The highest-priority override found for an archetype."""

    tier: OverrideTier
    slug: str
    record: OverrideRecord


__all__ = [
    "OverrideFeature",
    "OverrideRecord",
    "OverrideHit",
]
