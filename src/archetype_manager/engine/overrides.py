"""Tiered override lookup and maintenance.

The override store holds corrections layered over automatic parsing, in
descending priority (by default fixes > missing > custom). A lookup
walks the tiers in order and returns the first record found, tagged with
its tier. Unreadable or malformed records are treated as if the tier had
no entry; they are logged, never raised.

Writes go through the store, which may refuse them (privileged tiers).
Refusals surface as ``False`` and leave the tier untouched.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from archetype_manager.core.config import OverrideSettings
from archetype_manager.core.exceptions import OverrideStoreError, ValidationError
from archetype_manager.core.logging import get_logger
from archetype_manager.engine.classifier import slugify
from archetype_manager.engine.ports import OverrideStore
from archetype_manager.models.archetype import Resolution
from archetype_manager.models.enums import OverrideTier
from archetype_manager.models.overrides import OverrideFeature, OverrideHit, OverrideRecord


logger = get_logger(__name__)

MIN_LEVEL = 1
MAX_LEVEL = 20


class ManualEntryResult(BaseModel):
    """Outcome of validating a hand-entered archetype."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    tier: OverrideTier | None = None
    slug: str | None = None
    record: OverrideRecord | None = None
    saved: bool = False


class OverrideResolver:
    """Looks up and maintains archetype overrides across tiers."""

    def __init__(self, store: OverrideStore, settings: OverrideSettings | None = None) -> None:
        """Initialize the resolver.

        Args:
            store: Backing override store.
            settings: Override settings; defaults are used when omitted.
        """
        self.store = store
        self.settings = settings or OverrideSettings()

    @property
    def tier_order(self) -> list[OverrideTier]:
        return list(self.settings.tier_order)

    async def lookup(self, slug: str) -> OverrideHit | None:
        """Find the highest-priority override for an archetype.

        Args:
            slug: Archetype slug.

        Returns:
            The first hit in tier order, or None if no tier has one.
        """
        for tier in self.tier_order:
            record = await self._read(tier, slug)
            if record is not None:
                logger.debug("Override found", slug=slug, tier=str(tier))
                return OverrideHit(tier=tier, slug=slug, record=record)
        return None

    async def _read(self, tier: OverrideTier, slug: str) -> OverrideRecord | None:
        try:
            raw = await self.store.get(tier, slug)
        except OverrideStoreError as exc:
            logger.warning("Override tier unreadable, skipping", tier=str(tier), slug=slug, error=str(exc))
            return None
        if raw is None:
            return None
        return self._coerce(tier, slug, raw)

    @staticmethod
    def _coerce(tier: OverrideTier, slug: str, raw: Any) -> OverrideRecord | None:
        if not isinstance(raw, dict):
            logger.warning("Malformed override record, skipping", tier=str(tier), slug=slug)
            return None
        try:
            return OverrideRecord.model_validate(raw)
        except PydanticValidationError as exc:
            logger.warning(
                "Malformed override record, skipping",
                tier=str(tier),
                slug=slug,
                errors=exc.error_count(),
            )
            return None

    async def get_tier(self, tier: OverrideTier) -> dict[str, OverrideRecord]:
        """Read every well-formed record of one tier.

        Returns:
            ``slug -> record``; empty when the tier is unreadable.
        """
        try:
            raw_tier = await self.store.get_all(tier)
        except OverrideStoreError as exc:
            logger.warning("Override tier unreadable", tier=str(tier), error=str(exc))
            return {}
        records: dict[str, OverrideRecord] = {}
        for slug, raw in raw_tier.items():
            record = self._coerce(tier, slug, raw)
            if record is not None:
                records[slug] = record
        return records

    async def save_entry(self, tier: OverrideTier, slug: str, record: OverrideRecord) -> bool:
        """Write a record to a tier.

        Returns:
            True if the store accepted the write.
        """
        try:
            saved = await self.store.set(tier, slug, record.to_store())
        except OverrideStoreError as exc:
            logger.error("Override write failed", tier=str(tier), slug=slug, error=str(exc))
            return False
        if saved:
            logger.info("Override saved", tier=str(tier), slug=slug, features=len(record.features))
        else:
            logger.warning("Override write refused", tier=str(tier), slug=slug)
        return saved

    async def delete_entry(self, tier: OverrideTier, slug: str) -> bool:
        """Delete a record from a tier.

        Returns:
            True if the store accepted the delete.
        """
        try:
            return await self.store.delete(tier, slug)
        except OverrideStoreError as exc:
            logger.error("Override delete failed", tier=str(tier), slug=slug, error=str(exc))
            return False

    async def save_feature_fix(
        self,
        archetype_slug: str,
        class_name: str,
        feature_name: str,
        resolution: Resolution,
        *,
        description: str = "",
    ) -> bool:
        """Merge one feature's fix into the archetype's fixes-tier record.

        Fixes already saved for other features of the same archetype are
        kept.

        Args:
            archetype_slug: Archetype slug.
            class_name: Class the archetype belongs to.
            feature_name: Display name of the fixed feature.
            resolution: The user's answer.
            description: Description to store alongside the fix.

        Returns:
            True if the fixes tier accepted the write.
        """
        existing = await self._read(OverrideTier.FIXES, archetype_slug)
        record = existing or OverrideRecord(class_name=class_name)
        if not record.class_name:
            record.class_name = class_name

        features = dict(record.features)
        features[slugify(feature_name)] = OverrideFeature(
            level=resolution.level,
            replaces=resolution.replaces,
            is_additive=resolution.is_additive,
            description=description,
        )
        record = record.model_copy(update={"features": features})
        return await self.save_entry(OverrideTier.FIXES, archetype_slug, record)

    def validate_manual_entry(
        self,
        *,
        tier: OverrideTier | str,
        name: str | None,
        class_name: str | None,
        features: list[dict[str, Any]],
    ) -> ManualEntryResult:
        """Validate a hand-entered missing or homebrew archetype.

        Rows that are completely empty are skipped. Every other row needs
        a name, a level between 1 and 20 and a unique name.

        Args:
            tier: ``missing`` or ``custom``.
            name: Archetype name.
            class_name: Class the archetype belongs to.
            features: Rows of ``{"name", "level", "replaces"}``.

        Returns:
            The validation result, with a ready record when valid.
        """
        errors: list[str] = []
        name = (name or "").strip()
        class_name = (class_name or "").strip()

        try:
            entry_tier = OverrideTier(tier)
        except ValueError:
            entry_tier = None
            errors.append(f"Unknown entry type: {tier!r}.")

        if not name:
            errors.append("Archetype name is required.")
        if not class_name:
            errors.append("Class is required.")

        parsed: dict[str, OverrideFeature] = {}
        seen: set[str] = set()
        for index, row in enumerate(features, start=1):
            feature_name = str(row.get("name") or "").strip()
            raw_level = row.get("level")
            replaces = str(row.get("replaces") or "").strip()
            level_text = "" if raw_level is None else str(raw_level).strip()

            if not feature_name and not level_text and not replaces:
                continue
            if not feature_name:
                errors.append(f"Feature row {index}: Name is required.")
                continue

            try:
                level = int(level_text)
            except ValueError:
                level = None
            if level is None or not MIN_LEVEL <= level <= MAX_LEVEL:
                errors.append(
                    f'Feature "{feature_name}": Level must be a number between {MIN_LEVEL} and {MAX_LEVEL}.'
                )
                continue

            if feature_name.lower() in seen:
                errors.append(f'Duplicate feature name: "{feature_name}".')
                continue
            seen.add(feature_name.lower())

            parsed[slugify(feature_name)] = OverrideFeature(
                name=feature_name,
                level=level,
                replaces=replaces or None,
                is_additive=not replaces,
            )

        if not parsed:
            errors.append("At least one feature is required.")

        if errors:
            return ManualEntryResult(valid=False, errors=errors)

        return ManualEntryResult(
            valid=True,
            tier=entry_tier,
            slug=slugify(name),
            record=OverrideRecord(class_name=class_name.lower(), name=name, features=parsed),
        )

    async def submit_manual_entry(
        self,
        *,
        tier: OverrideTier | str,
        name: str | None,
        class_name: str | None,
        features: list[dict[str, Any]],
    ) -> ManualEntryResult:
        """Validate a hand-entered archetype and save it to its tier.

        Raises:
            ValidationError: If the entry is invalid; ``details["errors"]``
                lists every problem found.

        Returns:
            The validation result; ``saved`` tells whether the store
            accepted the write.
        """
        result = self.validate_manual_entry(tier=tier, name=name, class_name=class_name, features=features)
        if not result.valid or result.tier is None or result.slug is None or result.record is None:
            raise ValidationError(
                f"Invalid archetype entry: {' '.join(result.errors)}",
                details={"errors": result.errors},
            )
        saved = await self.save_entry(result.tier, result.slug, result.record)
        return result.model_copy(update={"saved": saved})


__all__ = [
    "ManualEntryResult",
    "OverrideResolver",
]
