"""Archetype resolution.

Turns a raw archetype (name + raw features) into a ParsedArchetype by
combining the override store with automatic classification, then
matching each feature's target against the class's current feature
progression.

For every feature, an override entry (looked up by the feature's slug in
the archetype's highest-priority override record) wins over parsing. A
missing override level falls back to the level parsed from the raw
description. Unmatched replacement/modification targets are left for the
user, through an optional async ``resolve_feature`` callback.
"""

from __future__ import annotations

from archetype_manager.core.config import ResolverSettings
from archetype_manager.core.logging import get_logger
from archetype_manager.engine.classifier import FeatureClassifier, slugify
from archetype_manager.engine.overrides import OverrideResolver
from archetype_manager.engine.ports import (
    ClassifierStrategy,
    FeatureResolver,
    LoggingNotificationSink,
    NotificationSink,
    send_notification,
)
from archetype_manager.models.archetype import (
    FeatureAssociation,
    ParsedArchetype,
    ParsedFeature,
    RawArchetype,
    RawFeature,
    Resolution,
)
from archetype_manager.models.enums import FeatureSource, FeatureType, NotificationLevel
from archetype_manager.models.overrides import OverrideFeature, OverrideHit


logger = get_logger(__name__)


class ArchetypeResolver:
    """Builds ParsedArchetypes from raw content and overrides."""

    def __init__(
        self,
        overrides: OverrideResolver,
        *,
        classifier: ClassifierStrategy | None = None,
        settings: ResolverSettings | None = None,
        notifier: NotificationSink | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            overrides: Tiered override lookup.
            classifier: Description classifier; regex-based by default.
            settings: Resolver settings; defaults are used when omitted.
            notifier: Sink for parse warnings; logs only when omitted.
        """
        self.overrides = overrides
        self.classifier = classifier or FeatureClassifier()
        self.settings = settings or ResolverSettings()
        self.notifier = notifier or LoggingNotificationSink()

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve(
        self,
        archetype: RawArchetype,
        features: list[RawFeature],
        progression: list[FeatureAssociation],
        *,
        resolve_feature: FeatureResolver | None = None,
    ) -> ParsedArchetype:
        """Interpret every feature of an archetype.

        Args:
            archetype: Raw archetype record.
            features: Raw features scoped to the archetype.
            progression: The class's current feature progression.
            resolve_feature: Optional "ask the user" callback, invoked only
                for features that still need input.

        Returns:
            The parsed archetype.
        """
        slug = slugify(archetype.name)
        hit = await self.overrides.lookup(slug)
        class_name = archetype.class_name or (hit.record.class_name if hit else None) or None

        parsed = ParsedArchetype(
            slug=slug,
            name=archetype.name,
            class_name=class_name,
            features=[self.parse_feature(raw, progression, hit) for raw in features],
        )
        logger.info(
            "Archetype resolved",
            slug=slug,
            features=len(parsed.features),
            override_tier=str(hit.tier) if hit else None,
            unresolved=len(parsed.unresolved_features),
        )

        if resolve_feature is not None and parsed.needs_user_input:
            parsed = await self.ask_user(parsed, progression, resolve_feature)

        self._warn_unresolved(parsed)
        return parsed

    async def resolve_from_override(
        self,
        slug: str,
        progression: list[FeatureAssociation],
        *,
        name: str | None = None,
        resolve_feature: FeatureResolver | None = None,
    ) -> ParsedArchetype | None:
        """Build an archetype that exists only in the override store.

        Args:
            slug: Archetype slug.
            progression: The class's current feature progression.
            name: Display name; taken from the record or the slug otherwise.
            resolve_feature: Optional "ask the user" callback.

        Returns:
            The parsed archetype, or None when no tier has the slug.
        """
        hit = await self.overrides.lookup(slug)
        if hit is None:
            return None

        raw_features = [
            RawFeature(name=entry.name or _title_from_slug(key), description=entry.description)
            for key, entry in hit.record.features.items()
        ]
        raw = RawArchetype(
            name=name or hit.record.name or _title_from_slug(slug),
            class_name=hit.record.class_name or None,
        )
        parsed = ParsedArchetype(
            slug=slug,
            name=raw.name,
            class_name=raw.class_name,
            features=[
                self._from_override(feature, entry, hit, progression)
                for feature, entry in zip(raw_features, hit.record.features.values(), strict=True)
            ],
        )
        if resolve_feature is not None and parsed.needs_user_input:
            parsed = await self.ask_user(parsed, progression, resolve_feature)
        self._warn_unresolved(parsed)
        return parsed

    def parse_feature(
        self,
        raw: RawFeature,
        progression: list[FeatureAssociation],
        hit: OverrideHit | None = None,
    ) -> ParsedFeature:
        """Interpret one feature, preferring its override entry."""
        if hit is not None:
            entry = hit.record.features.get(slugify(raw.name))
            if entry is not None:
                return self._from_override(raw, entry, hit, progression)
        return self._from_description(raw, progression)

    def _from_override(
        self,
        raw: RawFeature,
        entry: OverrideFeature,
        hit: OverrideHit,
        progression: list[FeatureAssociation],
    ) -> ParsedFeature:
        level = entry.level if entry.level is not None else self.classifier.parse_level(raw.description)
        feature_type = entry.type_at(level)
        target = entry.replaces if feature_type.targets_base_feature else None
        return ParsedFeature(
            name=raw.name,
            level=level,
            type=feature_type,
            target=target,
            matched_association=self.match_target(target, progression, level),
            description=entry.description or raw.description,
            source=hit.tier.feature_source,
        )

    def _from_description(self, raw: RawFeature, progression: list[FeatureAssociation]) -> ParsedFeature:
        classification = self.classifier.classify(raw.description)
        level = classification.level
        if level is None:
            level = self.classifier.parse_level(raw.description)
        return ParsedFeature(
            name=raw.name,
            level=level,
            type=classification.type,
            target=classification.target,
            matched_association=self.match_target(classification.target, progression, level),
            description=raw.description,
            source=FeatureSource.AUTO_PARSE,
        )

    # =========================================================================
    # Target Matching
    # =========================================================================

    def match_target(
        self,
        target: str | None,
        progression: list[FeatureAssociation],
        level: int | None = None,
    ) -> FeatureAssociation | None:
        """Find the association a target names.

        Names are compared case-insensitively after trimming. When several
        associations share the name, the configured disambiguation rule
        picks one: ``nearest`` prefers the exact level, then the closest
        level (earliest on ties); ``first`` takes the first occurrence;
        ``exact`` requires the exact level. Without a level the first
        occurrence is used.

        Args:
            target: Target name from parsing or an override.
            progression: The class's current feature progression.
            level: Level of the archetype feature.

        Returns:
            The matched association, or None.
        """
        if not target:
            return None
        key = target.strip().casefold()
        candidates = [a for a in progression if a.name.strip().casefold() == key]
        if not candidates:
            return None
        if len(candidates) == 1 or level is None or self.settings.level_disambiguation == "first":
            return candidates[0]

        for candidate in candidates:
            if candidate.level == level:
                return candidate
        if self.settings.level_disambiguation == "exact":
            return None
        return min(candidates, key=lambda a: abs(a.level - level))

    def rematch(self, archetype: ParsedArchetype, progression: list[FeatureAssociation]) -> ParsedArchetype:
        """Re-match every target against another progression.

        Used to compare a candidate with already-applied archetypes on the
        progression they were applied to, rather than the current one.
        """
        features = []
        for feature in archetype.features:
            if feature.type.targets_base_feature:
                data = feature.model_dump(exclude={"matched_association", "needs_user_input"})
                feature = ParsedFeature(
                    **data,
                    matched_association=self.match_target(feature.target, progression, feature.level),
                )
            features.append(feature)
        return archetype.model_copy(update={"features": features})

    # =========================================================================
    # User Resolution
    # =========================================================================

    async def ask_user(
        self,
        parsed: ParsedArchetype,
        progression: list[FeatureAssociation],
        resolve_feature: FeatureResolver,
    ) -> ParsedArchetype:
        """Ask the user about every feature that still needs input.

        Answers are applied with source ``user-fix`` and, when enabled,
        saved to the fixes tier so the question is not asked again.
        """
        features: list[ParsedFeature] = []
        for feature in parsed.features:
            if not feature.needs_user_input:
                features.append(feature)
                continue

            resolution = await resolve_feature(feature, list(progression))
            if resolution is None:
                features.append(feature)
                continue

            features.append(self.apply_resolution(feature, resolution, progression))
            if self.settings.persist_user_resolutions:
                saved = await self.overrides.save_feature_fix(
                    parsed.slug,
                    parsed.class_name or "",
                    feature.name,
                    resolution,
                    description=feature.description,
                )
                if not saved:
                    send_notification(
                        self.notifier,
                        NotificationLevel.WARNING,
                        f'Could not save the fix for "{feature.name}"; it applies to this session only.',
                    )

        return parsed.model_copy(update={"features": features})

    def apply_resolution(
        self,
        feature: ParsedFeature,
        resolution: Resolution,
        progression: list[FeatureAssociation],
    ) -> ParsedFeature:
        """Rebuild a feature from the user's answer."""
        level = resolution.level if resolution.level is not None else feature.level
        if resolution.is_additive:
            return ParsedFeature(
                name=feature.name,
                level=level,
                type=FeatureType.ADDITIVE,
                description=feature.description,
                source=FeatureSource.USER_FIX,
            )
        return ParsedFeature(
            name=feature.name,
            level=level,
            type=FeatureType.REPLACEMENT,
            target=resolution.replaces,
            matched_association=self.match_target(resolution.replaces, progression, level),
            description=feature.description,
            source=FeatureSource.USER_FIX,
        )

    def _warn_unresolved(self, parsed: ParsedArchetype) -> None:
        unresolved = parsed.unresolved_features
        if not unresolved:
            return
        names = [f.name for f in unresolved]
        logger.warning("Archetype has unresolved features", slug=parsed.slug, features=names)
        if self.settings.show_parse_warnings:
            send_notification(
                self.notifier,
                NotificationLevel.WARNING,
                f"{parsed.name}: {len(names)} feature(s) need manual resolution ({', '.join(names)}).",
            )


def _title_from_slug(slug: str) -> str:
    return " ".join(part.capitalize() for part in slug.split("-") if part)


__all__ = [
    "ArchetypeResolver",
]
