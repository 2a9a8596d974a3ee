"""Progression diffing.

Compares a class's current feature progression against a parsed archetype
and produces the ordered list of DiffEntry rows the Applicator consumes
and the UI displays.

Ordering rules:

1. Every current association appears once, in progression order, as
   ``unchanged``, ``removed`` (a replacement targets it) or ``modified``
   (a modification targets it; the entry keeps the slot).
2. ``added`` entries follow, in archetype-feature order: the new feature
   of every replacement, and every additive feature.

Features that still need user input are left out entirely. When two
features of the same archetype match the same association, the first one
claims it; the second is kept as a plain ``added`` entry.
"""

from __future__ import annotations

from archetype_manager.core.logging import get_logger
from archetype_manager.models.archetype import (
    AssociationId,
    DiffEntry,
    FeatureAssociation,
    ParsedArchetype,
    ParsedFeature,
)
from archetype_manager.models.enums import DiffStatus, FeatureType


logger = get_logger(__name__)


class DiffEngine:
    """Pure diff between a progression and a parsed archetype."""

    def generate_diff(
        self,
        progression: list[FeatureAssociation],
        archetype: ParsedArchetype,
    ) -> list[DiffEntry]:
        """Build the diff for applying ``archetype`` to ``progression``.

        Args:
            progression: The class's current feature progression.
            archetype: The parsed archetype.

        Returns:
            Ordered diff entries. Same inputs always give the same output.
        """
        present: set[AssociationId] = {a.id for a in progression}
        claims: dict[AssociationId, ParsedFeature] = {}
        added: list[tuple[ParsedFeature, FeatureAssociation | None]] = []

        for feature in archetype.features:
            if feature.type is FeatureType.ADDITIVE:
                added.append((feature, None))
                continue
            if feature.needs_user_input or feature.matched_association is None:
                logger.debug("Skipping unresolved feature", slug=archetype.slug, feature=feature.name)
                continue

            target_id = feature.matched_association.id
            if target_id not in present:
                logger.warning(
                    "Matched association is not in the progression",
                    slug=archetype.slug,
                    feature=feature.name,
                    association_id=target_id,
                )
                continue
            if target_id in claims:
                logger.warning(
                    "Association already claimed by another feature",
                    slug=archetype.slug,
                    feature=feature.name,
                    claimed_by=claims[target_id].name,
                )
                added.append((feature, None))
                continue

            claims[target_id] = feature
            if feature.type is FeatureType.REPLACEMENT:
                added.append((feature, feature.matched_association))

        diff: list[DiffEntry] = []
        for association in progression:
            feature = claims.get(association.id)
            if feature is None:
                diff.append(
                    DiffEntry(
                        status=DiffStatus.UNCHANGED,
                        level=association.level,
                        name=association.name,
                        original=association,
                    )
                )
            elif feature.type is FeatureType.MODIFICATION:
                diff.append(
                    DiffEntry(
                        status=DiffStatus.MODIFIED,
                        level=_level_of(feature, association),
                        name=feature.name,
                        original=association,
                        archetype_feature=feature,
                    )
                )
            else:
                diff.append(
                    DiffEntry(
                        status=DiffStatus.REMOVED,
                        level=association.level,
                        name=association.name,
                        original=association,
                    )
                )

        for feature, replaced in added:
            diff.append(
                DiffEntry(
                    status=DiffStatus.ADDED,
                    level=_level_of(feature, replaced),
                    name=feature.name,
                    archetype_feature=feature,
                )
            )

        logger.debug(
            "Diff generated",
            slug=archetype.slug,
            removed=sum(1 for e in diff if e.status is DiffStatus.REMOVED),
            modified=sum(1 for e in diff if e.status is DiffStatus.MODIFIED),
            added=len(added),
        )
        return diff

    @staticmethod
    def validate_final_state(associations: list[FeatureAssociation]) -> list[str]:
        """Check a proposed progression before it is committed.

        Returns:
            Human-readable errors; empty when the progression is valid.
        """
        errors: list[str] = []
        seen: set[AssociationId] = set()
        for association in associations:
            if association.id is None or association.id == "":
                errors.append(f"Entry at level {association.level} has no id")
            elif association.id in seen:
                errors.append(f'Entry "{association.name or "unknown"}" has a duplicate id: {association.id}')
            else:
                seen.add(association.id)
            if association.level is None or association.level < 1:
                errors.append(f'Entry "{association.name or "unknown"}" has invalid level: {association.level}')
        return errors


def _level_of(feature: ParsedFeature, fallback: FeatureAssociation | None) -> int | None:
    if feature.level is not None:
        return feature.level
    return fallback.level if fallback is not None else None


__all__ = [
    "DiffEngine",
]
