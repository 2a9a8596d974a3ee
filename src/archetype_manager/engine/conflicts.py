"""Archetype compatibility checks.

PF1e stacking rule: alternate class features from different archetypes
may not replace or alter the same class feature, and two archetypes that
touch any tier of the same scalable series are incompatible as well.

All checks here are advisory. They report conflicts; they never block an
apply. Callers decide whether to warn or refuse.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from archetype_manager.core.logging import get_logger
from archetype_manager.engine.classifier import FeatureClassifier, normalize_name, scope_features, slugify
from archetype_manager.models.archetype import (
    ArchetypeConflict,
    AssociationId,
    Conflict,
    DiffEntry,
    ParsedArchetype,
    RawArchetype,
    RawFeature,
    StackValidation,
)
from archetype_manager.models.enums import DiffStatus
from archetype_manager.models.progression import check_series_conflict, get_series_base_name
from archetype_manager.models.state import AppliedArchetypeRecord, ClassFeatureHolder


logger = get_logger(__name__)


class ConflictChecker:
    """Detects archetypes that fight over the same base feature."""

    def __init__(self, classifier: FeatureClassifier | None = None) -> None:
        self.classifier = classifier or FeatureClassifier()

    # =========================================================================
    # Diff vs. Applied Records
    # =========================================================================

    def check(
        self,
        diff: list[DiffEntry],
        records: Iterable[AppliedArchetypeRecord],
        *,
        exclude_slug: str | None = None,
    ) -> list[Conflict]:
        """Report base features a candidate diff shares with applied archetypes.

        A diff entry conflicts with an applied archetype when the
        association it takes out is among that archetype's removed
        originals, or when its name matches one of the archetype's targets
        after normalization.

        Args:
            diff: Diff of the candidate archetype, computed against the
                class's pre-archetype progression.
            records: Records of archetypes already applied to the class.
            exclude_slug: Slug to ignore (the candidate itself).

        Returns:
            One conflict per contested base feature, in diff order.
        """
        records = [r for r in records if r.slug != exclude_slug]
        conflicts: list[Conflict] = []
        seen: set[AssociationId] = set()

        for entry in diff:
            if entry.status not in (DiffStatus.REMOVED, DiffStatus.MODIFIED) or entry.original is None:
                continue
            original = entry.original
            if original.id in seen:
                continue
            name = normalize_name(original.name)
            slugs = [
                record.slug
                for record in records
                if record.removes(original.id) or name in {normalize_name(t) for t in record.targets}
            ]
            if slugs:
                seen.add(original.id)
                conflicts.append(
                    Conflict(target_name=original.name, association_id=original.id, conflicting_slugs=slugs)
                )

        if conflicts:
            logger.info("Conflicts detected", targets=[c.target_name for c in conflicts])
        return conflicts

    # =========================================================================
    # Archetype vs. Archetype
    # =========================================================================

    @staticmethod
    def detect_conflicts(archetype_a: ParsedArchetype, archetype_b: ParsedArchetype) -> list[ArchetypeConflict]:
        """Find targets both archetypes touch, compared by normalized name."""
        a_targets = {normalize_name(f.target): f for f in archetype_a.features if f.target}
        conflicts = []
        for feature in archetype_b.features:
            if not feature.target:
                continue
            match = a_targets.get(normalize_name(feature.target))
            if match is not None:
                conflicts.append(
                    ArchetypeConflict(
                        feature_name=feature.target,
                        archetype_a=archetype_a.name,
                        feature_a=match.name,
                        archetype_b=archetype_b.name,
                        feature_b=feature.name,
                    )
                )
        return conflicts

    @staticmethod
    def series_conflicts(
        archetype_a: ParsedArchetype,
        archetype_b: ParsedArchetype,
        class_name: str | None,
    ) -> list[ArchetypeConflict]:
        """Find pairs of targets on different tiers of the same series."""
        conflicts = []
        checked: set[tuple[str, str]] = set()
        for feature_a in archetype_a.features:
            if not feature_a.target:
                continue
            for feature_b in archetype_b.features:
                if not feature_b.target:
                    continue
                normal_a = normalize_name(feature_a.target)
                normal_b = normalize_name(feature_b.target)
                if normal_a == normal_b:
                    continue
                pair = tuple(sorted((normal_a, normal_b)))
                if pair in checked:
                    continue
                checked.add(pair)

                series = check_series_conflict(feature_a.target, feature_b.target, class_name)
                if series:
                    conflicts.append(
                        ArchetypeConflict(
                            feature_name=series,
                            archetype_a=archetype_a.name,
                            feature_a=feature_a.name,
                            archetype_b=archetype_b.name,
                            feature_b=feature_b.name,
                            is_series_conflict=True,
                            series=get_series_base_name(feature_a.target, class_name),
                        )
                    )
        return conflicts

    def check_against_applied(
        self,
        archetype: ParsedArchetype,
        applied: list[ParsedArchetype],
        class_name: str | None = None,
    ) -> list[ArchetypeConflict]:
        """Direct and series conflicts between a candidate and applied archetypes."""
        conflicts: list[ArchetypeConflict] = []
        for other in applied:
            conflicts.extend(self.detect_conflicts(archetype, other))
            if class_name:
                conflicts.extend(self.series_conflicts(archetype, other, class_name))
        return _deduplicate(conflicts)

    def validate_stacking(self, archetypes: list[ParsedArchetype], class_name: str | None = None) -> StackValidation:
        """Check every pair of a proposed archetype stack.

        Args:
            archetypes: The full proposed stack.
            class_name: Class name, enables series-level checks.

        Returns:
            Validation with de-duplicated conflicts and sorted conflict pairs.
        """
        conflicts: list[ArchetypeConflict] = []
        for i, first in enumerate(archetypes):
            for second in archetypes[i + 1 :]:
                conflicts.extend(self.detect_conflicts(first, second))
                if class_name:
                    conflicts.extend(self.series_conflicts(first, second, class_name))
        conflicts = _deduplicate(conflicts)

        pairs: list[tuple[str, str]] = []
        for conflict in conflicts:
            pair = tuple(sorted((conflict.archetype_a, conflict.archetype_b)))
            if pair not in pairs:
                pairs.append(pair)

        return StackValidation(valid=not conflicts, conflicts=conflicts, conflict_pairs=pairs)

    def validate_add_to_stack(
        self,
        archetype: ParsedArchetype,
        stack: list[ParsedArchetype],
        class_name: str | None = None,
    ) -> StackValidation:
        """Validate the stack that adding ``archetype`` would produce."""
        proposed = [*stack, archetype]
        validation = self.validate_stacking(proposed, class_name)
        validation.cumulative = self.cumulative_replacements(proposed, class_name)
        return validation

    def validate_remove_from_stack(
        self,
        slug: str,
        stack: list[ParsedArchetype],
        class_name: str | None = None,
    ) -> StackValidation:
        """Validate the stack that remains after removing ``slug``."""
        remaining = [a for a in stack if a.slug != slug]
        validation = self.validate_stacking(remaining, class_name)
        validation.cumulative = self.cumulative_replacements(remaining, class_name)
        return validation

    @staticmethod
    def cumulative_replacements(
        archetypes: list[ParsedArchetype],
        class_name: str | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        """Group every touched target across a stack.

        Targets that belong to a scalable series are grouped under the
        series key, so all tiers land in the same bucket.
        """
        replacements: dict[str, list[dict[str, Any]]] = {}
        for archetype in archetypes:
            for feature in archetype.features:
                if not feature.target:
                    continue
                series = get_series_base_name(feature.target, class_name) if class_name else None
                key = series or normalize_name(feature.target)
                replacements.setdefault(key, []).append(
                    {
                        "archetype_name": archetype.name,
                        "feature_name": feature.name,
                        "type": str(feature.type),
                        "target": feature.target,
                        "is_series_target": series is not None,
                    }
                )
        return replacements

    # =========================================================================
    # Class Validation
    # =========================================================================

    @staticmethod
    def validate_class(class_name: str | None, holder: ClassFeatureHolder) -> bool:
        """Check an archetype's declared class against a class holder.

        Matches the holder's tag or its name, case-insensitively.
        """
        declared = (class_name or "").strip().lower()
        return declared in {holder.class_tag.strip().lower(), holder.name.strip().lower()}

    # =========================================================================
    # Selection Index
    # =========================================================================

    def build_conflict_index(
        self,
        features: list[RawFeature],
        archetypes: list[RawArchetype],
        class_name: str | None,
    ) -> dict[str, set[str]]:
        """Map each archetype slug to the base features it touches.

        Only the description text is used, so the index can be built for a
        whole class without resolving every archetype.

        Returns:
            ``slug -> touched keys`` (series key or normalized name);
            archetypes that touch nothing are left out.
        """
        index: dict[str, set[str]] = {}
        for archetype in archetypes:
            touched: set[str] = set()
            for feature in scope_features(archetype, features):
                target = self.classifier.parse_replaces(feature.description) or self.classifier.parse_modifies(
                    feature.description
                )
                if target:
                    touched.add(get_series_base_name(target, class_name) or normalize_name(target))
            if touched:
                index[slugify(archetype.name)] = touched
        logger.debug("Conflict index built", class_name=class_name, archetypes=len(index))
        return index

    @staticmethod
    def get_incompatible_archetypes(
        index: dict[str, set[str]],
        selected: Iterable[str],
        applied: Iterable[str] = (),
    ) -> dict[str, str]:
        """Find archetypes that clash with the current selection.

        Args:
            index: Output of ``build_conflict_index``.
            selected: Slugs currently selected.
            applied: Slugs already applied.

        Returns:
            ``slug -> reason`` for every inactive archetype that touches a
            feature an active one already touches.
        """
        active = list(dict.fromkeys([*selected, *applied]))
        owners: dict[str, str] = {}
        for slug in active:
            for feature in sorted(index.get(slug, ())):
                owners.setdefault(feature, _display(slug))

        incompatible: dict[str, str] = {}
        for slug, touched in index.items():
            if slug in active:
                continue
            for feature in sorted(touched):
                if feature in owners:
                    incompatible[slug] = f"Conflicts with {owners[feature]} over {_display(feature)}"
                    break
        return incompatible


def _deduplicate(conflicts: list[ArchetypeConflict]) -> list[ArchetypeConflict]:
    seen: set[tuple[str, ...]] = set()
    unique = []
    for conflict in conflicts:
        key = conflict.pair_key()
        if key not in seen:
            seen.add(key)
            unique.append(conflict)
    return unique


def _display(key: str) -> str:
    return " ".join(word.capitalize() for word in key.replace("-", " ").split())


__all__ = [
    "ConflictChecker",
]
