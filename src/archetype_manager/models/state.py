"""Persisted archetype tracking state.

Two structures are persisted through the tag storage port:

- ClassArchetypeState, on the class feature holder: which archetypes are
  stacked on the class, the progression as it was before the first one,
  and one AppliedArchetypeRecord per archetype holding the exact
  structural delta it introduced.
- ActorArchetypeIndex, on the actor: a denormalized ``class tag -> slugs``
  summary that mirrors every holder's ``archetypes`` list.

Transitions are pure: ``with_applied``/``with_removed`` return new state
objects so the Applicator can build the full new state before writing.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, RootModel

from archetype_manager.models.archetype import AssociationId, FeatureAssociation
from archetype_manager.models.enums import FailureReason


# =============================================================================
# Host References
# =============================================================================


class ActorRef(BaseModel):
    """The character that owns one or more class feature holders.

    Attributes:
        id: Host identifier, used as the actor tag scope.
        name: Display name for notifications.
        can_modify: Whether the current user may edit this actor.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    can_modify: bool = True


class ClassFeatureHolder(BaseModel):
    """A class item on an actor that owns a feature progression.

    Attributes:
        id: Host identifier, used as the holder tag scope.
        name: Class display name (e.g. "Fighter").
        tag: Class tag used as the actor index key (e.g. "fighter").
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    tag: str = ""

    @property
    def class_tag(self) -> str:
        return self.tag or self.name.strip().lower().replace(" ", "-")


# =============================================================================
# Tracking State
# =============================================================================


class AppliedArchetypeRecord(BaseModel):
    """The structural delta one archetype introduced on one holder.

    Attributes:
        slug: Archetype slug.
        name: Archetype display name.
        applied_at: When this archetype was applied.
        added_association_ids: Ids minted for associations this archetype added.
        removed_originals: Associations this archetype took out, verbatim.
        removed_anchors: For each removed original, the id of the
            association that preceded it (None = start of progression),
            used to re-insert it at its original relative position.
        targets: Base feature names this archetype touched.
    """

    slug: str
    name: str = ""
    applied_at: datetime
    added_association_ids: list[AssociationId] = Field(default_factory=list)
    removed_originals: list[FeatureAssociation] = Field(default_factory=list)
    removed_anchors: list[AssociationId | None] = Field(default_factory=list)
    targets: list[str] = Field(default_factory=list)

    def removes(self, association_id: AssociationId) -> bool:
        return any(a.id == association_id for a in self.removed_originals)


class ClassArchetypeState(BaseModel):
    """Archetype tracking state owned by one class feature holder.

    ``original_associations`` exists iff ``archetypes`` is non-empty and is
    the progression exactly as it was before the first archetype.
    """

    archetypes: list[str] = Field(default_factory=list)
    original_associations: list[FeatureAssociation] | None = None
    applied_at: datetime | None = None
    records: dict[str, AppliedArchetypeRecord] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.archetypes

    def has(self, slug: str) -> bool:
        return slug in self.archetypes

    def with_applied(
        self,
        record: AppliedArchetypeRecord,
        pre_apply: list[FeatureAssociation],
    ) -> ClassArchetypeState:
        """Return the state after stacking ``record`` on top of this one.

        Args:
            record: The record of the archetype being applied.
            pre_apply: The progression before this apply, snapshotted only
                when this is the first archetype.

        Returns:
            New state; this instance is not modified.
        """
        original = self.original_associations
        if self.is_empty:
            original = list(pre_apply)
        return ClassArchetypeState(
            archetypes=[*self.archetypes, record.slug],
            original_associations=original,
            applied_at=record.applied_at,
            records={**self.records, record.slug: record},
        )

    def with_removed(self, slug: str) -> ClassArchetypeState:
        """Return the state after removing ``slug``.

        Removing the last archetype tears everything down; otherwise the
        backup and timestamp belonging to the remaining stack are kept.
        """
        remaining = [s for s in self.archetypes if s != slug]
        if not remaining:
            return ClassArchetypeState()
        records = {k: v for k, v in self.records.items() if k != slug}
        return ClassArchetypeState(
            archetypes=remaining,
            original_associations=self.original_associations,
            applied_at=self.applied_at,
            records=records,
        )


class ActorArchetypeIndex(RootModel[dict[str, list[str]]]):
    """Actor-level ``class tag -> applied slugs`` lookup.

    Persisted as the bare mapping, e.g. ``{"fighter": ["two-handed-fighter"]}``.
    """

    root: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def classes(self) -> dict[str, list[str]]:
        return self.root

    @property
    def is_empty(self) -> bool:
        return not self.root

    def slugs_for(self, class_tag: str) -> list[str]:
        return list(self.root.get(class_tag, []))

    def with_class(self, class_tag: str, slugs: list[str]) -> ActorArchetypeIndex:
        """Return an index whose entry for ``class_tag`` mirrors ``slugs``.

        An empty slug list drops the class key entirely.
        """
        classes = {k: list(v) for k, v in self.root.items() if k != class_tag}
        if slugs:
            classes[class_tag] = list(slugs)
        return ActorArchetypeIndex(classes)


# =============================================================================
# Operation Results
# =============================================================================


class OperationResult(BaseModel):
    """Outcome of an apply, remove or restore.

    Attributes:
        success: Whether the operation committed.
        reason: Failure code when ``success`` is False.
        message: Human-readable summary or failure reason.
        progression: The holder's progression after the operation (empty
            on failure).
        record: The record created by a successful apply.
        restored_count: Associations restored by an emergency restore.
    """

    success: bool
    reason: FailureReason | None = None
    message: str = ""
    progression: list[FeatureAssociation] = Field(default_factory=list)
    record: AppliedArchetypeRecord | None = None
    restored_count: int = 0


__all__ = [
    "ActorRef",
    "ClassFeatureHolder",
    "AppliedArchetypeRecord",
    "ClassArchetypeState",
    "ActorArchetypeIndex",
    "OperationResult",
]
