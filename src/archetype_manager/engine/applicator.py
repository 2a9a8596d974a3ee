"""Archetype application and removal.

The Applicator is the stateful core. It turns a diff into a new feature
progression, records the exact structural delta each archetype
introduced, and inverts one archetype's delta without touching the others
stacked on the same class.

Per class feature holder the tracking state is a small state machine::

    NoArchetype --apply--> HasArchetypes(1) --apply--> HasArchetypes(n)
    HasArchetypes(n) --remove--> HasArchetypes(n-1) --...--> NoArchetype

Every operation validates first and builds the complete new state before
writing anything. Writes go out in a fixed order (progression, holder
state, actor index); if one is rejected, the ones already written are put
back. Refusals never raise out of the public methods: they come back as a
failed OperationResult and are reported to the notification sink.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from archetype_manager.core.exceptions import (
    ApplicationError,
    ClassMismatchError,
    DuplicateApplyError,
    InvalidResultError,
    NoBackupError,
    NotAppliedError,
    OperationInProgressError,
    PermissionDeniedError,
    PersistenceError,
    UnresolvedFeaturesError,
)
from archetype_manager.core.logging import get_logger, operation_context
from archetype_manager.engine.conflicts import ConflictChecker
from archetype_manager.engine.diff import DiffEngine
from archetype_manager.engine.ports import (
    LoggingNotificationSink,
    NotificationSink,
    ProgressionSource,
    TagStore,
    send_notification,
)
from archetype_manager.models.archetype import (
    AssociationId,
    DiffEntry,
    FeatureAssociation,
    ParsedArchetype,
)
from archetype_manager.models.enums import DiffStatus, FailureReason, NotificationLevel
from archetype_manager.models.state import (
    ActorArchetypeIndex,
    ActorRef,
    AppliedArchetypeRecord,
    ClassArchetypeState,
    ClassFeatureHolder,
    OperationResult,
)


logger = get_logger(__name__)

STATE_KEY = "archetypeState"
INDEX_KEY = "appliedArchetypes"


def holder_scope(holder: ClassFeatureHolder) -> str:
    """Tag scope of a class feature holder."""
    return f"item:{holder.id}"


def actor_scope(actor: ActorRef) -> str:
    """Tag scope of an actor."""
    return f"actor:{actor.id}"


def _new_association_id() -> AssociationId:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Applicator:
    """Applies and reverts archetypes on class feature holders."""

    def __init__(
        self,
        progression: ProgressionSource,
        tags: TagStore,
        *,
        notifier: NotificationSink | None = None,
        diff_engine: DiffEngine | None = None,
        conflict_checker: ConflictChecker | None = None,
        id_factory: Callable[[], AssociationId] = _new_association_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the applicator.

        Args:
            progression: Reads and replaces holder progressions.
            tags: Persists holder state and the actor index.
            notifier: User notification sink; logs only when omitted.
            diff_engine: Used to validate the final progression.
            conflict_checker: Used for class validation.
            id_factory: Mints ids for new associations.
            clock: Source of ``applied_at`` timestamps.
        """
        self.progression = progression
        self.tags = tags
        self.notifier = notifier or LoggingNotificationSink()
        self.diff_engine = diff_engine or DiffEngine()
        self.conflict_checker = conflict_checker or ConflictChecker()
        self.id_factory = id_factory
        self.clock = clock
        self._in_flight: set[str] = set()

    # =========================================================================
    # State Reads
    # =========================================================================

    async def read_state(self, holder: ClassFeatureHolder) -> ClassArchetypeState:
        """Read a holder's archetype state (empty if none is stored)."""
        return _load(ClassArchetypeState, await self.tags.get(holder_scope(holder), STATE_KEY), holder.id)

    async def read_index(self, actor: ActorRef) -> ActorArchetypeIndex:
        """Read an actor's ``class tag -> slugs`` index (empty if none is stored)."""
        return _load(ActorArchetypeIndex, await self.tags.get(actor_scope(actor), INDEX_KEY), actor.id)

    def is_busy(self, holder: ClassFeatureHolder) -> bool:
        return holder.id in self._in_flight

    # =========================================================================
    # Public Operations
    # =========================================================================

    async def apply(
        self,
        actor: ActorRef,
        holder: ClassFeatureHolder,
        archetype: ParsedArchetype,
        diff: list[DiffEntry],
    ) -> OperationResult:
        """Apply an archetype's diff to a holder.

        Refused without any mutation when the user may not modify the
        actor, another operation is pending on the holder, the archetype
        is already applied or belongs to another class, a feature still
        needs user input, or the diff no longer matches the progression.

        Args:
            actor: Owner of the holder.
            holder: The class feature holder.
            archetype: The parsed archetype.
            diff: Diff computed against the holder's current progression.

        Returns:
            The operation result, with the new record on success.
        """
        return await self._run(
            "apply",
            actor,
            holder,
            archetype.slug,
            lambda: self._apply(actor, holder, archetype, diff),
        )

    async def remove(self, actor: ActorRef, holder: ClassFeatureHolder, slug: str) -> OperationResult:
        """Revert exactly one applied archetype.

        Other archetypes stacked on the holder keep their changes and
        records. Removing the last archetype clears the holder state and
        the actor's index entry for the class.
        """
        return await self._run("remove", actor, holder, slug, lambda: self._remove(actor, holder, slug))

    async def restore_from_backup(self, actor: ActorRef, holder: ClassFeatureHolder) -> OperationResult:
        """Emergency restore of the pre-archetype progression.

        Discards every applied archetype on the holder at once.
        """
        return await self._run("restore", actor, holder, None, lambda: self._restore(actor, holder))

    async def _run(
        self,
        operation: str,
        actor: ActorRef,
        holder: ClassFeatureHolder,
        slug: str | None,
        action: Callable[[], Awaitable[OperationResult]],
    ) -> OperationResult:
        with operation_context(operation=operation, slug=slug, holder=holder.id, class_tag=holder.class_tag):
            try:
                with self._guard(holder, slug):
                    if not actor.can_modify:
                        msg = f"You do not have permission to modify {actor.name or actor.id}"
                        raise PermissionDeniedError(msg, slug=slug, class_tag=holder.class_tag)
                    result = await action()
            except ApplicationError as exc:
                logger.warning("Operation refused", reason=str(exc.reason), error=exc.message)
                send_notification(self.notifier, NotificationLevel.ERROR, exc.message)
                return OperationResult(success=False, reason=exc.reason, message=exc.message)
            except Exception:
                logger.exception("Operation failed unexpectedly")
                msg = f"Failed to {operation} archetype on {holder.name}"
                send_notification(self.notifier, NotificationLevel.ERROR, msg)
                return OperationResult(success=False, reason=FailureReason.PERSISTENCE_FAILED, message=msg)

            logger.info("Operation completed", associations=len(result.progression))
            send_notification(self.notifier, NotificationLevel.INFO, result.message)
            return result

    @contextmanager
    def _guard(self, holder: ClassFeatureHolder, slug: str | None) -> Iterator[None]:
        if holder.id in self._in_flight:
            msg = f"Another archetype operation is already in progress on {holder.name}"
            raise OperationInProgressError(msg, slug=slug, class_tag=holder.class_tag)
        self._in_flight.add(holder.id)
        try:
            yield
        finally:
            self._in_flight.discard(holder.id)

    # =========================================================================
    # Apply
    # =========================================================================

    async def _apply(
        self,
        actor: ActorRef,
        holder: ClassFeatureHolder,
        archetype: ParsedArchetype,
        diff: list[DiffEntry],
    ) -> OperationResult:
        slug = archetype.slug
        tag = holder.class_tag

        unresolved = [f.name for f in archetype.unresolved_features]
        if unresolved:
            msg = f"{archetype.name} has features that need manual resolution: {', '.join(unresolved)}"
            raise UnresolvedFeaturesError(msg, feature_names=unresolved, slug=slug, class_tag=tag)

        if archetype.class_name and not self.conflict_checker.validate_class(archetype.class_name, holder):
            msg = f"{archetype.name} is a {archetype.class_name} archetype and cannot be applied to {holder.name}"
            raise ClassMismatchError(msg, slug=slug, class_tag=tag)

        state = await self.read_state(holder)
        if state.has(slug):
            msg = f"{archetype.name} is already applied to {holder.name}"
            raise DuplicateApplyError(msg, slug=slug, class_tag=tag)

        current = await self.progression.get_associations(holder)
        index = await self.read_index(actor)

        new_progression, record = self._build_applied(current, archetype, diff, tag)
        errors = self.diff_engine.validate_final_state(new_progression)
        if errors:
            msg = f"Applying {archetype.name} would produce an invalid progression: {'; '.join(errors)}"
            raise InvalidResultError(msg, slug=slug, class_tag=tag)

        new_state = state.with_applied(record, current)
        new_index = index.with_class(tag, new_state.archetypes)
        await self._commit(actor, holder, (current, state, index), (new_progression, new_state, new_index))

        return OperationResult(
            success=True,
            message=self.apply_summary(actor, holder, archetype, diff),
            progression=new_progression,
            record=record,
        )

    def _build_applied(
        self,
        current: list[FeatureAssociation],
        archetype: ParsedArchetype,
        diff: list[DiffEntry],
        class_tag: str,
    ) -> tuple[list[FeatureAssociation], AppliedArchetypeRecord]:
        """Compute the new progression and the record of what changed.

        Unchanged associations keep their position. A removed association
        leaves its slot, a modified one is replaced in its slot, and added
        associations go to the end in diff order. Each removed original
        remembers its predecessor in ``current`` as the anchor to re-insert
        after.
        """
        present = {a.id for a in current}
        taken: dict[AssociationId, DiffEntry] = {}
        for entry in diff:
            if entry.status in (DiffStatus.REMOVED, DiffStatus.MODIFIED) and entry.original is not None:
                if entry.original.id not in present:
                    msg = f'The diff for {archetype.name} is out of date: "{entry.original.name}" is no longer present'
                    raise InvalidResultError(msg, slug=archetype.slug, class_tag=class_tag)
                taken[entry.original.id] = entry

        new_progression: list[FeatureAssociation] = []
        added_ids: list[AssociationId] = []
        removed: list[FeatureAssociation] = []
        anchors: list[AssociationId | None] = []

        previous: AssociationId | None = None
        for association in current:
            entry = taken.get(association.id)
            if entry is None:
                new_progression.append(association)
            else:
                removed.append(association)
                anchors.append(previous)
                if entry.status is DiffStatus.MODIFIED:
                    minted = self._mint(entry, association.level)
                    new_progression.append(minted)
                    added_ids.append(minted.id)
            previous = association.id

        for entry in diff:
            if entry.status is DiffStatus.ADDED:
                minted = self._mint(entry, None)
                new_progression.append(minted)
                added_ids.append(minted.id)

        record = AppliedArchetypeRecord(
            slug=archetype.slug,
            name=archetype.name,
            applied_at=self.clock(),
            added_association_ids=added_ids,
            removed_originals=removed,
            removed_anchors=anchors,
            targets=archetype.targets,
        )
        return new_progression, record

    def _mint(self, entry: DiffEntry, fallback_level: int | None) -> FeatureAssociation:
        level = entry.level if entry.level is not None else fallback_level
        return FeatureAssociation(id=self.id_factory(), level=level if level is not None else 0, name=entry.name)

    # =========================================================================
    # Remove & Restore
    # =========================================================================

    async def _remove(self, actor: ActorRef, holder: ClassFeatureHolder, slug: str) -> OperationResult:
        tag = holder.class_tag
        state = await self.read_state(holder)
        record = state.records.get(slug)
        if not state.has(slug) or record is None:
            msg = f"{slug} is not applied to {holder.name}"
            raise NotAppliedError(msg, slug=slug, class_tag=tag)

        current = await self.progression.get_associations(holder)
        index = await self.read_index(actor)

        new_progression = self._build_removed(current, record, state)
        new_state = state.with_removed(slug)
        new_index = index.with_class(tag, new_state.archetypes)
        await self._commit(actor, holder, (current, state, index), (new_progression, new_state, new_index))

        return OperationResult(
            success=True,
            message=f"{record.name or slug} removed from {actor.name or actor.id}'s {holder.name}.",
            progression=new_progression,
        )

    @staticmethod
    def _build_removed(
        current: list[FeatureAssociation],
        record: AppliedArchetypeRecord,
        state: ClassArchetypeState,
    ) -> list[FeatureAssociation]:
        """Invert one record against the current progression.

        An original from the pre-archetype backup goes back after the
        nearest earlier backup association that is still present, or first
        when none is. Recorded anchors only place originals the backup
        does not know; when that anchor is gone too the original is
        appended.
        """
        added = set(record.added_association_ids)
        progression = [a for a in current if a.id not in added]

        backup_order = [a.id for a in state.original_associations or []]
        anchors = record.removed_anchors
        if len(anchors) != len(record.removed_originals):
            anchors = [None] * len(record.removed_originals)

        for original, anchor in zip(record.removed_originals, anchors, strict=True):
            ids = [a.id for a in progression]
            if original.id in ids:
                continue
            if original.id in backup_order:
                progression.insert(_backup_position(original.id, backup_order, ids), original)
            elif anchor is None:
                progression.insert(0, original)
            elif anchor in ids:
                progression.insert(ids.index(anchor) + 1, original)
            else:
                progression.append(original)
        return progression

    async def _restore(self, actor: ActorRef, holder: ClassFeatureHolder) -> OperationResult:
        state = await self.read_state(holder)
        if state.original_associations is None:
            msg = f"No backup of the original class features exists for {holder.name}"
            raise NoBackupError(msg, class_tag=holder.class_tag)

        current = await self.progression.get_associations(holder)
        index = await self.read_index(actor)
        restored = list(state.original_associations)
        await self._commit(
            actor,
            holder,
            (current, state, index),
            (restored, ClassArchetypeState(), index.with_class(holder.class_tag, [])),
        )
        return OperationResult(
            success=True,
            message=f"Restored {len(restored)} original class features on {holder.name}.",
            progression=restored,
            restored_count=len(restored),
        )

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _commit(
        self,
        actor: ActorRef,
        holder: ClassFeatureHolder,
        before: tuple[list[FeatureAssociation], ClassArchetypeState, ActorArchetypeIndex],
        after: tuple[list[FeatureAssociation], ClassArchetypeState, ActorArchetypeIndex],
    ) -> None:
        """Write the new progression, holder state and actor index.

        Raises:
            PersistenceError: If a write is rejected. Writes that already
                went through are reverted first.
        """
        old_progression, old_state, old_index = before
        new_progression, new_state, new_index = after
        steps: list[tuple[Callable[[], Awaitable[None]], Callable[[], Awaitable[None]]]] = [
            (
                lambda: self.progression.set_associations(holder, new_progression),
                lambda: self.progression.set_associations(holder, old_progression),
            ),
            (
                lambda: self._write(holder_scope(holder), STATE_KEY, new_state),
                lambda: self._write(holder_scope(holder), STATE_KEY, old_state),
            ),
            (
                lambda: self._write(actor_scope(actor), INDEX_KEY, new_index),
                lambda: self._write(actor_scope(actor), INDEX_KEY, old_index),
            ),
        ]

        done: list[Callable[[], Awaitable[None]]] = []
        for write, undo in steps:
            try:
                await write()
            except Exception as exc:
                logger.exception("Persistence write rejected, rolling back", holder=holder.id, completed=len(done))
                await self._rollback(done)
                msg = f"Could not save archetype changes for {holder.name}; nothing was changed"
                raise PersistenceError(msg, class_tag=holder.class_tag, details={"error": str(exc)}) from exc
            done.append(undo)

    @staticmethod
    async def _rollback(undo_steps: list[Callable[[], Awaitable[None]]]) -> None:
        for undo in reversed(undo_steps):
            try:
                await undo()
            except Exception:
                logger.exception("Rollback step failed")

    async def _write(self, scope: str, key: str, value: ClassArchetypeState | ActorArchetypeIndex) -> None:
        if value.is_empty:
            await self.tags.unset(scope, key)
        else:
            await self.tags.set(scope, key, value.model_dump(mode="json"))

    # =========================================================================
    # Summaries
    # =========================================================================

    @staticmethod
    def apply_summary(
        actor: ActorRef,
        holder: ClassFeatureHolder,
        archetype: ParsedArchetype,
        diff: list[DiffEntry],
    ) -> str:
        """Human-readable summary of an apply.

        Example:
            "Two-Handed Fighter applied to Valeros's Fighter.
            Replaced: Bravery; Added: Shattering Strike"
        """
        replaced = [e.name for e in diff if e.status is DiffStatus.REMOVED]
        added = [e.name for e in diff if e.status is DiffStatus.ADDED]
        modified = [e.name for e in diff if e.status is DiffStatus.MODIFIED]

        parts = []
        if replaced:
            parts.append(f"Replaced: {', '.join(replaced)}")
        if added:
            parts.append(f"Added: {', '.join(added)}")
        if modified:
            parts.append(f"Modified: {', '.join(modified)}")

        summary = f"{archetype.name} applied to {actor.name or actor.id}'s {holder.name}."
        if parts:
            summary = f"{summary} {'; '.join(parts)}"
        return summary


def _backup_position(association_id: AssociationId, backup_order: list[AssociationId], ids: list[AssociationId]) -> int:
    """Insertion index after the nearest earlier backup id still present, or 0."""
    for earlier in reversed(backup_order[: backup_order.index(association_id)]):
        if earlier in ids:
            return ids.index(earlier) + 1
    return 0


def _load(model: type[Any], raw: Any, owner: str) -> Any:
    if raw is None:
        return model()
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        logger.error("Stored archetype state is unreadable, treating as empty", owner=owner, errors=exc.error_count())
        return model()


__all__ = [
    "Applicator",
    "INDEX_KEY",
    "STATE_KEY",
    "actor_scope",
    "holder_scope",
]
