"""Archetype Manager facade.

Wires the pipeline for a host application::

    catalog -> ArchetypeResolver -> DiffEngine -> ConflictChecker -> Applicator

Example:
    >>> manager = ArchetypeManager.create(
    ...     progression=InMemoryProgressionSource(),
    ...     tags=InMemoryTagStore(),
    ...     override_store=InMemoryOverrideStore(),
    ... )
    >>> preview = await manager.preview(actor, holder, archetype, features)
    >>> if not preview.archetype.needs_user_input:
    ...     await manager.apply(actor, holder, archetype, features)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from archetype_manager.core.config import Settings
from archetype_manager.core.logging import get_logger
from archetype_manager.engine.applicator import Applicator
from archetype_manager.engine.classifier import slugify
from archetype_manager.engine.conflicts import ConflictChecker
from archetype_manager.engine.diff import DiffEngine
from archetype_manager.engine.overrides import OverrideResolver
from archetype_manager.engine.ports import (
    ContentSource,
    FeatureResolver,
    LoggingNotificationSink,
    NotificationSink,
    OverrideStore,
    ProgressionSource,
    TagStore,
    send_notification,
)
from archetype_manager.engine.resolver import ArchetypeResolver
from archetype_manager.models.archetype import Conflict, DiffEntry, ParsedArchetype, RawArchetype, RawFeature
from archetype_manager.models.enums import NotificationLevel
from archetype_manager.models.state import ActorRef, ClassFeatureHolder, OperationResult

if TYPE_CHECKING:
    from archetype_manager.ingestion.content_source import ArchetypeCatalog, CatalogEntry


logger = get_logger(__name__)


class ArchetypePreview(BaseModel):
    """What applying an archetype would do.

    Attributes:
        archetype: The parsed archetype.
        diff: Diff against the holder's current progression.
        conflicts: Advisory conflicts with archetypes already applied.
    """

    archetype: ParsedArchetype
    diff: list[DiffEntry] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)

    @property
    def can_apply(self) -> bool:
        return not self.archetype.needs_user_input


class ArchetypeManager:
    """Entry point for previewing, applying and removing archetypes."""

    def __init__(
        self,
        *,
        resolver: ArchetypeResolver,
        applicator: Applicator,
        catalog: ArchetypeCatalog | None = None,
        diff_engine: DiffEngine | None = None,
        conflict_checker: ConflictChecker | None = None,
        notifier: NotificationSink | None = None,
    ) -> None:
        self.resolver = resolver
        self.applicator = applicator
        self.catalog = catalog
        self.diff_engine = diff_engine or DiffEngine()
        self.conflict_checker = conflict_checker or ConflictChecker()
        self.notifier = notifier or LoggingNotificationSink()

    @classmethod
    def create(
        cls,
        *,
        progression: ProgressionSource,
        tags: TagStore,
        override_store: OverrideStore,
        content_source: ContentSource | None = None,
        notifier: NotificationSink | None = None,
        settings: Settings | None = None,
    ) -> ArchetypeManager:
        """Build a manager and all of its components from collaborators.

        Args:
            progression: Reads and replaces holder progressions.
            tags: Persists holder state and actor indexes.
            override_store: Backing store of the override tiers.
            content_source: Archetype content; None for override-only mode.
            notifier: User notification sink.
            settings: Settings; defaults are used when omitted.

        Returns:
            A ready manager.
        """
        from archetype_manager.ingestion.content_source import ArchetypeCatalog

        settings = settings or Settings()
        notifier = notifier or LoggingNotificationSink()
        diff_engine = DiffEngine()
        conflict_checker = ConflictChecker()
        overrides = OverrideResolver(override_store, settings.overrides)

        return cls(
            resolver=ArchetypeResolver(overrides, settings=settings.resolver, notifier=notifier),
            applicator=Applicator(
                progression,
                tags,
                notifier=notifier,
                diff_engine=diff_engine,
                conflict_checker=conflict_checker,
            ),
            catalog=ArchetypeCatalog(content_source, overrides, settings=settings.content, notifier=notifier),
            diff_engine=diff_engine,
            conflict_checker=conflict_checker,
            notifier=notifier,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_archetypes(self, holder: ClassFeatureHolder) -> list[CatalogEntry]:
        """List archetypes available to a class (empty without a catalog)."""
        if self.catalog is None:
            return []
        return await self.catalog.list_for_class(holder.name, holder.class_tag)

    async def applied_archetypes(self, actor: ActorRef) -> dict[str, list[str]]:
        """Read the actor's ``class tag -> applied slugs`` index."""
        return (await self.applicator.read_index(actor)).classes

    async def preview(
        self,
        actor: ActorRef,
        holder: ClassFeatureHolder,
        archetype: RawArchetype,
        features: list[RawFeature] | None = None,
        *,
        resolve_feature: FeatureResolver | None = None,
    ) -> ArchetypePreview:
        """Resolve an archetype and compute its diff and conflicts.

        Args:
            actor: Owner of the holder.
            holder: The class feature holder.
            archetype: Raw archetype record.
            features: Raw features; loaded from the catalog when omitted.
            resolve_feature: Optional "ask the user" callback.

        Returns:
            The preview. Nothing is mutated.
        """
        current = await self.applicator.progression.get_associations(holder)
        if features is None:
            features = await self.catalog.load_features(archetype) if self.catalog else []

        parsed: ParsedArchetype | None = None
        if not features:
            parsed = await self.resolver.resolve_from_override(
                slugify(archetype.name),
                current,
                name=archetype.name,
                resolve_feature=resolve_feature,
            )
        if parsed is None:
            parsed = await self.resolver.resolve(archetype, features, current, resolve_feature=resolve_feature)

        diff = self.diff_engine.generate_diff(current, parsed)
        conflicts = await self.conflicts_for(holder, parsed)
        logger.info(
            "Archetype previewed",
            actor=actor.id,
            slug=parsed.slug,
            entries=len(diff),
            conflicts=len(conflicts),
        )
        return ArchetypePreview(archetype=parsed, diff=diff, conflicts=conflicts)

    async def conflicts_for(self, holder: ClassFeatureHolder, archetype: ParsedArchetype) -> list[Conflict]:
        """Advisory conflicts between a candidate and the holder's applied archetypes.

        The candidate is diffed against the pre-archetype progression, the
        same progression the applied archetypes were first matched against.
        """
        state = await self.applicator.read_state(holder)
        if state.is_empty or state.original_associations is None:
            return []
        base = state.original_associations
        base_diff = self.diff_engine.generate_diff(base, self.resolver.rematch(archetype, base))
        return self.conflict_checker.check(base_diff, state.records.values(), exclude_slug=archetype.slug)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def apply(
        self,
        actor: ActorRef,
        holder: ClassFeatureHolder,
        archetype: RawArchetype,
        features: list[RawFeature] | None = None,
        *,
        resolve_feature: FeatureResolver | None = None,
    ) -> OperationResult:
        """Preview and apply an archetype in one call.

        Conflicts are reported to the notification sink but do not block.
        """
        preview = await self.preview(actor, holder, archetype, features, resolve_feature=resolve_feature)
        for conflict in preview.conflicts:
            send_notification(
                self.notifier,
                NotificationLevel.WARNING,
                f"{preview.archetype.name} conflicts with {', '.join(conflict.conflicting_slugs)} "
                f"over {conflict.target_name}",
            )
        return await self.applicator.apply(actor, holder, preview.archetype, preview.diff)

    async def apply_preview(self, actor: ActorRef, holder: ClassFeatureHolder, preview: ArchetypePreview) -> OperationResult:
        """Apply a preview the user has already confirmed."""
        return await self.applicator.apply(actor, holder, preview.archetype, preview.diff)

    async def remove(self, actor: ActorRef, holder: ClassFeatureHolder, slug: str) -> OperationResult:
        """Remove one applied archetype."""
        return await self.applicator.remove(actor, holder, slug)

    async def restore_from_backup(self, actor: ActorRef, holder: ClassFeatureHolder) -> OperationResult:
        """Restore the holder's pre-archetype progression."""
        return await self.applicator.restore_from_backup(actor, holder)


__all__ = [
    "ArchetypeManager",
    "ArchetypePreview",
]
