"""Archetype content loading.

Wraps a ContentSource (compendium packs, a JSON export, ...) so the rest
of the system never sees it fail: when the source is unavailable the
catalog logs the failure, notifies the user once and returns empty
lists, leaving the manager in override-only mode.

The catalog also merges content-source archetypes with the ``missing``
and ``custom`` override tiers for the per-class selection list.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from archetype_manager.core.config import ContentSettings
from archetype_manager.core.exceptions import ContentSourceError
from archetype_manager.core.logging import get_logger
from archetype_manager.engine.classifier import scope_features, slugify
from archetype_manager.engine.overrides import OverrideResolver
from archetype_manager.engine.ports import (
    ContentSource,
    LoggingNotificationSink,
    NotificationSink,
    send_notification,
)
from archetype_manager.models.archetype import RawArchetype, RawFeature
from archetype_manager.models.enums import ArchetypeOrigin, NotificationLevel, OverrideTier


logger = get_logger(__name__)


# =============================================================================
# Models
# =============================================================================


class ContentDocument(BaseModel):
    """On-disk shape of a JSON content export."""

    model_config = ConfigDict(extra="ignore")

    archetypes: list[RawArchetype] = Field(default_factory=list)
    features: list[RawFeature] = Field(default_factory=list)


class CatalogEntry(BaseModel):
    """One selectable archetype for a class.

    Attributes:
        slug: Archetype slug.
        name: Display name.
        class_name: Class the archetype belongs to.
        origin: Where the entry came from.
        archetype: The raw content record (content-source entries only).
    """

    slug: str
    name: str
    class_name: str | None = None
    origin: ArchetypeOrigin
    archetype: RawArchetype | None = None

    def to_raw(self) -> RawArchetype:
        return self.archetype or RawArchetype(name=self.name, class_name=self.class_name)


# =============================================================================
# Content Sources
# =============================================================================


class JsonFileContentSource:
    """Content source reading ``{"archetypes": [...], "features": [...]}`` from disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._document: ContentDocument | None = None

    async def _load(self) -> ContentDocument:
        if self._document is None:
            try:
                text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
                self._document = ContentDocument.model_validate_json(text)
            except OSError as exc:
                msg = f"Cannot read content file: {exc}"
                raise ContentSourceError(msg, source=str(self.path)) from exc
            except PydanticValidationError as exc:
                msg = f"Content file is malformed ({exc.error_count()} errors)"
                raise ContentSourceError(msg, source=str(self.path)) from exc
            logger.info(
                "Content file loaded",
                path=str(self.path),
                archetypes=len(self._document.archetypes),
                features=len(self._document.features),
            )
        return self._document

    async def load_archetypes(self) -> list[RawArchetype]:
        return list((await self._load()).archetypes)

    async def load_features(self) -> list[RawFeature]:
        return list((await self._load()).features)


# =============================================================================
# Catalog
# =============================================================================


class ArchetypeCatalog:
    """Failure-tolerant view over a content source and the override tiers."""

    def __init__(
        self,
        source: ContentSource | None,
        overrides: OverrideResolver,
        *,
        settings: ContentSettings | None = None,
        notifier: NotificationSink | None = None,
    ) -> None:
        """Initialize the catalog.

        Args:
            source: Content source; None means override-only mode.
            overrides: Override tiers merged into class listings.
            settings: Content settings; defaults are used when omitted.
            notifier: Sink for availability warnings.
        """
        self.source = source
        self.overrides = overrides
        self.settings = settings or ContentSettings()
        self.notifier = notifier or LoggingNotificationSink()
        self._archetypes: list[RawArchetype] | None = None
        self._features: list[RawFeature] | None = None
        self._warned = False

    @property
    def available(self) -> bool:
        return self.settings.enabled and self.source is not None

    def clear_cache(self) -> None:
        """Forget loaded content so the next call reloads from the source."""
        self._archetypes = None
        self._features = None
        self._warned = False

    async def load_archetypes(self) -> list[RawArchetype]:
        """Load every archetype record; empty if the source is unavailable."""
        if self._archetypes is None:
            if not self.available:
                return []
            try:
                self._archetypes = list(await self.source.load_archetypes())
            except Exception as exc:
                self._report_unavailable("archetypes", exc)
                return []
            logger.debug("Archetypes loaded", count=len(self._archetypes))
        return list(self._archetypes)

    async def load_all_features(self) -> list[RawFeature]:
        """Load every archetype feature record; empty if the source is unavailable."""
        if self._features is None:
            if not self.available:
                return []
            try:
                self._features = list(await self.source.load_features())
            except Exception as exc:
                self._report_unavailable("features", exc)
                return []
            logger.debug("Archetype features loaded", count=len(self._features))
        return list(self._features)

    async def load_features(self, archetype: RawArchetype) -> list[RawFeature]:
        """Load the features that belong to one archetype."""
        return scope_features(archetype, await self.load_all_features())

    async def find(self, slug: str) -> RawArchetype | None:
        """Find a content-source archetype by slug."""
        for archetype in await self.load_archetypes():
            if slugify(archetype.name) == slug:
                return archetype
        return None

    async def list_for_class(self, class_name: str, class_tag: str | None = None) -> list[CatalogEntry]:
        """List every archetype available to a class, sorted by name.

        Content-source archetypes come first in precedence; ``missing`` and
        ``custom`` tier entries are added for slugs not already listed.

        Args:
            class_name: Class display name.
            class_tag: Class tag; matched as an alternative to the name.

        Returns:
            Entries tagged with their origin.
        """
        accepted = {class_name.strip().lower()}
        if class_tag:
            accepted.add(class_tag.strip().lower())

        entries: dict[str, CatalogEntry] = {}
        for archetype in await self.load_archetypes():
            if (archetype.class_name or "").strip().lower() not in accepted:
                continue
            slug = slugify(archetype.name)
            entries.setdefault(
                slug,
                CatalogEntry(
                    slug=slug,
                    name=archetype.name,
                    class_name=archetype.class_name,
                    origin=ArchetypeOrigin.COMPENDIUM,
                    archetype=archetype,
                ),
            )

        for tier, origin in ((OverrideTier.MISSING, ArchetypeOrigin.MISSING), (OverrideTier.CUSTOM, ArchetypeOrigin.CUSTOM)):
            for slug, record in (await self.overrides.get_tier(tier)).items():
                if (record.class_name or "").strip().lower() not in accepted or slug in entries:
                    continue
                entries[slug] = CatalogEntry(
                    slug=slug,
                    name=record.name or slug.replace("-", " ").title(),
                    class_name=record.class_name,
                    origin=origin,
                )

        listing = sorted(entries.values(), key=lambda e: e.name.lower())
        logger.debug("Archetypes listed", class_name=class_name, count=len(listing))
        return listing

    def _report_unavailable(self, what: str, exc: Exception) -> None:
        logger.error("Content source unavailable", what=what, error=str(exc))
        if not self._warned:
            self._warned = True
            send_notification(
                self.notifier,
                NotificationLevel.WARNING,
                f"Archetype content could not be loaded ({what}); only manual entries are available.",
            )


__all__ = [
    "ArchetypeCatalog",
    "CatalogEntry",
    "ContentDocument",
    "JsonFileContentSource",
]
