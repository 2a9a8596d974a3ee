"""Collaborator interfaces consumed by the engine.

The engine owns no I/O. Hosts supply these collaborators; the storage
package ships SQLite and in-memory implementations.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from archetype_manager.core.logging import get_logger
from archetype_manager.models.archetype import (
    Classification,
    FeatureAssociation,
    ParsedFeature,
    RawArchetype,
    RawFeature,
    Resolution,
)
from archetype_manager.models.enums import NotificationLevel, OverrideTier
from archetype_manager.models.state import ClassFeatureHolder


logger = get_logger(__name__)


@runtime_checkable
class ClassifierStrategy(Protocol):
    """Anything that can classify a feature description."""

    def classify(self, description: str | None) -> Classification: ...

    def parse_level(self, description: str | None) -> int | None: ...


class ProgressionSource(Protocol):
    """Reads and replaces a holder's feature progression."""

    async def get_associations(self, holder: ClassFeatureHolder) -> list[FeatureAssociation]: ...

    async def set_associations(
        self, holder: ClassFeatureHolder, associations: list[FeatureAssociation]
    ) -> None: ...


class ContentSource(Protocol):
    """Supplies raw archetype and feature records. May raise on failure."""

    async def load_archetypes(self) -> list[RawArchetype]: ...

    async def load_features(self) -> list[RawFeature]: ...


class OverrideStore(Protocol):
    """Tiered key-value store of override records.

    ``get`` returns the raw JSON value or None and may raise
    OverrideStoreError on unreadable data. ``set``/``delete`` return False
    when the write is refused (e.g. permission-gated tier) and must not
    partially write.
    """

    async def get(self, tier: OverrideTier, slug: str) -> Any | None: ...

    async def get_all(self, tier: OverrideTier) -> dict[str, Any]: ...

    async def set(self, tier: OverrideTier, slug: str, record: dict[str, Any]) -> bool: ...

    async def delete(self, tier: OverrideTier, slug: str) -> bool: ...


class TagStore(Protocol):
    """Scoped JSON tag storage on actors and class feature holders."""

    async def get(self, scope: str, key: str) -> Any | None: ...

    async def set(self, scope: str, key: str, value: Any) -> None: ...

    async def unset(self, scope: str, key: str) -> None: ...


class NotificationSink(Protocol):
    """Fire-and-forget user notifications."""

    def notify(self, level: NotificationLevel, message: str) -> None: ...


FeatureResolver = Callable[[ParsedFeature, list[FeatureAssociation]], Awaitable[Resolution | None]]
"""Async "ask the user" callback for features that need input."""


class LoggingNotificationSink:
    """Notification sink that only logs. Used when the host supplies none."""

    def notify(self, level: NotificationLevel, message: str) -> None:
        if level is NotificationLevel.ERROR:
            logger.error("notification", message=message)
        elif level is NotificationLevel.WARNING:
            logger.warning("notification", message=message)
        else:
            logger.info("notification", message=message)


def send_notification(sink: NotificationSink, level: NotificationLevel, message: str) -> None:
    """Deliver a notification without letting sink failures propagate."""
    try:
        sink.notify(level, message)
    except Exception:
        logger.exception("Notification sink failed", level=str(level))


__all__ = [
    "ClassifierStrategy",
    "ProgressionSource",
    "ContentSource",
    "OverrideStore",
    "TagStore",
    "NotificationSink",
    "FeatureResolver",
    "LoggingNotificationSink",
    "send_notification",
]
