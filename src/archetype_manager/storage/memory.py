"""In-memory collaborators.

Dict-backed implementations of the engine ports, for tests and for hosts
that keep their own persistence. Stored values are deep-copied on the way
in and out so callers can never mutate stored state by accident.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable
from typing import Any

from archetype_manager.core.logging import get_logger
from archetype_manager.models.archetype import FeatureAssociation
from archetype_manager.models.enums import NotificationLevel, OverrideTier
from archetype_manager.models.state import ClassFeatureHolder


logger = get_logger(__name__)


class InMemoryProgressionSource:
    """Feature progressions keyed by holder id."""

    def __init__(self, progressions: dict[str, list[FeatureAssociation]] | None = None) -> None:
        self.progressions = {k: list(v) for k, v in (progressions or {}).items()}

    async def get_associations(self, holder: ClassFeatureHolder) -> list[FeatureAssociation]:
        await asyncio.sleep(0)
        return list(self.progressions.get(holder.id, []))

    async def set_associations(self, holder: ClassFeatureHolder, associations: list[FeatureAssociation]) -> None:
        await asyncio.sleep(0)
        self.progressions[holder.id] = list(associations)


class InMemoryTagStore:
    """Scoped JSON tags."""

    def __init__(self) -> None:
        self.tags: dict[tuple[str, str], Any] = {}

    async def get(self, scope: str, key: str) -> Any | None:
        return copy.deepcopy(self.tags.get((scope, key)))

    async def set(self, scope: str, key: str, value: Any) -> None:
        self.tags[(scope, key)] = copy.deepcopy(value)

    async def unset(self, scope: str, key: str) -> None:
        self.tags.pop((scope, key), None)

    def scope(self, scope: str) -> dict[str, Any]:
        """Everything stored under one scope."""
        return {k: copy.deepcopy(v) for (s, k), v in self.tags.items() if s == scope}


class InMemoryOverrideStore:
    """Tiered override records with optional privilege gating."""

    def __init__(
        self,
        records: dict[OverrideTier, dict[str, Any]] | None = None,
        *,
        privileged_tiers: Iterable[OverrideTier] = (),
        privileged: bool = True,
    ) -> None:
        self.records: dict[OverrideTier, dict[str, Any]] = {tier: {} for tier in OverrideTier}
        for tier, entries in (records or {}).items():
            self.records[OverrideTier(tier)].update(copy.deepcopy(entries))
        self.privileged_tiers = frozenset(privileged_tiers)
        self.privileged = privileged

    def _may_write(self, tier: OverrideTier) -> bool:
        return self.privileged or tier not in self.privileged_tiers

    async def get(self, tier: OverrideTier, slug: str) -> Any | None:
        return copy.deepcopy(self.records[tier].get(slug))

    async def get_all(self, tier: OverrideTier) -> dict[str, Any]:
        return copy.deepcopy(self.records[tier])

    async def set(self, tier: OverrideTier, slug: str, record: dict[str, Any]) -> bool:
        if not self._may_write(tier):
            logger.warning("Write to privileged override tier refused", tier=str(tier), slug=slug)
            return False
        self.records[tier][slug] = copy.deepcopy(record)
        return True

    async def delete(self, tier: OverrideTier, slug: str) -> bool:
        if not self._may_write(tier):
            return False
        return self.records[tier].pop(slug, None) is not None


class RecordingNotificationSink:
    """Notification sink that keeps every message."""

    def __init__(self) -> None:
        self.messages: list[tuple[NotificationLevel, str]] = []

    def notify(self, level: NotificationLevel, message: str) -> None:
        self.messages.append((level, message))

    def of_level(self, level: NotificationLevel) -> list[str]:
        return [message for lvl, message in self.messages if lvl is level]

    def clear(self) -> None:
        self.messages.clear()


__all__ = [
    "InMemoryOverrideStore",
    "InMemoryProgressionSource",
    "InMemoryTagStore",
    "RecordingNotificationSink",
]
