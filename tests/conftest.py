"""Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the Archetype Manager test suite.
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from archetype_manager.core.config import OverrideSettings, ResolverSettings
from archetype_manager.engine.applicator import Applicator
from archetype_manager.engine.manager import ArchetypeManager
from archetype_manager.engine.overrides import OverrideResolver
from archetype_manager.engine.resolver import ArchetypeResolver
from archetype_manager.models.archetype import FeatureAssociation, RawArchetype, RawFeature
from archetype_manager.models.enums import OverrideTier
from archetype_manager.models.state import ActorRef, ClassFeatureHolder
from archetype_manager.storage.memory import (
    InMemoryOverrideStore,
    InMemoryProgressionSource,
    InMemoryTagStore,
    RecordingNotificationSink,
)


if TYPE_CHECKING:
    from collections.abc import Callable, Generator


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    from archetype_manager.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "ARCHETYPE_MANAGER_DEBUG": "true",
        "ARCHETYPE_MANAGER_LOG_LEVEL": "DEBUG",
        "ARCHETYPE_MANAGER_RESOLVER_LEVEL_DISAMBIGUATION": "first",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


# =============================================================================
# Progression Fixtures
# =============================================================================


def make_progression(*entries: tuple[str, int, str]) -> list[FeatureAssociation]:
    """Build a progression from ``(id, level, name)`` tuples."""
    return [FeatureAssociation(id=id_, level=level, name=name) for id_, level, name in entries]


@pytest.fixture
def fighter_progression() -> list[FeatureAssociation]:
    """Provide a fighter progression with repeated series entries."""
    return make_progression(
        ("f-bonus", 1, "Bonus Feat"),
        ("f-bravery", 2, "Bravery"),
        ("f-at1", 3, "Armor Training"),
        ("f-wt1", 5, "Weapon Training"),
        ("f-at2", 7, "Armor Training"),
        ("f-wt2", 9, "Weapon Training"),
        ("f-at3", 11, "Armor Training"),
    )


@pytest.fixture
def rogue_progression() -> list[FeatureAssociation]:
    """Provide a rogue progression."""
    return make_progression(
        ("r-sneak", 1, "Sneak Attack"),
        ("r-trapfinding", 1, "Trapfinding"),
        ("r-evasion", 2, "Evasion"),
        ("r-trap-sense", 3, "Trap Sense"),
    )


@pytest.fixture
def actor() -> ActorRef:
    """Provide an actor the current user may modify."""
    return ActorRef(id="actor-1", name="Valeros")


@pytest.fixture
def fighter_holder() -> ClassFeatureHolder:
    """Provide the actor's fighter class item."""
    return ClassFeatureHolder(id="item-fighter", name="Fighter", tag="fighter")


@pytest.fixture
def rogue_holder() -> ClassFeatureHolder:
    """Provide the actor's rogue class item."""
    return ClassFeatureHolder(id="item-rogue", name="Rogue", tag="rogue")


# =============================================================================
# Archetype Fixtures
# =============================================================================


@pytest.fixture
def two_handed_fighter() -> tuple[RawArchetype, list[RawFeature]]:
    """Provide the Two-Handed Fighter archetype and its features."""
    archetype = RawArchetype(name="Two-Handed Fighter", id="thf", class_name="fighter")
    features = [
        RawFeature(
            name="Shattering Strike",
            description="<p><strong>Level</strong>: 2</p><p>This ability replaces bravery.</p>",
        ),
        RawFeature(
            name="Overhand Chop",
            description="<p><strong>Level</strong>: 3</p><p>This ability replaces armor training.</p>",
        ),
        RawFeature(
            name="Two-Handed Weapon Training",
            description="Level: 5. This ability modifies weapon training.",
        ),
    ]
    return archetype, features


@pytest.fixture
def weapon_master() -> tuple[RawArchetype, list[RawFeature]]:
    """Provide an archetype that also replaces Bravery."""
    archetype = RawArchetype(name="Weapon Master", id="wm", class_name="fighter")
    features = [
        RawFeature(name="Weapon Guard", description="Level: 2. This ability replaces bravery."),
        RawFeature(name="Reliable Strike", description="Level: 9. Replaces weapon training."),
    ]
    return archetype, features


@pytest.fixture
def unbreakable() -> tuple[RawArchetype, list[RawFeature]]:
    """Provide an archetype that shares no targets with the others."""
    archetype = RawArchetype(name="Unbreakable", id="unb", class_name="fighter")
    features = [
        RawFeature(name="Unflinching", description="Level: 1. This ability replaces bonus feat."),
        RawFeature(name="Heroic Recovery", description="Level: 7. A once-per-day reroll."),
    ]
    return archetype, features


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def progression_source(
    fighter_holder: ClassFeatureHolder,
    rogue_holder: ClassFeatureHolder,
    fighter_progression: list[FeatureAssociation],
    rogue_progression: list[FeatureAssociation],
) -> InMemoryProgressionSource:
    """Provide a progression source holding the fighter and rogue progressions."""
    return InMemoryProgressionSource(
        {fighter_holder.id: fighter_progression, rogue_holder.id: rogue_progression}
    )


@pytest.fixture
def tag_store() -> InMemoryTagStore:
    """Provide an empty tag store."""
    return InMemoryTagStore()


@pytest.fixture
def override_store() -> InMemoryOverrideStore:
    """Provide an empty override store."""
    return InMemoryOverrideStore()


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    """Provide a notification sink that records messages."""
    return RecordingNotificationSink()


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Provide a deterministic association id factory."""
    counter = itertools.count(1)
    return lambda: f"new-{next(counter)}"


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Provide a clock that advances one minute per call."""
    start = datetime(2024, 1, 1, tzinfo=UTC)
    counter = itertools.count()
    return lambda: start + timedelta(minutes=next(counter))


@pytest.fixture
def override_resolver(override_store: InMemoryOverrideStore) -> OverrideResolver:
    """Provide an override resolver over the in-memory store."""
    return OverrideResolver(override_store, OverrideSettings())


@pytest.fixture
def archetype_resolver(
    override_resolver: OverrideResolver,
    notifier: RecordingNotificationSink,
) -> ArchetypeResolver:
    """Provide an archetype resolver with default settings."""
    return ArchetypeResolver(override_resolver, settings=ResolverSettings(), notifier=notifier)


@pytest.fixture
def applicator(
    progression_source: InMemoryProgressionSource,
    tag_store: InMemoryTagStore,
    notifier: RecordingNotificationSink,
    id_factory: Callable[[], str],
    clock: Callable[[], datetime],
) -> Applicator:
    """Provide an applicator over the in-memory collaborators."""
    return Applicator(
        progression_source,
        tag_store,
        notifier=notifier,
        id_factory=id_factory,
        clock=clock,
    )


@pytest.fixture
def manager(
    archetype_resolver: ArchetypeResolver,
    applicator: Applicator,
    notifier: RecordingNotificationSink,
) -> ArchetypeManager:
    """Provide a manager without a content catalog."""
    return ArchetypeManager(resolver=archetype_resolver, applicator=applicator, notifier=notifier)


@pytest.fixture
def fixes_override() -> dict[str, dict]:
    """Provide a fixes-tier record for the Two-Handed Fighter."""
    return {
        "two-handed-fighter": {
            "class": "fighter",
            "features": {
                "overhand-chop": {
                    "level": 7,
                    "replaces": "Armor Training",
                    "description": "Corrected text.",
                },
            },
        },
    }


@pytest.fixture
def seeded_override_store(fixes_override: dict[str, dict]) -> InMemoryOverrideStore:
    """Provide an override store with a fixes-tier record."""
    return InMemoryOverrideStore({OverrideTier.FIXES: fixes_override})
