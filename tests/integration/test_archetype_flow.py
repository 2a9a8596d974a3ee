"""Integration tests for the archetype lifecycle.

Drives the manager end to end: resolve, preview, apply, stack, remove and
restore, over in-memory and SQLite collaborators.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from archetype_manager.core.config import Settings
from archetype_manager.engine.manager import ArchetypeManager
from archetype_manager.models.archetype import (
    FeatureAssociation,
    ParsedFeature,
    RawArchetype,
    RawFeature,
    Resolution,
)
from archetype_manager.models.enums import FailureReason, FeatureSource
from archetype_manager.models.state import ActorRef, ClassFeatureHolder
from archetype_manager.storage.database import Database, SqliteOverrideStore, SqliteTagStore
from archetype_manager.storage.memory import (
    InMemoryOverrideStore,
    InMemoryProgressionSource,
    InMemoryTagStore,
)


pytestmark = pytest.mark.integration

Raw = tuple[RawArchetype, list[RawFeature]]

SCOUT = (
    RawArchetype(name="Scout", class_name="rogue"),
    [RawFeature(name="Skirmisher", description="Level: 3. This ability replaces trap sense.")],
)

ARCH_A = (
    RawArchetype(name="Arch A", class_name="fighter"),
    [RawFeature(name="A2", description="Level: 2. This ability replaces beta.")],
)

ARCH_B = (
    RawArchetype(name="Arch B", class_name="fighter"),
    [
        RawFeature(name="B1", description="Level: 1. This ability replaces alpha."),
        RawFeature(name="B3", description="Level: 3. This ability replaces gamma."),
    ],
)


def build_manager(source: InMemoryProgressionSource) -> ArchetypeManager:
    return ArchetypeManager.create(
        progression=source,
        tags=InMemoryTagStore(),
        override_store=InMemoryOverrideStore(),
        settings=Settings(),
    )


class TestSingleArchetype:
    """Apply and remove one archetype."""

    @pytest.mark.asyncio
    async def test_shattering_strike_round_trip(self, actor: ActorRef) -> None:
        """Replace Bravery with Shattering Strike, then put Bravery back."""
        holder = ClassFeatureHolder(id="item-1", name="Fighter", tag="fighter")
        bravery = FeatureAssociation(id=1, level=2, name="Bravery")
        source = InMemoryProgressionSource({holder.id: [bravery]})
        manager = build_manager(source)

        applied = await manager.apply(
            actor,
            holder,
            RawArchetype(name="Two-Handed Fighter", class_name="fighter"),
            [RawFeature(name="Shattering Strike", description="Level: 2. Replaces Bravery.")],
        )

        assert applied.success
        (strike,) = applied.progression
        assert (strike.name, strike.level) == ("Shattering Strike", 2)
        assert strike.id != 1
        assert await manager.applied_archetypes(actor) == {"fighter": ["two-handed-fighter"]}

        removed = await manager.remove(actor, holder, "two-handed-fighter")

        assert removed.progression == [bravery]
        assert source.progressions[holder.id] == [bravery]
        assert await manager.applied_archetypes(actor) == {}

    @pytest.mark.asyncio
    async def test_reapply_changes_nothing(
        self,
        manager: ArchetypeManager,
        progression_source: InMemoryProgressionSource,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        two_handed_fighter: Raw,
    ) -> None:
        """A second apply of the same archetype is refused."""
        await manager.apply(actor, fighter_holder, *two_handed_fighter)
        before = list(progression_source.progressions[fighter_holder.id])

        again = await manager.apply(actor, fighter_holder, *two_handed_fighter)

        assert again.reason == FailureReason.DUPLICATE_APPLY
        assert progression_source.progressions[fighter_holder.id] == before

    @pytest.mark.asyncio
    async def test_remove_never_applied(
        self,
        manager: ArchetypeManager,
        progression_source: InMemoryProgressionSource,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        fighter_progression: list[FeatureAssociation],
    ) -> None:
        """Removing an archetype that is not there changes nothing."""
        result = await manager.remove(actor, fighter_holder, "two-handed-fighter")

        assert result.reason == FailureReason.NOT_APPLIED
        assert progression_source.progressions[fighter_holder.id] == fighter_progression


class TestStacking:
    """Several archetypes on one class."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order", [("two-handed-fighter", "unbreakable"), ("unbreakable", "two-handed-fighter")])
    async def test_removal_order_does_not_matter(
        self,
        manager: ArchetypeManager,
        progression_source: InMemoryProgressionSource,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        fighter_progression: list[FeatureAssociation],
        two_handed_fighter: Raw,
        unbreakable: Raw,
        order: tuple[str, str],
    ) -> None:
        """Removing both archetypes in either order restores the original."""
        assert (await manager.apply(actor, fighter_holder, *two_handed_fighter)).success
        assert (await manager.apply(actor, fighter_holder, *unbreakable)).success
        assert await manager.applied_archetypes(actor) == {"fighter": ["two-handed-fighter", "unbreakable"]}

        first, second = order
        partial = await manager.remove(actor, fighter_holder, first)
        assert partial.success
        assert await manager.applied_archetypes(actor) == {"fighter": [second]}

        final = await manager.remove(actor, fighter_holder, second)

        assert final.progression == fighter_progression
        assert progression_source.progressions[fighter_holder.id] == fighter_progression
        assert await manager.applied_archetypes(actor) == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("order", "between"),
        [
            (("arch-a", "arch-b"), ["Beta", "B1", "B3"]),
            (("arch-b", "arch-a"), ["Alpha", "Gamma", "A2"]),
        ],
    )
    async def test_interleaved_removal_order_does_not_matter(
        self,
        actor: ActorRef,
        order: tuple[str, str],
        between: list[str],
    ) -> None:
        """Archetypes touching alternating entries unwind to the original in either order."""
        holder = ClassFeatureHolder(id="item-abc", name="Fighter", tag="fighter")
        original = [
            FeatureAssociation(id="x1", level=1, name="Alpha"),
            FeatureAssociation(id="x2", level=2, name="Beta"),
            FeatureAssociation(id="x3", level=3, name="Gamma"),
        ]
        source = InMemoryProgressionSource({holder.id: list(original)})
        manager = build_manager(source)
        assert (await manager.apply(actor, holder, *ARCH_A)).success
        assert (await manager.apply(actor, holder, *ARCH_B)).success

        first, second = order
        partial = await manager.remove(actor, holder, first)
        assert [a.name for a in partial.progression] == between

        final = await manager.remove(actor, holder, second)

        assert final.progression == original
        assert source.progressions[holder.id] == original
        assert await manager.applied_archetypes(actor) == {}

    @pytest.mark.asyncio
    async def test_conflicts_are_symmetric(
        self,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        fighter_progression: list[FeatureAssociation],
        two_handed_fighter: Raw,
        weapon_master: Raw,
    ) -> None:
        """A conflicts with B exactly when B conflicts with A."""
        found: list[set[str]] = []
        for first, second in ((two_handed_fighter, weapon_master), (weapon_master, two_handed_fighter)):
            source = InMemoryProgressionSource({fighter_holder.id: list(fighter_progression)})
            manager = build_manager(source)
            assert (await manager.apply(actor, fighter_holder, *first)).success

            preview = await manager.preview(actor, fighter_holder, *second)

            found.append({c.target_name for c in preview.conflicts})

        assert found[0] == found[1] == {"Bravery", "Weapon Training"}

    @pytest.mark.asyncio
    async def test_restore_discards_the_stack(
        self,
        manager: ArchetypeManager,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        fighter_progression: list[FeatureAssociation],
        two_handed_fighter: Raw,
        unbreakable: Raw,
    ) -> None:
        """The emergency restore puts the pre-archetype progression back."""
        await manager.apply(actor, fighter_holder, *two_handed_fighter)
        await manager.apply(actor, fighter_holder, *unbreakable)

        restored = await manager.restore_from_backup(actor, fighter_holder)

        assert restored.progression == fighter_progression
        assert await manager.applied_archetypes(actor) == {}


class TestMulticlass:
    """Archetypes on different classes of one actor."""

    @pytest.mark.asyncio
    async def test_classes_are_isolated(
        self,
        manager: ArchetypeManager,
        progression_source: InMemoryProgressionSource,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        rogue_holder: ClassFeatureHolder,
        fighter_progression: list[FeatureAssociation],
        two_handed_fighter: Raw,
    ) -> None:
        """Removing the fighter archetype leaves the rogue one alone."""
        assert (await manager.apply(actor, fighter_holder, *two_handed_fighter)).success
        rogue = await manager.apply(actor, rogue_holder, *SCOUT)
        assert rogue.success
        assert await manager.applied_archetypes(actor) == {
            "fighter": ["two-handed-fighter"],
            "rogue": ["scout"],
        }

        await manager.remove(actor, fighter_holder, "two-handed-fighter")

        assert progression_source.progressions[fighter_holder.id] == fighter_progression
        assert progression_source.progressions[rogue_holder.id] == rogue.progression
        assert await manager.applied_archetypes(actor) == {"rogue": ["scout"]}

    @pytest.mark.asyncio
    async def test_wrong_class_is_refused(
        self,
        manager: ArchetypeManager,
        progression_source: InMemoryProgressionSource,
        actor: ActorRef,
        rogue_holder: ClassFeatureHolder,
        rogue_progression: list[FeatureAssociation],
    ) -> None:
        """A fighter archetype cannot be put on a rogue."""
        result = await manager.apply(
            actor,
            rogue_holder,
            RawArchetype(name="Trapbreaker", class_name="fighter"),
            [RawFeature(name="Disarm", description="Level: 3. Replaces trap sense.")],
        )

        assert result.reason == FailureReason.CLASS_MISMATCH
        assert progression_source.progressions[rogue_holder.id] == rogue_progression


class TestConcurrency:
    """Overlapping operations on one holder."""

    @pytest.mark.asyncio
    async def test_overlapping_applies(
        self,
        manager: ArchetypeManager,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        two_handed_fighter: Raw,
        unbreakable: Raw,
    ) -> None:
        """Only the first of two overlapping applies goes through."""
        first = await manager.preview(actor, fighter_holder, *two_handed_fighter)
        second = await manager.preview(actor, fighter_holder, *unbreakable)

        results = await asyncio.gather(
            manager.apply_preview(actor, fighter_holder, first),
            manager.apply_preview(actor, fighter_holder, second),
        )

        assert [r.success for r in results] == [True, False]
        assert results[1].reason == FailureReason.IN_PROGRESS
        assert await manager.applied_archetypes(actor) == {"fighter": ["two-handed-fighter"]}


class TestSqlitePersistence:
    """The full lifecycle over the SQLite stores."""

    @staticmethod
    def sqlite_manager(db_path: Path, source: InMemoryProgressionSource) -> ArchetypeManager:
        database = Database(db_path)
        return ArchetypeManager.create(
            progression=source,
            tags=SqliteTagStore(database),
            override_store=SqliteOverrideStore(database, privileged_tiers=[]),
            settings=Settings(),
        )

    @pytest.mark.asyncio
    async def test_state_survives_restart(
        self,
        tmp_path: Path,
        progression_source: InMemoryProgressionSource,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
        fighter_progression: list[FeatureAssociation],
        two_handed_fighter: Raw,
    ) -> None:
        """An archetype applied before a restart can be removed after it."""
        db_path = tmp_path / "archetypes.db"
        first = self.sqlite_manager(db_path, progression_source)
        assert (await first.apply(actor, fighter_holder, *two_handed_fighter)).success

        second = self.sqlite_manager(db_path, progression_source)

        assert await second.applied_archetypes(actor) == {"fighter": ["two-handed-fighter"]}
        result = await second.remove(actor, fighter_holder, "two-handed-fighter")
        assert result.progression == fighter_progression

    @pytest.mark.asyncio
    async def test_user_fix_is_remembered(
        self,
        tmp_path: Path,
        progression_source: InMemoryProgressionSource,
        actor: ActorRef,
        fighter_holder: ClassFeatureHolder,
    ) -> None:
        """A feature the user resolved once is not asked about again."""
        archetype = RawArchetype(name="Brawler Knight", class_name="fighter")
        features = [RawFeature(name="Iron Fist", description="The fighter punches very hard.")]
        asked: list[str] = []

        async def answer(feature: ParsedFeature, progression: list[FeatureAssociation]) -> Resolution:
            asked.append(feature.name)
            return Resolution(level=1, replaces="Bonus Feat")

        db_path = tmp_path / "archetypes.db"
        first = await self.sqlite_manager(db_path, progression_source).preview(
            actor, fighter_holder, archetype, features, resolve_feature=answer
        )
        second = await self.sqlite_manager(db_path, progression_source).preview(
            actor, fighter_holder, archetype, features, resolve_feature=answer
        )

        assert asked == ["Iron Fist"]
        assert first.can_apply
        assert second.can_apply
        assert second.archetype.features[0].source == FeatureSource.USER_FIX
        assert second.archetype.features[0].matched_association.id == "f-bonus"
