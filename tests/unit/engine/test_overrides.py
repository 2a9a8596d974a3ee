"""Tests for tiered override lookup and maintenance."""

from __future__ import annotations

from typing import Any

import pytest

from archetype_manager.core.config import OverrideSettings
from archetype_manager.core.exceptions import CorruptOverrideRecordError, ValidationError
from archetype_manager.engine.overrides import OverrideResolver
from archetype_manager.models.archetype import Resolution
from archetype_manager.models.enums import FeatureType, OverrideTier
from archetype_manager.models.overrides import OverrideRecord
from archetype_manager.storage.memory import InMemoryOverrideStore


class BrokenTierStore(InMemoryOverrideStore):
    """Override store whose fixes tier cannot be decoded."""

    async def get(self, tier: OverrideTier, slug: str) -> Any | None:
        if tier is OverrideTier.FIXES:
            raise CorruptOverrideRecordError("bad json", tier=str(tier), slug=slug)
        return await super().get(tier, slug)


def record(class_name: str = "fighter", **features: dict[str, Any]) -> dict[str, Any]:
    return {"class": class_name, "features": features}


class TestLookup:
    """Tests for OverrideResolver.lookup."""

    @pytest.mark.asyncio
    async def test_no_tier_has_entry(self) -> None:
        """Test lookup returns None when every tier is empty."""
        resolver = OverrideResolver(InMemoryOverrideStore())

        assert await resolver.lookup("two-handed-fighter") is None

    @pytest.mark.asyncio
    async def test_first_tier_wins(self) -> None:
        """Test the highest-priority tier is returned."""
        store = InMemoryOverrideStore(
            {
                OverrideTier.FIXES: {"thf": record(a={"level": 2})},
                OverrideTier.CUSTOM: {"thf": record(b={"level": 3})},
            }
        )

        hit = await OverrideResolver(store).lookup("thf")

        assert hit is not None
        assert hit.tier == OverrideTier.FIXES
        assert set(hit.record.features) == {"a"}

    @pytest.mark.asyncio
    async def test_falls_through_to_lower_tier(self) -> None:
        """Test a lower tier is used when higher tiers have no entry."""
        store = InMemoryOverrideStore({OverrideTier.CUSTOM: {"thf": record(b={"level": 3})}})

        hit = await OverrideResolver(store).lookup("thf")

        assert hit is not None
        assert hit.tier == OverrideTier.CUSTOM

    @pytest.mark.asyncio
    async def test_custom_tier_order(self) -> None:
        """Test a configured tier order changes priority."""
        store = InMemoryOverrideStore(
            {
                OverrideTier.FIXES: {"thf": record(a={"level": 2})},
                OverrideTier.CUSTOM: {"thf": record(b={"level": 3})},
            }
        )
        settings = OverrideSettings(
            tier_order=[OverrideTier.CUSTOM, OverrideTier.FIXES, OverrideTier.MISSING]
        )

        hit = await OverrideResolver(store, settings).lookup("thf")

        assert hit is not None
        assert hit.tier == OverrideTier.CUSTOM

    @pytest.mark.asyncio
    async def test_malformed_record_is_tier_absent(self) -> None:
        """Test a record of the wrong shape is skipped, not raised."""
        store = InMemoryOverrideStore(
            {
                OverrideTier.FIXES: {"thf": ["not", "a", "record"]},
                OverrideTier.MISSING: {"thf": record(a={"level": 2})},
            }
        )

        hit = await OverrideResolver(store).lookup("thf")

        assert hit is not None
        assert hit.tier == OverrideTier.MISSING

    @pytest.mark.asyncio
    async def test_invalid_feature_is_tier_absent(self) -> None:
        """Test a record failing validation is skipped."""
        store = InMemoryOverrideStore(
            {OverrideTier.FIXES: {"thf": record(a={"level": "second"})}}
        )

        assert await OverrideResolver(store).lookup("thf") is None

    @pytest.mark.asyncio
    async def test_corrupt_tier_is_tier_absent(self) -> None:
        """Test a store error on one tier falls through to the next."""
        store = BrokenTierStore({OverrideTier.MISSING: {"thf": record(a={"level": 2})}})

        hit = await OverrideResolver(store).lookup("thf")

        assert hit is not None
        assert hit.tier == OverrideTier.MISSING

    @pytest.mark.asyncio
    async def test_extra_fields_pass_through(self) -> None:
        """Test unknown fields survive a read."""
        store = InMemoryOverrideStore(
            {OverrideTier.FIXES: {"thf": record(a={"level": 2, "note": "from errata"})}}
        )

        hit = await OverrideResolver(store).lookup("thf")

        assert hit is not None
        assert hit.record.features["a"].model_extra == {"note": "from errata"}


class TestOverrideFeatureType:
    """Tests for how override entries are interpreted."""

    @pytest.mark.parametrize(
        ("entry", "expected"),
        [
            ({"level": 2, "replaces": "Bravery"}, FeatureType.REPLACEMENT),
            ({"level": 2, "replaces": "Bravery", "type": "modification"}, FeatureType.MODIFICATION),
            ({"level": 2, "replaces": None, "isAdditive": True}, FeatureType.ADDITIVE),
            ({"level": 2, "replaces": "  "}, FeatureType.ADDITIVE),
            ({"level": None, "replaces": None}, FeatureType.UNKNOWN),
            ({"level": "", "isAdditive": True}, FeatureType.ADDITIVE),
        ],
    )
    def test_resolved_type(self, entry: dict[str, Any], expected: FeatureType) -> None:
        """Test the type derived from each entry shape."""
        parsed = OverrideRecord.model_validate(record(a=entry))

        assert parsed.features["a"].resolved_type == expected

    @pytest.mark.parametrize(("level", "expected"), [(4, FeatureType.ADDITIVE), (None, FeatureType.UNKNOWN)])
    def test_type_at_effective_level(self, level: int | None, expected: FeatureType) -> None:
        """Test a level parsed elsewhere makes an untargeted entry additive."""
        parsed = OverrideRecord.model_validate(record(a={"level": None, "replaces": None}))

        assert parsed.features["a"].type_at(level) == expected


class TestWrites:
    """Tests for saving and deleting override records."""

    @pytest.mark.asyncio
    async def test_save_and_read_tier(self) -> None:
        """Test a saved record can be read back by tier."""
        resolver = OverrideResolver(InMemoryOverrideStore())
        entry = OverrideRecord.model_validate(record(a={"level": 2, "isAdditive": True}))

        assert await resolver.save_entry(OverrideTier.CUSTOM, "thf", entry)

        tier = await resolver.get_tier(OverrideTier.CUSTOM)
        assert list(tier) == ["thf"]
        assert tier["thf"].features["a"].is_additive

    @pytest.mark.asyncio
    async def test_privileged_tier_fails_closed(self) -> None:
        """Test a refused write returns False and writes nothing."""
        store = InMemoryOverrideStore(privileged_tiers=[OverrideTier.FIXES], privileged=False)
        resolver = OverrideResolver(store)
        entry = OverrideRecord.model_validate(record(a={"level": 2}))

        assert not await resolver.save_entry(OverrideTier.FIXES, "thf", entry)
        assert await resolver.get_tier(OverrideTier.FIXES) == {}

    @pytest.mark.asyncio
    async def test_delete_entry(self) -> None:
        """Test deleting an existing entry."""
        store = InMemoryOverrideStore({OverrideTier.CUSTOM: {"thf": record(a={"level": 2})}})
        resolver = OverrideResolver(store)

        assert await resolver.delete_entry(OverrideTier.CUSTOM, "thf")
        assert not await resolver.delete_entry(OverrideTier.CUSTOM, "thf")

    @pytest.mark.asyncio
    async def test_save_feature_fix_merges(self) -> None:
        """Test a feature fix keeps fixes already saved for the archetype."""
        store = InMemoryOverrideStore(
            {OverrideTier.FIXES: {"thf": record(**{"shattering-strike": {"level": 2, "replaces": "Bravery"}})}}
        )
        resolver = OverrideResolver(store)

        saved = await resolver.save_feature_fix(
            "thf",
            "fighter",
            "Overhand Chop",
            Resolution(level=3, replaces="Armor Training"),
        )

        assert saved
        stored = store.records[OverrideTier.FIXES]["thf"]
        assert set(stored["features"]) == {"shattering-strike", "overhand-chop"}
        assert stored["features"]["overhand-chop"]["replaces"] == "Armor Training"
        assert stored["class"] == "fighter"

    @pytest.mark.asyncio
    async def test_save_feature_fix_additive(self) -> None:
        """Test an additive fix is stored with the additive flag."""
        store = InMemoryOverrideStore()
        resolver = OverrideResolver(store)

        await resolver.save_feature_fix("thf", "fighter", "Heroic Recovery", Resolution(level=7, is_additive=True))

        entry = store.records[OverrideTier.FIXES]["thf"]["features"]["heroic-recovery"]
        assert entry["isAdditive"] is True
        assert "replaces" not in entry


class TestValidateManualEntry:
    """Tests for validating hand-entered archetypes."""

    def test_valid_entry(self, override_resolver: OverrideResolver) -> None:
        """Test a complete entry produces a ready record."""
        result = override_resolver.validate_manual_entry(
            tier="custom",
            name="Iron Guard",
            class_name="Fighter",
            features=[
                {"name": "Stalwart", "level": "2", "replaces": "Bravery"},
                {"name": "Shield Wall", "level": 4, "replaces": ""},
                {"name": "", "level": "", "replaces": ""},
            ],
        )

        assert result.valid
        assert result.errors == []
        assert result.tier == OverrideTier.CUSTOM
        assert result.slug == "iron-guard"
        assert result.record is not None
        assert result.record.class_name == "fighter"
        assert result.record.features["stalwart"].resolved_type == FeatureType.REPLACEMENT
        assert result.record.features["shield-wall"].resolved_type == FeatureType.ADDITIVE

    def test_missing_name_and_class(self, override_resolver: OverrideResolver) -> None:
        """Test name and class are required."""
        result = override_resolver.validate_manual_entry(
            tier="missing",
            name=" ",
            class_name=None,
            features=[{"name": "Stalwart", "level": 2}],
        )

        assert not result.valid
        assert "Archetype name is required." in result.errors
        assert "Class is required." in result.errors

    @pytest.mark.parametrize("level", [0, 21, "abc", None])
    def test_invalid_level(self, override_resolver: OverrideResolver, level: Any) -> None:
        """Test levels outside 1..20 are rejected."""
        result = override_resolver.validate_manual_entry(
            tier="custom",
            name="Iron Guard",
            class_name="fighter",
            features=[{"name": "Stalwart", "level": level}],
        )

        assert not result.valid
        assert any("Level must be a number between 1 and 20" in e for e in result.errors)

    def test_duplicate_feature_names(self, override_resolver: OverrideResolver) -> None:
        """Test feature names must be unique, ignoring case."""
        result = override_resolver.validate_manual_entry(
            tier="custom",
            name="Iron Guard",
            class_name="fighter",
            features=[
                {"name": "Stalwart", "level": 2},
                {"name": "stalwart", "level": 3},
            ],
        )

        assert not result.valid
        assert 'Duplicate feature name: "stalwart".' in result.errors

    def test_feature_row_needs_name(self, override_resolver: OverrideResolver) -> None:
        """Test a partially filled row without a name is an error."""
        result = override_resolver.validate_manual_entry(
            tier="custom",
            name="Iron Guard",
            class_name="fighter",
            features=[{"name": "", "level": 3, "replaces": "Bravery"}],
        )

        assert not result.valid
        assert "Feature row 1: Name is required." in result.errors

    def test_needs_at_least_one_feature(self, override_resolver: OverrideResolver) -> None:
        """Test an entry without features is rejected."""
        result = override_resolver.validate_manual_entry(
            tier="custom", name="Iron Guard", class_name="fighter", features=[]
        )

        assert not result.valid
        assert "At least one feature is required." in result.errors

    def test_unknown_tier(self, override_resolver: OverrideResolver) -> None:
        """Test an unknown entry type is reported."""
        result = override_resolver.validate_manual_entry(
            tier="homebrew",
            name="Iron Guard",
            class_name="fighter",
            features=[{"name": "Stalwart", "level": 2}],
        )

        assert not result.valid
        assert result.errors == ["Unknown entry type: 'homebrew'."]


class TestSubmitManualEntry:
    """Tests for saving hand-entered archetypes."""

    @pytest.mark.asyncio
    async def test_valid_entry_is_saved(self, override_resolver: OverrideResolver) -> None:
        """Test a valid entry lands in its tier and can be looked up."""
        result = await override_resolver.submit_manual_entry(
            tier="custom",
            name="Iron Guard",
            class_name="Fighter",
            features=[{"name": "Stalwart", "level": 2, "replaces": "Bravery"}],
        )

        assert result.saved
        hit = await override_resolver.lookup("iron-guard")
        assert hit is not None
        assert hit.tier == OverrideTier.CUSTOM
        assert hit.record.features["stalwart"].replaces == "Bravery"

    @pytest.mark.asyncio
    async def test_invalid_entry_raises(self, override_resolver: OverrideResolver) -> None:
        """Test every problem is reported and nothing is written."""
        with pytest.raises(ValidationError) as exc_info:
            await override_resolver.submit_manual_entry(tier="missing", name="", class_name="fighter", features=[])

        assert exc_info.value.details["errors"] == [
            "Archetype name is required.",
            "At least one feature is required.",
        ]
        assert await override_resolver.get_tier(OverrideTier.MISSING) == {}

    @pytest.mark.asyncio
    async def test_refused_write(self) -> None:
        """Test a permission-gated tier reports the entry as not saved."""
        store = InMemoryOverrideStore(privileged_tiers=[OverrideTier.MISSING], privileged=False)
        resolver = OverrideResolver(store)

        result = await resolver.submit_manual_entry(
            tier="missing",
            name="Iron Guard",
            class_name="fighter",
            features=[{"name": "Stalwart", "level": 2}],
        )

        assert result.valid
        assert not result.saved
        assert store.records[OverrideTier.MISSING] == {}
