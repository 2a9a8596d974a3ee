"""Tests for feature description classification."""

from __future__ import annotations

import pytest

from archetype_manager.engine.classifier import (
    FeatureClassifier,
    archetype_short_name,
    normalize_name,
    scope_features,
    slugify,
    strip_html,
)
from archetype_manager.models.archetype import RawArchetype, RawFeature
from archetype_manager.models.enums import FeatureType


@pytest.fixture
def classifier() -> FeatureClassifier:
    return FeatureClassifier()


class TestClassify:
    """Tests for FeatureClassifier.classify."""

    def test_replacement(self, classifier: FeatureClassifier) -> None:
        """Test a replaces clause yields a replacement."""
        result = classifier.classify("Level: 2. Replaces Bravery.")

        assert result.type == FeatureType.REPLACEMENT
        assert result.target == "Bravery"
        assert result.level == 2

    def test_modification(self, classifier: FeatureClassifier) -> None:
        """Test a modifies clause yields a modification."""
        result = classifier.classify("Level: 5. This ability modifies weapon training.")

        assert result.type == FeatureType.MODIFICATION
        assert result.target == "weapon training"

    @pytest.mark.parametrize("verb", ["modify", "modifies", "modifying"])
    def test_modification_verb_forms(self, classifier: FeatureClassifier, verb: str) -> None:
        """Test every accepted form of the modification verb."""
        result = classifier.classify(f"Level: 3. This ability {verb} Armor Training.")

        assert result.type == FeatureType.MODIFICATION
        assert result.target == "Armor Training"

    def test_class_feature_suffix_is_stripped(self, classifier: FeatureClassifier) -> None:
        """Test a trailing "the class feature" is not part of the target."""
        result = classifier.classify("Level: 1. This modifies the bravery class feature.")

        assert result.target == "bravery"

    def test_case_insensitive_and_trimmed(self, classifier: FeatureClassifier) -> None:
        """Test pattern matching ignores case and surrounding whitespace."""
        result = classifier.classify("LEVEL:  4.   REPLACES    Trap Sense  .")

        assert result.type == FeatureType.REPLACEMENT
        assert result.target == "Trap Sense"
        assert result.level == 4

    def test_replacement_wins_over_modification(self, classifier: FeatureClassifier) -> None:
        """Test replacement takes precedence when both patterns match."""
        result = classifier.classify("Level: 2. This modifies bravery. It replaces armor training.")

        assert result.type == FeatureType.REPLACEMENT
        assert result.target == "armor training"

    def test_additive_when_only_level(self, classifier: FeatureClassifier) -> None:
        """Test a level without a target classifies as additive."""
        result = classifier.classify("Level: 7. Once per day the fighter may reroll.")

        assert result.type == FeatureType.ADDITIVE
        assert result.target is None
        assert result.level == 7

    def test_unknown_without_markers(self, classifier: FeatureClassifier) -> None:
        """Test free text with no markers is unknown."""
        result = classifier.classify("The fighter gains a bonus on attack rolls.")

        assert result.type == FeatureType.UNKNOWN
        assert result.target is None

    @pytest.mark.parametrize("description", [None, ""])
    def test_empty_input(self, classifier: FeatureClassifier, description: str | None) -> None:
        """Test empty input classifies as unknown."""
        result = classifier.classify(description)

        assert result.type == FeatureType.UNKNOWN
        assert result.target is None
        assert result.level is None

    def test_replacement_requires_trailing_period(self, classifier: FeatureClassifier) -> None:
        """Test a replaces clause without a period does not match."""
        result = classifier.classify("Level: 2. Replaces bravery")

        assert result.type == FeatureType.ADDITIVE

    def test_html_description(self, classifier: FeatureClassifier) -> None:
        """Test HTML markup around the level marker is ignored."""
        result = classifier.classify(
            "<p><strong>Level</strong>: 3</p><p>This ability replaces armor training 1.</p>"
        )

        assert result.type == FeatureType.REPLACEMENT
        assert result.target == "armor training 1"
        assert result.level == 3


class TestClassifierHelpers:
    """Tests for the individual extraction helpers."""

    def test_parse_level_missing(self, classifier: FeatureClassifier) -> None:
        """Test no level marker returns None."""
        assert classifier.parse_level("No level here.") is None

    def test_as_but_variant(self, classifier: FeatureClassifier) -> None:
        """Test detection of the "as the X class feature, but" phrasing."""
        assert classifier.is_as_but_variant("This works as the bravery class feature, but applies to fear.")
        assert not classifier.is_as_but_variant("This replaces bravery.")

    def test_strip_html(self) -> None:
        """Test tags are removed and entities decoded."""
        assert strip_html("<p>Trap&nbsp;Sense &amp; Evasion</p>") == "Trap Sense & Evasion"
        assert strip_html(None) == ""


class TestNames:
    """Tests for slug and name normalization."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Two-Handed Fighter", "two-handed-fighter"),
            ("Shattering Strike", "shattering-strike"),
            ("  Lore Warden (Fighter) ", "lore-warden-fighter"),
            ("", ""),
        ],
    )
    def test_slugify(self, name: str, expected: str) -> None:
        """Test slug generation."""
        assert slugify(name) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Armor Training 2", "armor training"),
            ("Weapon Training III", "weapon training"),
            ("Bravery (Ex)", "bravery"),
            ("  Sneak Attack  ", "sneak attack"),
        ],
    )
    def test_normalize_name(self, name: str, expected: str) -> None:
        """Test loose name normalization."""
        assert normalize_name(name) == expected

    def test_archetype_short_name(self) -> None:
        """Test the short name is taken from the trailing parenthetical."""
        assert archetype_short_name("Fighter (Two-Handed Fighter)") == "Two-Handed Fighter"
        assert archetype_short_name("Weapon Master") == "Weapon Master"


class TestScopeFeatures:
    """Tests for selecting an archetype's features."""

    def test_scope_by_archetype_id(self) -> None:
        """Test features carrying an archetype id are matched by id."""
        archetype = RawArchetype(name="Two-Handed Fighter", id="thf")
        features = [
            RawFeature(name="Shattering Strike", archetype_id="thf"),
            RawFeature(name="Weapon Guard", archetype_id="wm"),
        ]

        assert [f.name for f in scope_features(archetype, features)] == ["Shattering Strike"]

    def test_scope_by_name_convention(self) -> None:
        """Test features without an id are matched by their name suffix."""
        archetype = RawArchetype(name="Fighter (Two-Handed Fighter)")
        features = [
            RawFeature(name="Shattering Strike (Two-Handed Fighter)"),
            RawFeature(name="Weapon Guard (Weapon Master)"),
        ]

        scoped = scope_features(archetype, features)

        assert [f.name for f in scoped] == ["Shattering Strike (Two-Handed Fighter)"]
