"""PF1e scalable class feature data.

Static registry of class features that a class gains repeatedly at
increasing tiers (Bravery, Weapon Training 1-4, Sneak Attack +1d6...).
Content sources often condense a series into a single progression entry,
so the registry is what lets the engine recognize that "Weapon Training 3"
and "Weapon Training 1" belong to the same feature.

Stacking rule (Advanced Class Guide p.74): alternate class features from
different archetypes may not replace or alter the same class feature.
Two archetypes touching any tier of the same series are incompatible.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class FeatureTier:
    """One tier of a scalable feature."""

    tier: int
    level: int
    name: str


@dataclass(frozen=True)
class FeatureSeries:
    """A scalable feature and its tiers in level order."""

    base_name: str
    tiers: tuple[FeatureTier, ...]


def _series(base_name: str, levels: list[int], name: Callable[[int], str] | None = None) -> FeatureSeries:
    namer = name or (lambda _tier: base_name)
    return FeatureSeries(
        base_name=base_name,
        tiers=tuple(
            FeatureTier(tier=i, level=level, name=namer(i))
            for i, level in enumerate(levels, start=1)
        ),
    )


# =============================================================================
# Scalable Features by Class (Core Rulebook progressions)
# =============================================================================

_TRAP_SENSE = _series("Trap Sense", [3, 6, 9, 12, 15, 18], lambda i: f"Trap Sense +{i}")

SCALABLE_FEATURES: dict[str, dict[str, FeatureSeries]] = {
    "fighter": {
        "bravery": _series("Bravery", [2, 6, 10, 14, 18]),
        "armor training": _series("Armor Training", [3, 7, 11, 15], lambda i: f"Armor Training {i}"),
        "weapon training": _series("Weapon Training", [5, 9, 13, 17], lambda i: f"Weapon Training {i}"),
    },
    "rogue": {
        "sneak attack": _series(
            "Sneak Attack", [1 + i * 2 for i in range(10)], lambda i: f"Sneak Attack +{i}d6"
        ),
        "trap sense": _TRAP_SENSE,
        "rogue talent": _series("Rogue Talent", [2 + i * 2 for i in range(10)]),
    },
    "barbarian": {
        "rage power": _series("Rage Power", [2 + i * 2 for i in range(10)]),
        "trap sense": _TRAP_SENSE,
        "damage reduction": _series(
            "Damage Reduction", [7, 10, 13, 16, 19], lambda i: f"Damage Reduction {i}/-"
        ),
    },
    "paladin": {
        "mercy": _series("Mercy", [3, 6, 9, 12, 15, 18]),
        "smite evil": _series("Smite Evil", [1, 4, 7, 10, 13, 16, 19]),
    },
    "ranger": {
        "favored enemy": _series("Favored Enemy", [1, 5, 10, 15, 20]),
        "favored terrain": _series("Favored Terrain", [3, 8, 13, 18]),
        "combat style feat": _series("Combat Style Feat", [2, 6, 10, 14, 18]),
    },
    "monk": {
        "bonus feat": _series("Bonus Feat", [1, 2, 6, 10, 14, 18]),
        "slow fall": _series(
            "Slow Fall",
            [4, 6, 8, 10, 12, 14, 16, 18, 20],
            lambda i: "Slow Fall any distance" if i == 9 else f"Slow Fall {(i + 1) * 10} ft.",
        ),
    },
    "bard": {
        "versatile performance": _series("Versatile Performance", [2, 6, 10, 14, 18]),
    },
}

ROMAN_NUMERALS: dict[str, int] = {
    "i": 1, "ii": 2, "iii": 3, "iv": 4, "v": 5,
    "vi": 6, "vii": 7, "viii": 8, "ix": 9, "x": 10,
}

_TRAILING_NUMBER = re.compile(r"\s+\d+\s*$")
_TRAILING_ROMAN = re.compile(r"\s+(i{1,3}|iv|vi{0,3}|ix|x)\s*$", re.IGNORECASE)
_TRAILING_PAREN = re.compile(r"\s*\(.*?\)\s*$")
_TIER_NUMBER = re.compile(r"^(.+?)\s+(\d+)$")
_TIER_ROMAN = re.compile(r"^(.+?)\s+(i{1,3}|iv|vi{0,3}|ix|x)$", re.IGNORECASE)


def get_class_series(class_name: str | None) -> dict[str, FeatureSeries]:
    """Get the scalable features registered for a class (empty if none)."""
    if not class_name:
        return {}
    return SCALABLE_FEATURES.get(class_name.strip().lower(), {})


def get_series(base_name: str | None, class_name: str | None) -> FeatureSeries | None:
    """Get one series by its normalized base name."""
    if not base_name:
        return None
    return get_class_series(class_name).get(base_name.strip().lower())


def get_series_base_name(name: str | None, class_name: str | None) -> str | None:
    """Get the normalized series key for a feature name.

    Example:
        >>> get_series_base_name("Weapon Training 2", "fighter")
        'weapon training'
        >>> get_series_base_name("Armor Training (Heavy)", "fighter")
        'armor training'
    """
    registry = get_class_series(class_name)
    if not name or not registry:
        return None
    normalized = name.strip().lower()
    normalized = _TRAILING_NUMBER.sub("", normalized)
    normalized = _TRAILING_ROMAN.sub("", normalized)
    normalized = _TRAILING_PAREN.sub("", normalized).strip()

    if normalized in registry:
        return normalized
    for key in registry:
        if normalized.startswith(key):
            return key
    return None


def parse_series_target(target: str | None, class_name: str | None) -> tuple[str, int | None] | None:
    """Split a replacement target into ``(series key, tier)``.

    Handles "weapon training", "weapon training 3" and "weapon training III".
    The tier is None when the target names the whole series.
    """
    registry = get_class_series(class_name)
    if not target or not registry:
        return None
    normalized = target.strip().lower()
    if normalized in registry:
        return normalized, None

    for pattern in (_TIER_NUMBER, _TIER_ROMAN):
        match = pattern.match(normalized)
        if not match:
            continue
        base = match.group(1).strip()
        raw_tier = match.group(2).lower()
        tier = int(raw_tier) if raw_tier.isdigit() else ROMAN_NUMERALS.get(raw_tier)
        series = registry.get(base)
        if series and tier and 1 <= tier <= len(series.tiers):
            return base, tier

    for key in registry:
        if normalized.startswith(key) or key.startswith(normalized):
            return key, None
    return None


def check_series_conflict(target_a: str | None, target_b: str | None, class_name: str | None) -> str | None:
    """Get the display name of the series two targets share, if any."""
    if not target_a or not target_b:
        return None
    series_a = get_series_base_name(target_a, class_name)
    series_b = get_series_base_name(target_b, class_name)
    if series_a and series_a == series_b:
        series = get_series(series_a, class_name)
        return series.base_name if series else series_a
    return None


__all__ = [
    "FeatureTier",
    "FeatureSeries",
    "SCALABLE_FEATURES",
    "get_class_series",
    "get_series",
    "get_series_base_name",
    "parse_series_target",
    "check_series_conflict",
]
