"""Feature description classification.

Turns one archetype feature's free-text (usually HTML) description into a
typed Classification using fixed lexical patterns:

- ``Level: N`` (or ``Level</strong>: N``) gives the level.
- ``replaces <name>.`` gives a replacement target.
- ``modify/modifies/modifying <name>[ the class feature].`` gives a
  modification target.

Precedence is replacement, then modification, then additive (a level was
found but no target), otherwise unknown. Classification is pure and
deterministic; callers that want a different strategy can pass any
object with a compatible ``classify`` method to the resolver.

Example:
    >>> FeatureClassifier().classify("Level: 2. Replaces Bravery.")
    Classification(type=<FeatureType.REPLACEMENT: 'replacement'>, target='Bravery', level=2)
"""

from __future__ import annotations

import html
import re

from archetype_manager.models.archetype import Classification, RawArchetype, RawFeature
from archetype_manager.models.enums import FeatureType


_BLOCK_TAG = re.compile(r"<\s*(?:br\s*/?|/p|/div|/li|/h\d)\s*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_CLASS_FEATURE_SUFFIX = re.compile(
    r"\s+(?:the\s+)?class\s+(?:feature|ability)s?$", re.IGNORECASE
)
_LEADING_ARTICLE = re.compile(r"^the\s+", re.IGNORECASE)
_SHORT_NAME = re.compile(r"\((.+?)\)\s*$")


def strip_html(text: str | None) -> str:
    """Strip HTML tags and entities, keeping paragraph breaks as newlines."""
    if not text:
        return ""
    text = _BLOCK_TAG.sub("\n", text)
    text = _ANY_TAG.sub("", text)
    return html.unescape(text).replace("\xa0", " ").strip()


def slugify(name: str | None) -> str:
    """Generate a stable slug from a display name.

    Example:
        >>> slugify("Two-Handed Fighter")
        'two-handed-fighter'
    """
    if not name:
        return ""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def normalize_name(name: str | None) -> str:
    """Normalize a feature name for loose comparison.

    Strips parentheticals, trailing tier numbers and Roman numerals.

    Example:
        >>> normalize_name("Armor Training 2 (Ex)")
        'armor training'
    """
    if not name:
        return ""
    name = re.sub(r"\s*\(.*?\)\s*", " ", name)
    name = re.sub(r"\s+\d+\s*$", "", name.strip())
    name = re.sub(r"\s+(I{1,3}|IV|VI{0,3}|IX|X)\s*$", "", name)
    return _WHITESPACE.sub(" ", name).strip().lower()


def archetype_short_name(name: str) -> str:
    """Get the short name from a "Class (Archetype)" display name.

    Example:
        >>> archetype_short_name("Fighter (Two-Handed Fighter)")
        'Two-Handed Fighter'
    """
    match = _SHORT_NAME.search(name)
    return match.group(1).strip() if match else name.strip()


def scope_features(archetype: RawArchetype, features: list[RawFeature]) -> list[RawFeature]:
    """Select the features that belong to one archetype.

    A feature belongs to the archetype when it carries the archetype's id,
    or when it has no archetype id and its name ends with the archetype's
    short name in parentheses ("Shattering Strike (Two-Handed Fighter)").
    """
    suffix = f"({archetype_short_name(archetype.name)})".lower()
    scoped = []
    for feature in features:
        if feature.archetype_id is not None:
            if archetype.id is not None and feature.archetype_id == archetype.id:
                scoped.append(feature)
        elif feature.name.strip().lower().endswith(suffix):
            scoped.append(feature)
    return scoped


def _clean_target(raw: str) -> str:
    target = _WHITESPACE.sub(" ", raw).strip()
    target = _CLASS_FEATURE_SUFFIX.sub("", target)
    return _LEADING_ARTICLE.sub("", target).strip()


class FeatureClassifier:
    """Regex-based classifier for archetype feature descriptions."""

    LEVEL_PATTERN = re.compile(r"\bLevel\s*:\s*(\d+)", re.IGNORECASE)
    REPLACES_PATTERN = re.compile(r"\breplaces?\s+([^.\n]+?)\.", re.IGNORECASE)
    MODIFIES_PATTERN = re.compile(r"\bmodif(?:y|ies|ying)\s+([^.\n]+?)\.", re.IGNORECASE)
    AS_BUT_PATTERN = re.compile(r"as the .+? (?:class feature|ability),?\s+but", re.IGNORECASE)

    def parse_level(self, description: str | None) -> int | None:
        """Extract the level from a ``Level: N`` marker."""
        match = self.LEVEL_PATTERN.search(strip_html(description))
        return int(match.group(1)) if match else None

    def parse_replaces(self, description: str | None) -> str | None:
        """Extract the target of a ``replaces <name>.`` clause."""
        match = self.REPLACES_PATTERN.search(strip_html(description))
        if not match:
            return None
        return _clean_target(match.group(1)) or None

    def parse_modifies(self, description: str | None) -> str | None:
        """Extract the target of a ``modifies <name>.`` clause."""
        match = self.MODIFIES_PATTERN.search(strip_html(description))
        if not match:
            return None
        return _clean_target(match.group(1)) or None

    def is_as_but_variant(self, description: str | None) -> bool:
        """Check for the "as the X class feature, but" phrasing."""
        return bool(self.AS_BUT_PATTERN.search(strip_html(description)))

    def classify(self, description: str | None) -> Classification:
        """Classify a feature description.

        Args:
            description: HTML or plain-text description; None and empty
                strings classify as unknown.

        Returns:
            The classification; ``target`` is only set for replacement
            and modification.
        """
        if not description:
            return Classification()

        level = self.parse_level(description)

        replaces = self.parse_replaces(description)
        if replaces:
            return Classification(type=FeatureType.REPLACEMENT, target=replaces, level=level)

        modifies = self.parse_modifies(description)
        if modifies:
            return Classification(type=FeatureType.MODIFICATION, target=modifies, level=level)

        if level is not None:
            return Classification(type=FeatureType.ADDITIVE, level=level)

        return Classification()


__all__ = [
    "FeatureClassifier",
    "archetype_short_name",
    "normalize_name",
    "scope_features",
    "slugify",
    "strip_html",
]
