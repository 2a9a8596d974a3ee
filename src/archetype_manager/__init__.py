"""PF1e Archetype Manager.

Overlays Pathfinder 1e archetypes onto a character's class feature
progression: classifies archetype feature text, resolves it through a
tiered override store, diffs it against the class progression, checks
stacking conflicts and applies or reverts it, with several archetypes
stackable and independently removable on one class.

Example:
    >>> from archetype_manager import ArchetypeManager, RawArchetype, RawFeature
    >>> from archetype_manager.storage import (
    ...     InMemoryOverrideStore, InMemoryProgressionSource, InMemoryTagStore,
    ... )
    >>>
    >>> manager = ArchetypeManager.create(
    ...     progression=InMemoryProgressionSource(),
    ...     tags=InMemoryTagStore(),
    ...     override_store=InMemoryOverrideStore(),
    ... )
    >>> result = await manager.apply(
    ...     actor, holder,
    ...     RawArchetype(name="Two-Handed Fighter", class_name="fighter"),
    ...     [RawFeature(name="Shattering Strike", description="Level: 2. Replaces Bravery.")],
    ... )

Modules:
    core: Configuration, logging, and base exceptions.
    models: Pydantic V2 models and the scalable feature registry.
    engine: Classifier, resolvers, diff, conflicts, applicator, facade.
    storage: SQLite and in-memory collaborators.
    ingestion: Content sources and the archetype catalog.
"""

from __future__ import annotations

# Core
from archetype_manager.core.config import Settings, get_settings
from archetype_manager.core.exceptions import ArchetypeManagerError
from archetype_manager.core.logging import configure_logging, get_logger

# Models
from archetype_manager.models import (
    ActorRef,
    ClassFeatureHolder,
    DiffEntry,
    FeatureAssociation,
    OperationResult,
    ParsedArchetype,
    ParsedFeature,
    RawArchetype,
    RawFeature,
    Resolution,
)

# Engine
from archetype_manager.engine import (
    Applicator,
    ArchetypeManager,
    ArchetypePreview,
    ArchetypeResolver,
    ConflictChecker,
    DiffEngine,
    FeatureClassifier,
    OverrideResolver,
)

# Ingestion
from archetype_manager.ingestion import ArchetypeCatalog, JsonFileContentSource


__version__ = "0.1.0"
__all__ = [
    # Version info
    "__version__",
    # Core
    "ArchetypeManagerError",
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Models
    "ActorRef",
    "ClassFeatureHolder",
    "DiffEntry",
    "FeatureAssociation",
    "OperationResult",
    "ParsedArchetype",
    "ParsedFeature",
    "RawArchetype",
    "RawFeature",
    "Resolution",
    # Engine
    "Applicator",
    "ArchetypeManager",
    "ArchetypePreview",
    "ArchetypeResolver",
    "ConflictChecker",
    "DiffEngine",
    "FeatureClassifier",
    "OverrideResolver",
    # Ingestion
    "ArchetypeCatalog",
    "JsonFileContentSource",
]
