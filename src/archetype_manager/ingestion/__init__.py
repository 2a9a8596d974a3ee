"""Content ingestion for the Archetype Manager.

Submodules:
    content_source: Failure-tolerant archetype catalog and the JSON file
        content source.
"""

from __future__ import annotations

from archetype_manager.ingestion.content_source import (
    ArchetypeCatalog,
    CatalogEntry,
    ContentDocument,
    JsonFileContentSource,
)


__all__ = [
    "ArchetypeCatalog",
    "CatalogEntry",
    "ContentDocument",
    "JsonFileContentSource",
]
