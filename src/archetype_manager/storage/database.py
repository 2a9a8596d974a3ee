"""SQLite persistence layer for the Archetype Manager.

Provides persistent storage for:
- Override records, one row per (tier, archetype slug)
- Scoped JSON tags (holder archetype state, actor archetype index)

Storage location: data/archetype_manager.db (see OverrideSettings)
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Callable, Iterable
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from archetype_manager.core.config import get_settings
from archetype_manager.core.exceptions import CorruptOverrideRecordError, OverrideStoreError
from archetype_manager.core.logging import get_logger
from archetype_manager.models.enums import OverrideTier

logger = get_logger(__name__)


# =============================================================================
# Database Class
# =============================================================================


class Database:
    """SQLite database for override records and tags.

    Values are stored as JSON text; decoding failures on override rows
    surface as CorruptOverrideRecordError so callers can treat the tier as
    absent.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path, *, create: bool = True) -> None:
        """Initialize database.

        Args:
            db_path: Path to database file.
            create: Create the file (and parent directories) if missing.

        Raises:
            OverrideStoreError: If the file is missing and ``create`` is off.
        """
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            if not create:
                msg = f"Override database does not exist: {self.db_path}"
                raise OverrideStoreError(msg)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

        logger.info("Database initialized", path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS overrides (
                    tier TEXT NOT NULL,
                    slug TEXT NOT NULL,
                    record_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (tier, slug)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    scope TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (scope, key)
                )
            """)

            cursor.execute("SELECT version FROM schema_version")
            if cursor.fetchone() is None:
                cursor.execute("INSERT INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,))

    # =========================================================================
    # Overrides
    # =========================================================================

    def get_override(self, tier: OverrideTier, slug: str) -> Any | None:
        """Get one override record.

        Raises:
            CorruptOverrideRecordError: If the stored JSON cannot be decoded.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT record_json FROM overrides WHERE tier = ? AND slug = ?",
                (str(tier), slug),
            )
            row = cursor.fetchone()

        if row is None:
            return None
        return _decode(row["record_json"], tier, slug)

    def get_overrides(self, tier: OverrideTier) -> dict[str, Any]:
        """Get every decodable record of a tier; corrupt rows are skipped."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT slug, record_json FROM overrides WHERE tier = ? ORDER BY slug",
                (str(tier),),
            )
            rows = cursor.fetchall()

        records: dict[str, Any] = {}
        for row in rows:
            try:
                records[row["slug"]] = _decode(row["record_json"], tier, row["slug"])
            except CorruptOverrideRecordError as exc:
                logger.warning("Skipping corrupt override row", error=str(exc))
        return records

    def set_override(self, tier: OverrideTier, slug: str, record: dict[str, Any]) -> None:
        """Insert or replace one override record."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO overrides (tier, slug, record_json, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (str(tier), slug, json.dumps(record), datetime.now(UTC).isoformat()),
            )

        logger.debug("Override stored", tier=str(tier), slug=slug)

    def delete_override(self, tier: OverrideTier, slug: str) -> bool:
        """Delete one override record.

        Returns:
            True if deleted, False if not found.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM overrides WHERE tier = ? AND slug = ?", (str(tier), slug))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Override deleted", tier=str(tier), slug=slug)

        return deleted

    def get_override_count(self, tier: OverrideTier | None = None) -> int:
        """Count override records, optionally for one tier."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            if tier is None:
                cursor.execute("SELECT COUNT(*) FROM overrides")
            else:
                cursor.execute("SELECT COUNT(*) FROM overrides WHERE tier = ?", (str(tier),))
            return cursor.fetchone()[0]

    # =========================================================================
    # Tags
    # =========================================================================

    def get_tag(self, scope: str, key: str) -> Any | None:
        """Get a tag value, or None if unset or unreadable."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value_json FROM tags WHERE scope = ? AND key = ?", (scope, key))
            row = cursor.fetchone()

        if row is None:
            return None
        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError:
            logger.error("Unreadable tag value, treating as unset", scope=scope, key=key)
            return None

    def set_tag(self, scope: str, key: str, value: Any) -> None:
        """Insert or replace a tag value."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO tags (scope, key, value_json, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (scope, key, json.dumps(value), datetime.now(UTC).isoformat()),
            )

    def unset_tag(self, scope: str, key: str) -> None:
        """Delete a tag; unsetting a missing tag is a no-op."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM tags WHERE scope = ? AND key = ?", (scope, key))


def _decode(text: str, tier: OverrideTier, slug: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Override record is not valid JSON: {exc.msg}"
        raise CorruptOverrideRecordError(msg, tier=str(tier), slug=slug) from exc


# =============================================================================
# Port Adapters
# =============================================================================


class SqliteOverrideStore:
    """OverrideStore backed by the Database.

    Writes to privileged tiers are refused (``False``) unless the current
    user is privileged. ``is_privileged`` is called on every write so a
    host can answer from its live session.
    """

    def __init__(
        self,
        database: Database,
        *,
        privileged_tiers: Iterable[OverrideTier] | None = None,
        is_privileged: Callable[[], bool] = lambda: True,
    ) -> None:
        self.database = database
        if privileged_tiers is None:
            privileged_tiers = get_settings().overrides.privileged_tiers
        self.privileged_tiers = frozenset(privileged_tiers)
        self.is_privileged = is_privileged

    def _may_write(self, tier: OverrideTier, slug: str) -> bool:
        if tier in self.privileged_tiers and not self.is_privileged():
            logger.warning("Write to privileged override tier refused", tier=str(tier), slug=slug)
            return False
        return True

    async def get(self, tier: OverrideTier, slug: str) -> Any | None:
        return self.database.get_override(tier, slug)

    async def get_all(self, tier: OverrideTier) -> dict[str, Any]:
        return self.database.get_overrides(tier)

    async def set(self, tier: OverrideTier, slug: str, record: dict[str, Any]) -> bool:
        if not self._may_write(tier, slug):
            return False
        try:
            self.database.set_override(tier, slug, record)
        except sqlite3.Error as exc:
            msg = f"Could not store override: {exc}"
            raise OverrideStoreError(msg, tier=str(tier), slug=slug) from exc
        return True

    async def delete(self, tier: OverrideTier, slug: str) -> bool:
        if not self._may_write(tier, slug):
            return False
        try:
            return self.database.delete_override(tier, slug)
        except sqlite3.Error as exc:
            msg = f"Could not delete override: {exc}"
            raise OverrideStoreError(msg, tier=str(tier), slug=slug) from exc


class SqliteTagStore:
    """TagStore backed by the Database."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get(self, scope: str, key: str) -> Any | None:
        return self.database.get_tag(scope, key)

    async def set(self, scope: str, key: str, value: Any) -> None:
        self.database.set_tag(scope, key, value)

    async def unset(self, scope: str, key: str) -> None:
        self.database.unset_tag(scope, key)


# =============================================================================
# Singleton Access
# =============================================================================

_database: Database | None = None


def get_database() -> Database:
    """Get the global database instance, configured from settings."""
    global _database
    if _database is None:
        settings = get_settings().overrides
        _database = Database(settings.database_path, create=settings.auto_create_store)
    return _database


def reset_database() -> None:
    """Drop the global database instance (used by tests)."""
    global _database
    _database = None


__all__ = [
    "Database",
    "SqliteOverrideStore",
    "SqliteTagStore",
    "get_database",
    "reset_database",
]
