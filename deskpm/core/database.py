"""
SQLite database for deskpm

Stores the package catalog imported from repositories and the list of
installed package versions. Package versions are kept as JSON documents;
identity columns (package, normalized version) are indexed.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .catalog import Catalog
from .db import CatalogMixin, InstalledMixin

logger = logging.getLogger(__name__)

# Schema version - increment when schema changes
SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY
);

-- Packages
CREATE TABLE IF NOT EXISTS packages (
    name TEXT PRIMARY KEY,
    short_name TEXT NOT NULL,
    title TEXT,
    url TEXT,
    description TEXT,
    license TEXT,
    icon TEXT,
    categories TEXT,            -- JSON list
    added_timestamp INTEGER
);

-- Package versions
CREATE TABLE IF NOT EXISTS package_versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    package TEXT NOT NULL,
    version TEXT NOT NULL,      -- as written in the repository
    version_key TEXT NOT NULL,  -- normalized, used for identity
    data TEXT NOT NULL,         -- JSON document
    added_timestamp INTEGER,
    UNIQUE(package, version_key)
);

-- Installed package versions
CREATE TABLE IF NOT EXISTS installed (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    package TEXT NOT NULL,
    version TEXT NOT NULL,
    version_key TEXT NOT NULL,
    directory TEXT NOT NULL,
    installed_timestamp INTEGER,
    UNIQUE(package, version_key)
);

CREATE INDEX IF NOT EXISTS idx_packages_short_name ON packages(short_name);
CREATE INDEX IF NOT EXISTS idx_pv_package ON package_versions(package);
CREATE INDEX IF NOT EXISTS idx_installed_package ON installed(package);
"""

# Migrations: dict of from_version -> (to_version, sql_script)
MIGRATIONS = {}


class PackageDatabase(CatalogMixin, InstalledMixin, Catalog):
    """SQLite-backed catalog and installed-state store."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file.
                     If None, auto-detects based on .deskpm.local or environment.
        """
        if db_path is None:
            from .config import get_db_path
            db_path = get_db_path()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # The executor may run on a worker thread
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self._lock = threading.RLock()

        self._init_schema()

    def _init_schema(self):
        """Initialize or migrate database schema."""
        try:
            cursor = self.conn.execute("SELECT version FROM schema_info LIMIT 1")
            row = cursor.fetchone()
            current_version = row[0] if row else 0
        except sqlite3.OperationalError:
            current_version = 0

        if current_version == 0:
            # Fresh database - create full schema
            self.conn.executescript(SCHEMA)
            self.conn.execute(
                "INSERT OR REPLACE INTO schema_info (version) VALUES (?)",
                (SCHEMA_VERSION,)
            )
            self.conn.commit()
        elif current_version < SCHEMA_VERSION:
            self._apply_migrations(current_version)
        elif current_version > SCHEMA_VERSION:
            # Future version - warn but try to continue
            logger.warning(
                f"Database schema version {current_version} is newer than "
                f"supported version {SCHEMA_VERSION}. Consider upgrading deskpm."
            )

    def _apply_migrations(self, from_version: int):
        """Apply all migrations from from_version to SCHEMA_VERSION."""
        version = from_version
        while version < SCHEMA_VERSION:
            if version not in MIGRATIONS:
                raise RuntimeError(f"No database migration from schema version {version}")

            to_version, migration_sql = MIGRATIONS[version]
            logger.info(f"Migrating database schema v{version} -> v{to_version}")

            try:
                self.conn.executescript(migration_sql)
                self.conn.execute(
                    "UPDATE schema_info SET version = ?", (to_version,)
                )
                self.conn.commit()
                version = to_version
            except sqlite3.Error as e:
                logger.error(f"Migration v{version} -> v{to_version} failed: {e}")
                raise RuntimeError(f"Database migration failed: {e}")

        logger.info(f"Database schema is now at version {SCHEMA_VERSION}")

    def close(self):
        """Close database connection."""
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
