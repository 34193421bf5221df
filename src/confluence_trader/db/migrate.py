"""Versioned SQL migrations for the account store.

Files in ``migrations/`` are named ``NNN_description.sql`` and applied in
version order. Applied versions are recorded in ``schema_version`` so a
second run is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
from typing import Dict, List, Optional

from confluence_trader.db.connection import connection
from confluence_trader.utils.time import utc_now_s

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_SCHEMA_VERSION_DDL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at INTEGER NOT NULL
)
"""


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    path: Path

    @property
    def label(self) -> str:
        return f"{self.version:03d}_{self.name}"

    @classmethod
    def from_path(cls, path: Path) -> Optional["Migration"]:
        number, sep, name = path.stem.partition("_")
        if not sep or not number.isdigit():
            return None
        return cls(version=int(number), name=name, path=path)


class MigrationRunner:
    def __init__(self, database_url: Optional[str] = None, directory: Path = MIGRATIONS_DIR) -> None:
        self.database_url = database_url
        self.directory = directory

    def discover(self) -> List[Migration]:
        if not self.directory.is_dir():
            raise FileNotFoundError(f"Missing migrations dir: {self.directory}")
        by_version: Dict[int, Migration] = {}
        for path in sorted(self.directory.glob("*.sql")):
            migration = Migration.from_path(path)
            if migration is None:
                logger.warning("Ignoring migration file with no version prefix: %s", path.name)
                continue
            if migration.version in by_version:
                raise ValueError(
                    f"Duplicate migration version {migration.version}: "
                    f"{by_version[migration.version].path.name} and {path.name}"
                )
            by_version[migration.version] = migration
        return [by_version[v] for v in sorted(by_version)]

    @staticmethod
    def _applied(conn: sqlite3.Connection) -> set:
        conn.execute(_SCHEMA_VERSION_DDL)
        return {row["version"] for row in conn.execute("SELECT version FROM schema_version")}

    def pending(self) -> List[Migration]:
        with connection(self.database_url) as conn:
            applied = self._applied(conn)
        return [m for m in self.discover() if m.version not in applied]

    def apply(self) -> List[int]:
        """Apply pending migrations and return the versions applied."""
        migrations = self.discover()
        done: List[int] = []
        with connection(self.database_url) as conn:
            applied = self._applied(conn)
            for migration in migrations:
                if migration.version in applied:
                    continue
                conn.executescript(migration.path.read_text(encoding="utf-8"))
                conn.execute(
                    "INSERT INTO schema_version (version, name, applied_at) VALUES (?, ?, ?)",
                    (migration.version, migration.name, utc_now_s()),
                )
                done.append(migration.version)
                logger.info("Applied migration %s", migration.label)
        if not done:
            logger.debug("Schema up to date (%d migrations)", len(migrations))
        return done


def migrate(database_url: Optional[str] = None) -> List[int]:
    return MigrationRunner(database_url).apply()
