"""sqlite connections for the account store."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
import sqlite3
from typing import Iterator, Optional

from confluence_trader.config import settings

_SQLITE_PREFIXES = ("sqlite:///", "sqlite://")
_BUSY_TIMEOUT_MS = 30_000


@dataclass(frozen=True)
class SqliteTarget:
    """Where a ``DATABASE_URL`` points: a file path or ``:memory:``."""

    path: str

    @property
    def in_memory(self) -> bool:
        return self.path in {"", ":memory:"}

    @classmethod
    def from_url(cls, url: str) -> "SqliteTarget":
        url = (url or "").strip()
        for prefix in _SQLITE_PREFIXES:
            if url.startswith(prefix):
                return cls(path=url[len(prefix):])
        raise ValueError(
            f"DATABASE_URL must use the sqlite scheme (sqlite:///path/to/trader.db), got {url!r}"
        )

    def prepare(self) -> str:
        if self.in_memory:
            return ":memory:"
        path = Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


def open_connection(database_url: Optional[str] = None) -> sqlite3.Connection:
    """Open an autocommit connection; each conditional write is one statement."""
    target = SqliteTarget.from_url(database_url or settings.database_url)
    conn = sqlite3.connect(
        target.prepare(), timeout=_BUSY_TIMEOUT_MS / 1000.0, isolation_level=None
    )
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
    if not target.in_memory:
        # The webhook and the scheduler loop read while the other writes.
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
    return conn


@contextmanager
def connection(database_url: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    conn = open_connection(database_url)
    try:
        yield conn
    finally:
        conn.close()
