"""Account state stored as independently versioned documents.

Every sub-record of the account (signals, positions, price history, run
metadata and the analysis lease) lives in its own row of
``account_documents`` with a monotonically increasing ``version``. Writers
use :meth:`AccountStore.put` with the version they read; the conditional
``UPDATE ... WHERE version = ?`` makes the write atomic, so two writers can
no longer silently overwrite each other.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from confluence_trader.db.migrate import migrate
from confluence_trader.db.connection import connection
from confluence_trader.errors import StateConflictError
from confluence_trader.models import Position, PriceHistoryEntry, Signal
from confluence_trader.utils.time import utc_now_s

logger = logging.getLogger(__name__)

DOC_SIGNALS = "signals"
DOC_POSITIONS = "positions"
DOC_PRICE_HISTORY = "price_history"
DOC_META = "meta"
DOC_LOCK = "analysis_lock"

_DEFAULT_BODIES: Dict[str, Callable[[], Any]] = {
    DOC_SIGNALS: list,
    DOC_POSITIONS: list,
    DOC_PRICE_HISTORY: list,
    DOC_META: dict,
    DOC_LOCK: dict,
}


@dataclass(frozen=True)
class Document:
    doc_id: str
    version: int
    body: Any
    updated_at: Optional[int]


@dataclass(frozen=True)
class Lease:
    owner: str
    acquired_at: int
    expires_at: int

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "acquired_at": self.acquired_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> Optional["Lease"]:
        if not payload or not payload.get("owner"):
            return None
        return cls(
            owner=str(payload["owner"]),
            acquired_at=int(payload["acquired_at"]),
            expires_at=int(payload["expires_at"]),
        )


@dataclass(frozen=True)
class AccountState:
    signals: List[Signal] = field(default_factory=list)
    positions: List[Position] = field(default_factory=list)
    price_history: List[PriceHistoryEntry] = field(default_factory=list)
    last_trigger: Optional[int] = None
    last_analysis: Optional[int] = None
    analysis_lock: Optional[Lease] = None
    versions: Dict[str, int] = field(default_factory=dict)
    updated_at: Optional[int] = None


class AccountStore:
    """Key-value document store backed by sqlite."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        auto_migrate: bool = True,
        max_conflict_retries: int = 5,
    ) -> None:
        self.database_url = database_url
        self.max_conflict_retries = max_conflict_retries
        if auto_migrate:
            migrate(database_url)

    def _connect(self):
        return connection(self.database_url)

    def get(self, doc_id: str) -> Document:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT doc_id, version, body, updated_at FROM account_documents WHERE doc_id = ?",
                (doc_id,),
            ).fetchone()
        if not row:
            return Document(doc_id=doc_id, version=0, body=_default_body(doc_id), updated_at=None)
        return Document(
            doc_id=row["doc_id"],
            version=int(row["version"]),
            body=json.loads(row["body"]),
            updated_at=row["updated_at"],
        )

    def put(self, doc_id: str, body: Any, expected_version: int) -> int:
        """Write ``body`` only if the stored version still equals ``expected_version``."""
        payload = json.dumps(body, ensure_ascii=True)
        now = utc_now_s()
        with self._connect() as conn:
            if expected_version == 0:
                cur = conn.execute(
                    """
                    INSERT INTO account_documents (doc_id, version, body, updated_at)
                    VALUES (?, 1, ?, ?)
                    ON CONFLICT(doc_id) DO NOTHING
                    """,
                    (doc_id, payload, now),
                )
            else:
                cur = conn.execute(
                    """
                    UPDATE account_documents
                    SET body = ?, version = version + 1, updated_at = ?
                    WHERE doc_id = ? AND version = ?
                    """,
                    (payload, now, doc_id, expected_version),
                )
            written = cur.rowcount
        if written != 1:
            raise StateConflictError(doc_id, expected_version)
        return expected_version + 1

    def mutate(self, doc_id: str, fn: Callable[[Any], Any]) -> Any:
        """Read-modify-write with optimistic retries on version conflicts."""
        for attempt in range(1, self.max_conflict_retries + 1):
            doc = self.get(doc_id)
            updated = fn(copy.deepcopy(doc.body))
            try:
                self.put(doc_id, updated, doc.version)
                return updated
            except StateConflictError:
                logger.info(
                    "Conflict writing %s (attempt %d/%d); re-reading",
                    doc_id,
                    attempt,
                    self.max_conflict_retries,
                )
        raise StateConflictError(doc_id, self.get(doc_id).version)

    def load(self) -> AccountState:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT doc_id, version, body, updated_at FROM account_documents"
            ).fetchall()
        bodies: Dict[str, Any] = {}
        versions: Dict[str, int] = {doc_id: 0 for doc_id in _DEFAULT_BODIES}
        updated_at: Optional[int] = None
        for row in rows:
            bodies[row["doc_id"]] = json.loads(row["body"])
            versions[row["doc_id"]] = int(row["version"])
            if row["updated_at"] is not None:
                updated_at = max(updated_at or 0, int(row["updated_at"]))

        meta = bodies.get(DOC_META) or {}
        return AccountState(
            signals=[Signal.from_dict(item) for item in bodies.get(DOC_SIGNALS) or []],
            positions=[Position.from_dict(item) for item in bodies.get(DOC_POSITIONS) or []],
            price_history=[
                PriceHistoryEntry.from_dict(item)
                for item in bodies.get(DOC_PRICE_HISTORY) or []
            ],
            last_trigger=meta.get("last_trigger"),
            last_analysis=meta.get("last_analysis"),
            analysis_lock=Lease.from_dict(bodies.get(DOC_LOCK) or {}),
            versions=versions,
            updated_at=updated_at,
        )

    # ---------- META ----------
    def update_meta(self, **fields: Any) -> Dict[str, Any]:
        def _apply(meta: Dict[str, Any]) -> Dict[str, Any]:
            meta.update(fields)
            return meta

        return self.mutate(DOC_META, _apply)

    # ---------- LEASE ----------
    def acquire_lease(
        self, owner: str, ttl_s: int, now: Optional[int] = None
    ) -> Optional[Lease]:
        """Take the analysis lease unless another owner holds an unexpired one.

        The check and the write are one conditional put against the version
        that was read, so of two racing callers at most one succeeds.
        """
        now = utc_now_s() if now is None else now
        doc = self.get(DOC_LOCK)
        current = Lease.from_dict(doc.body or {})
        if current and current.owner != owner and not current.is_expired(now):
            logger.info(
                "Analysis lease held by %s until %s", current.owner, current.expires_at
            )
            return None
        if current and current.owner != owner:
            logger.warning(
                "Taking over expired analysis lease from %s (expired at %s)",
                current.owner,
                current.expires_at,
            )
        lease = Lease(owner=owner, acquired_at=now, expires_at=now + ttl_s)
        try:
            self.put(DOC_LOCK, lease.to_dict(), doc.version)
        except StateConflictError:
            logger.info("Lost analysis lease race for %s", owner)
            return None
        return lease

    def renew_lease(self, owner: str, ttl_s: int, now: Optional[int] = None) -> bool:
        now = utc_now_s() if now is None else now
        doc = self.get(DOC_LOCK)
        current = Lease.from_dict(doc.body or {})
        if not current or current.owner != owner:
            return False
        renewed = Lease(owner=owner, acquired_at=current.acquired_at, expires_at=now + ttl_s)
        try:
            self.put(DOC_LOCK, renewed.to_dict(), doc.version)
        except StateConflictError:
            return False
        return True

    def release_lease(self, owner: str) -> bool:
        for _ in range(self.max_conflict_retries):
            doc = self.get(DOC_LOCK)
            current = Lease.from_dict(doc.body or {})
            if not current or current.owner != owner:
                return False
            try:
                self.put(DOC_LOCK, {}, doc.version)
                return True
            except StateConflictError:
                continue
        return False

    # ---------- RUN LOG ----------
    def record_run(
        self,
        run_id: str,
        mode: str,
        started_at: int,
        finished_at: Optional[int],
        summary: Dict[str, Any],
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO analysis_runs (run_id, mode, started_at, finished_at, summary)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(run_id) DO UPDATE SET
                    mode = excluded.mode,
                    finished_at = excluded.finished_at,
                    summary = excluded.summary
                """,
                (run_id, mode, started_at, finished_at, json.dumps(summary, ensure_ascii=True)),
            )

    def recent_runs(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT run_id, mode, started_at, finished_at, summary
                FROM analysis_runs
                ORDER BY started_at DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        out = []
        for row in rows:
            item = dict(row)
            item["summary"] = json.loads(item["summary"]) if item["summary"] else None
            out.append(item)
        return out


def _default_body(doc_id: str) -> Any:
    factory = _DEFAULT_BODIES.get(doc_id)
    return factory() if factory else None
