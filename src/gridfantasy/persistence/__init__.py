"""SQLite-backed document store: collection paths, field transforms and write batches."""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4


logger = logging.getLogger(__name__)

# Hard ceiling on operations in one atomic batch.
MAX_BATCH_OPERATIONS = 500


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFound(StoreError):
    def __init__(self, path: str):
        super().__init__(f"Document {path} not found")
        self.path = path


class DocumentExists(StoreError):
    def __init__(self, path: str):
        super().__init__(f"Document {path} already exists")
        self.path = path


class BatchLimitExceeded(StoreError):
    def __init__(self, limit: int):
        super().__init__(f"Write batch exceeds {limit} operations")
        self.limit = limit


@dataclass(frozen=True)
class Increment:
    """Field transform adding ``amount`` to the stored numeric value."""

    amount: int | float


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def _split_path(path: str) -> List[str]:
    parts = [part for part in path.strip("/").split("/") if part]
    if not parts:
        raise ValueError("Empty document path")
    return parts


@dataclass(frozen=True)
class DocumentRef:
    path: str

    def __post_init__(self) -> None:
        parts = _split_path(self.path)
        if len(parts) % 2 != 0:
            raise ValueError(f"Document path must have an even number of segments: {self.path!r}")
        object.__setattr__(self, "path", "/".join(parts))

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[1]

    @property
    def collection(self) -> str:
        return self.path.rsplit("/", 1)[0]


def _get_field(data: Mapping[str, Any], field_path: str, default: Any = None) -> Any:
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


@dataclass(frozen=True)
class DocumentSnapshot:
    ref: DocumentRef
    exists: bool
    _data: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def id(self) -> str:
        return self.ref.id

    def data(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data) if self._data is not None else {}

    def get(self, field_path: str, default: Any = None) -> Any:
        if self._data is None:
            return default
        return copy.deepcopy(_get_field(self._data, field_path, default))


@dataclass(frozen=True)
class Change:
    before: DocumentSnapshot
    after: DocumentSnapshot


UpdateListener = Callable[[str, Change], None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _resolve_value(current: Any, value: Any, timestamp: str) -> Any:
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.amount
    if value is SERVER_TIMESTAMP:
        return timestamp
    if isinstance(value, Mapping):
        return {key: _resolve_value(None, item, timestamp) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_resolve_value(None, item, timestamp) for item in value]
    return copy.deepcopy(value)


def apply_update(data: Mapping[str, Any], updates: Mapping[str, Any], *, timestamp: Optional[str] = None) -> Dict[str, Any]:
    """Return ``data`` with dotted-path ``updates`` and field transforms applied."""

    timestamp = timestamp or _now_iso()
    result = copy.deepcopy(dict(data))
    for field_path, value in updates.items():
        parts = field_path.split(".")
        target = result
        for part in parts[:-1]:
            nested = target.get(part)
            if not isinstance(nested, dict):
                nested = {}
                target[part] = nested
            target = nested
        leaf = parts[-1]
        target[leaf] = _resolve_value(target.get(leaf), value, timestamp)
    return result


@dataclass(frozen=True)
class _Write:
    kind: str
    ref: DocumentRef
    data: Mapping[str, Any]


class WriteBatch:
    """Group of writes committed atomically in a single SQLite transaction."""

    def __init__(self, store: "DocumentStore", *, max_operations: int = MAX_BATCH_OPERATIONS):
        self._store = store
        self._max_operations = max_operations
        self._writes: List[_Write] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._writes)

    def _add(self, kind: str, ref: DocumentRef, data: Mapping[str, Any]) -> "WriteBatch":
        if self._committed:
            raise StoreError("Write batch already committed")
        if len(self._writes) >= self._max_operations:
            raise BatchLimitExceeded(self._max_operations)
        self._writes.append(_Write(kind, ref, dict(data)))
        return self

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> "WriteBatch":
        return self._add("set", ref, data)

    def create(self, ref: DocumentRef, data: Mapping[str, Any]) -> "WriteBatch":
        return self._add("create", ref, data)

    def update(self, ref: DocumentRef, data: Mapping[str, Any]) -> "WriteBatch":
        return self._add("update", ref, data)

    def commit(self) -> None:
        if self._committed:
            raise StoreError("Write batch already committed")
        self._committed = True
        if self._writes:
            self._store._commit(self._writes)


class DocumentStore:
    """Document database on top of a single SQLite table.

    Documents are JSON objects addressed by slash-separated paths such as
    ``fantasyTeams/t1`` or ``leagues/L1/members/u1``. Update listeners
    registered per collection play the role of change-detection triggers and
    run after the committing write returns.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._listeners: Dict[str, List[UpdateListener]] = {}
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents (collection)"
            )
        finally:
            conn.close()

    # References -----------------------------------------------------------

    def doc(self, *segments: str) -> DocumentRef:
        return DocumentRef("/".join(segments))

    def new_doc(self, collection: str) -> DocumentRef:
        return DocumentRef(f"{collection}/{uuid4().hex}")

    # Reads ----------------------------------------------------------------

    def get(self, ref: DocumentRef) -> DocumentSnapshot:
        conn = self._connect()
        try:
            row = conn.execute("SELECT data_json FROM documents WHERE path = ?", (ref.path,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return DocumentSnapshot(ref, False)
        return DocumentSnapshot(ref, True, json.loads(row["data_json"]))

    def get_all(self, refs: Sequence[DocumentRef]) -> List[DocumentSnapshot]:
        if not refs:
            return []
        paths = [ref.path for ref in refs]
        placeholders = ", ".join("?" for _ in paths)
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT path, data_json FROM documents WHERE path IN ({placeholders})",
                tuple(paths),
            ).fetchall()
        finally:
            conn.close()
        found = {row["path"]: json.loads(row["data_json"]) for row in rows}
        return [
            DocumentSnapshot(ref, ref.path in found, found.get(ref.path))
            for ref in refs
        ]

    def query(
        self,
        collection: str,
        *,
        where: Iterable[Tuple[str, Any]] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentSnapshot]:
        """Return documents of ``collection`` matching every equality filter.

        Without ``order_by`` documents come back in insertion order; with it,
        documents missing the field sort last and equal values keep
        insertion order.
        """

        collection = "/".join(_split_path(collection))
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT path, data_json FROM documents WHERE collection = ? ORDER BY rowid",
                (collection,),
            ).fetchall()
        finally:
            conn.close()
        filters = list(where)
        snapshots: List[DocumentSnapshot] = []
        for row in rows:
            data = json.loads(row["data_json"])
            if all(_get_field(data, name, None) == value for name, value in filters):
                snapshots.append(DocumentSnapshot(DocumentRef(row["path"]), True, data))
        if order_by:
            present = [snap for snap in snapshots if _get_field(snap._data or {}, order_by) is not None]
            missing = [snap for snap in snapshots if _get_field(snap._data or {}, order_by) is None]
            present.sort(key=lambda snap: _get_field(snap._data or {}, order_by), reverse=descending)
            snapshots = present + missing
        return snapshots

    # Writes ---------------------------------------------------------------

    def batch(self, *, max_operations: int = MAX_BATCH_OPERATIONS) -> WriteBatch:
        return WriteBatch(self, max_operations=min(max_operations, MAX_BATCH_OPERATIONS))

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self.batch().set(ref, data).commit()

    def create(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self.batch().create(ref, data).commit()

    def update(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self.batch().update(ref, data).commit()

    def _commit(self, writes: Sequence[_Write]) -> None:
        timestamp = _now_iso()
        changes: List[Change] = []
        with self._transaction() as conn:
            pending: Dict[str, Optional[Dict[str, Any]]] = {}
            for write in writes:
                path = write.ref.path
                if path in pending:
                    before_data = pending[path]
                else:
                    row = conn.execute("SELECT data_json FROM documents WHERE path = ?", (path,)).fetchone()
                    before_data = json.loads(row["data_json"]) if row is not None else None
                if write.kind == "update":
                    if before_data is None:
                        raise DocumentNotFound(path)
                    after_data = apply_update(before_data, write.data, timestamp=timestamp)
                elif write.kind == "create":
                    if before_data is not None:
                        raise DocumentExists(path)
                    after_data = _resolve_value(None, write.data, timestamp)
                else:
                    after_data = _resolve_value(None, write.data, timestamp)
                conn.execute(
                    """
                    INSERT INTO documents (path, collection, doc_id, data_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(path) DO UPDATE SET
                        data_json = excluded.data_json,
                        updated_at = excluded.updated_at
                    """,
                    (
                        path,
                        write.ref.collection,
                        write.ref.id,
                        json.dumps(after_data),
                        timestamp,
                        timestamp,
                    ),
                )
                pending[path] = after_data
                if before_data is not None:
                    changes.append(
                        Change(
                            before=DocumentSnapshot(write.ref, True, before_data),
                            after=DocumentSnapshot(write.ref, True, after_data),
                        )
                    )
        self._dispatch(changes)

    # Triggers -------------------------------------------------------------

    def on_update(self, collection: str, listener: UpdateListener) -> None:
        """Register ``listener(doc_id, change)`` for updates to ``collection``."""

        key = "/".join(_split_path(collection))
        self._listeners.setdefault(key, []).append(listener)

    def _dispatch(self, changes: Sequence[Change]) -> None:
        for change in changes:
            listeners = self._listeners.get(change.after.ref.collection)
            if not listeners:
                continue
            for listener in list(listeners):
                try:
                    listener(change.after.id, change)
                except Exception:
                    # Trigger failures never undo the write that fired them.
                    logger.exception(
                        "Update listener failed for %s", change.after.ref.path,
                    )


__all__ = [
    "MAX_BATCH_OPERATIONS",
    "SERVER_TIMESTAMP",
    "BatchLimitExceeded",
    "Change",
    "DocumentExists",
    "DocumentNotFound",
    "DocumentRef",
    "DocumentSnapshot",
    "DocumentStore",
    "Increment",
    "StoreError",
    "UpdateListener",
    "WriteBatch",
    "apply_update",
]
