"""Document store abstraction: snapshots, batched writes and change events.

The store offers the handful of primitives the trigger handlers rely on:
read one document, merge-write, atomic multi-document batches, ordered
subcollection listing and collection-group equality queries. Every committed
write that changes a document is reported to the registered change
listeners as a ``ChangeEvent`` (before/after pair), which is what feeds the
trigger registry.
"""

from __future__ import annotations

import copy
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

import structlog
from pydantic_core import to_jsonable_python

from nemshi.store import paths
from nemshi.store.errors import DocumentNotFoundError
from nemshi.timeutils import Clock, utcnow

logger = structlog.get_logger()

OrderBy = Literal["update_time", "id"]


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document as read at one point in time (``data`` is None when absent)."""

    path: str
    data: dict[str, Any] | None
    update_time: datetime | None = None

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def to_dict(self) -> dict[str, Any]:
        """A copy of the data, or an empty dict for a missing document."""
        return copy.deepcopy(self.data) if self.data is not None else {}


@dataclass(frozen=True)
class ChangeEvent:
    """One document write: state before and after (None = absent)."""

    path: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def kind(self) -> Literal["created", "updated", "deleted"]:
        if self.before is None:
            return "created"
        if self.after is None:
            return "deleted"
        return "updated"


ChangeListener = Callable[[ChangeEvent], Awaitable[None]]


@dataclass(frozen=True)
class WriteOp:
    kind: Literal["set", "update", "delete"]
    path: str
    data: dict[str, Any] | None = None
    merge: bool = False


def to_storable(data: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a payload to JSON-compatible values (datetimes become ISO strings)."""
    return to_jsonable_python(dict(data))


def deep_merge(current: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``incoming`` into ``current``; nested mappings merge, everything else replaces."""
    merged = copy.deepcopy(dict(current))
    for key, value in incoming.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = deep_merge(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_op(current: dict[str, Any] | None, op: WriteOp) -> dict[str, Any] | None:
    """Compute a document's new state after one write op."""
    if op.kind == "delete":
        return None
    if op.data is None:
        raise ValueError(f"{op.kind} of {op.path} carries no data")
    if op.kind == "update":
        if current is None:
            raise DocumentNotFoundError(op.path)
        return deep_merge(current, op.data)
    if op.merge and current is not None:
        return deep_merge(current, op.data)
    return copy.deepcopy(op.data)


class WriteBatch:
    """Collects writes and commits them atomically (all or nothing)."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._ops: list[WriteOp] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> WriteBatch:
        paths.split_document_path(path)
        self._ops.append(WriteOp("set", path, to_storable(data), merge))
        return self

    def update(self, path: str, data: Mapping[str, Any]) -> WriteBatch:
        paths.split_document_path(path)
        self._ops.append(WriteOp("update", path, to_storable(data)))
        return self

    def delete(self, path: str) -> WriteBatch:
        paths.split_document_path(path)
        self._ops.append(WriteOp("delete", path))
        return self

    async def commit(self) -> list[ChangeEvent]:
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        self._committed = True
        if not self._ops:
            return []
        return await self._store.commit_ops(self._ops)


class DocumentStore(ABC):
    """Async document database with merge writes and atomic batches."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._listeners: list[ChangeListener] = []

    def now(self) -> datetime:
        """The store's notion of server time (used for update ordering)."""
        return self._clock()

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    # --- reads ---

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot:
        """Read one document by path."""

    @abstractmethod
    async def list_collection(
        self,
        collection_path: str,
        *,
        order_by: OrderBy = "update_time",
        descending: bool = False,
        offset: int = 0,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[DocumentSnapshot]:
        """List one collection's documents in order.

        ``start_after`` is a document id and only applies to ``order_by="id"``
        (used for keyset paging in backfills).
        """

    @abstractmethod
    async def query_group(self, collection_id: str, **equals: Any) -> list[DocumentSnapshot]:
        """All documents in any collection named ``collection_id`` whose fields equal ``equals``."""

    # --- writes ---

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        await self.batch().set(path, data, merge=merge).commit()

    async def update(self, path: str, data: Mapping[str, Any]) -> None:
        await self.batch().update(path, data).commit()

    async def delete(self, path: str) -> None:
        await self.batch().delete(path).commit()

    async def commit_ops(self, ops: list[WriteOp]) -> list[ChangeEvent]:
        events = await self._apply(ops)
        await self._notify(events)
        return events

    @abstractmethod
    async def _apply(self, ops: list[WriteOp]) -> list[ChangeEvent]:
        """Apply ops in one transaction; return an event per document that changed."""

    async def _notify(self, events: list[ChangeEvent]) -> None:
        for event in events:
            for listener in self._listeners:
                try:
                    await listener(event)
                except Exception:
                    logger.error("change_listener_failed", path=event.path, event_id=event.event_id, exc_info=True)

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""


def fold_ops(
    ops: list[WriteOp],
    read_current: Callable[[str], dict[str, Any] | None],
) -> tuple[dict[str, dict[str, Any] | None], list[ChangeEvent]]:
    """Apply ops in order against current state.

    Returns the final state per touched path and one change event per path
    whose final state differs from its initial state.
    """
    initial: dict[str, dict[str, Any] | None] = {}
    state: dict[str, dict[str, Any] | None] = {}
    for op in ops:
        if op.path not in state:
            current = read_current(op.path)
            initial[op.path] = copy.deepcopy(current)
            state[op.path] = current
        state[op.path] = apply_op(state[op.path], op)

    events = [
        ChangeEvent(path=path, before=initial[path], after=copy.deepcopy(final))
        for path, final in state.items()
        if initial[path] != final
    ]
    return state, events
