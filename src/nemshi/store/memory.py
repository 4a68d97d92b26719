"""In-process document store for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from nemshi.store import paths
from nemshi.store.base import ChangeEvent, DocumentSnapshot, DocumentStore, OrderBy, WriteOp, fold_ops
from nemshi.timeutils import Clock, utcnow


@dataclass
class _Stored:
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store with the same semantics as the SQL backend."""

    def __init__(self, clock: Clock = utcnow) -> None:
        super().__init__(clock)
        self._docs: dict[str, _Stored] = {}
        self._lock = asyncio.Lock()

    def _snapshot(self, path: str) -> DocumentSnapshot:
        stored = self._docs.get(path)
        if stored is None:
            return DocumentSnapshot(path=path, data=None)
        return DocumentSnapshot(path=path, data=copy.deepcopy(stored.data), update_time=stored.updated_at)

    async def get(self, path: str) -> DocumentSnapshot:
        paths.split_document_path(path)
        return self._snapshot(path)

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
        collection_path = paths.validate_collection_path(collection_path)
        members = [
            path for path in self._docs
            if paths.split_document_path(path)[0] == collection_path
        ]
        if order_by == "id":
            members.sort(key=lambda p: p.rsplit("/", 1)[-1], reverse=descending)
            if start_after is not None:
                members = [
                    p for p in members
                    if (p.rsplit("/", 1)[-1] < start_after if descending else p.rsplit("/", 1)[-1] > start_after)
                ]
        else:
            members.sort(key=lambda p: (self._docs[p].updated_at, p), reverse=descending)

        members = members[offset:]
        if limit is not None:
            members = members[:limit]
        return [self._snapshot(p) for p in members]

    async def query_group(self, collection_id: str, **equals: Any) -> list[DocumentSnapshot]:
        matches = []
        for path in sorted(self._docs):
            parent, _ = paths.split_document_path(path)
            if paths.collection_id(parent) != collection_id:
                continue
            data = self._docs[path].data
            if all(data.get(k) == v for k, v in equals.items()):
                matches.append(self._snapshot(path))
        return matches

    async def _apply(self, ops: list[WriteOp]) -> list[ChangeEvent]:
        async with self._lock:
            state, events = fold_ops(
                ops,
                lambda p: copy.deepcopy(self._docs[p].data) if p in self._docs else None,
            )
            now = self.now()
            changed = {event.path for event in events}
            for path, data in state.items():
                if path not in changed:
                    continue
                if data is None:
                    self._docs.pop(path, None)
                elif path in self._docs:
                    stored = self._docs[path]
                    stored.data = data
                    stored.updated_at = now
                else:
                    self._docs[path] = _Stored(data=data, created_at=now, updated_at=now)
            return events
