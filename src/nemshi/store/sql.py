"""SQLAlchemy-backed document store.

Each public call opens its own session from the factory so concurrent
fan-out branches never share a session.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nemshi.db.models import Document
from nemshi.store import paths
from nemshi.store.base import ChangeEvent, DocumentSnapshot, DocumentStore, OrderBy, WriteOp, fold_ops
from nemshi.store.errors import StoreError
from nemshi.timeutils import Clock, as_utc, utcnow


def _snapshot(row: Document) -> DocumentSnapshot:
    return DocumentSnapshot(path=row.path, data=dict(row.data), update_time=as_utc(row.updated_at))


class SqlDocumentStore(DocumentStore):
    """Documents stored as JSON rows in a single ``documents`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(clock)
        self._session_factory = session_factory

    async def get(self, path: str) -> DocumentSnapshot:
        paths.split_document_path(path)
        try:
            async with self._session_factory() as session:
                row = await session.get(Document, path)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read {path}") from exc
        if row is None:
            return DocumentSnapshot(path=path, data=None)
        return _snapshot(row)

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
        stmt = select(Document).where(Document.collection == collection_path)
        if order_by == "id":
            column = Document.doc_id
            if start_after is not None:
                stmt = stmt.where(column < start_after if descending else column > start_after)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        else:
            if descending:
                stmt = stmt.order_by(Document.updated_at.desc(), Document.path.desc())
            else:
                stmt = stmt.order_by(Document.updated_at.asc(), Document.path.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list {collection_path}") from exc
        return [_snapshot(row) for row in rows]

    async def query_group(self, collection_id: str, **equals: Any) -> list[DocumentSnapshot]:
        stmt = select(Document).where(Document.collection_id == collection_id)
        remaining: dict[str, Any] = {}
        for key, value in equals.items():
            if isinstance(value, str):
                stmt = stmt.where(Document.data[key].as_string() == value)
            else:
                remaining[key] = value
        stmt = stmt.order_by(Document.path)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query collection group {collection_id}") from exc
        return [
            _snapshot(row) for row in rows
            if all(row.data.get(k) == v for k, v in remaining.items())
        ]

    async def _apply(self, ops: list[WriteOp]) -> list[ChangeEvent]:
        touched = list(dict.fromkeys(op.path for op in ops))
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    select(Document).where(Document.path.in_(touched)).with_for_update()
                )
                rows = {row.path: row for row in result.scalars()}
                state, events = fold_ops(ops, lambda p: dict(rows[p].data) if p in rows else None)

                now = self.now()
                for event in events:
                    data = state[event.path]
                    if data is None:
                        await session.execute(delete(Document).where(Document.path == event.path))
                        continue
                    row = rows.get(event.path)
                    if row is None:
                        collection_path, doc_id = paths.split_document_path(event.path)
                        session.add(Document(
                            path=event.path,
                            collection=collection_path,
                            collection_id=paths.collection_id(collection_path),
                            doc_id=doc_id,
                            data=data,
                            created_at=now,
                            updated_at=now,
                        ))
                    else:
                        row.data = data
                        row.updated_at = now
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to commit {len(ops)} writes") from exc
        return events
