"""Document store used by every trigger handler."""

from nemshi.store.base import ChangeEvent, ChangeListener, DocumentSnapshot, DocumentStore, WriteBatch
from nemshi.store.errors import DocumentNotFoundError, InvalidPathError, StoreError
from nemshi.store.memory import MemoryDocumentStore
from nemshi.store.sql import SqlDocumentStore

__all__ = [
    "ChangeEvent",
    "ChangeListener",
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "DocumentStore",
    "InvalidPathError",
    "MemoryDocumentStore",
    "SqlDocumentStore",
    "StoreError",
    "WriteBatch",
]
