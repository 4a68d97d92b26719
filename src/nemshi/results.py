"""Explicit outcome types returned by the trigger-side services.

Services log their own failures and then report them through these types so
the caller (trigger registry, backfill scripts, tests) can decide whether to
alert, retry or move on.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Why an operation did not complete."""

    MISSING_DOCUMENT = "missing_document"
    PERSISTENCE = "persistence"
    DISPATCH = "dispatch"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """A value, or the kind of error that prevented producing it."""

    value: T | None = None
    error: ErrorKind | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str = "") -> Outcome[T]:
        return cls(error=error, detail=detail)
