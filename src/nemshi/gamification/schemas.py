"""Pydantic models for the stats and badge documents."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import field_validator

from nemshi.coercion import to_finite_float
from nemshi.gamification.catalog import BadgeDefinition, Metric
from nemshi.schemas import CamelModel
from nemshi.timeutils import parse_timestamp


# --- Stats ---


class UserStats(CamelModel):
    """``users/{uid}/stats/walkStats``. Durations are in seconds."""

    user_id: str | None = None
    total_walks_completed: int = 0
    total_walks_joined: int = 0
    total_walks_hosted: int = 0
    total_distance_km: float = 0.0
    total_duration: int = 0
    total_participants: int = 0
    average_distance_per_walk: float | None = None
    average_duration_per_walk: float | None = None
    last_walk_date: datetime | None = None
    created_at: datetime | None = None
    last_updated: datetime | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def _user_id(cls, value: Any) -> str | None:
        return value if isinstance(value, str) and value else None

    @field_validator(
        "total_walks_completed",
        "total_walks_joined",
        "total_walks_hosted",
        "total_duration",
        "total_participants",
        mode="before",
    )
    @classmethod
    def _count(cls, value: Any) -> int:
        num = to_finite_float(value)
        return max(0, round(num)) if num is not None else 0

    @field_validator("total_distance_km", mode="before")
    @classmethod
    def _distance(cls, value: Any) -> float:
        num = to_finite_float(value)
        return max(0.0, num) if num is not None else 0.0

    @field_validator("average_distance_per_walk", "average_duration_per_walk", mode="before")
    @classmethod
    def _average(cls, value: Any) -> float | None:
        return to_finite_float(value)

    @field_validator("last_walk_date", "created_at", "last_updated", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    def metric(self, metric: Metric | str) -> float:
        """Current value of a badge metric (0 for unknown metrics)."""
        match metric:
            case Metric.WALKS_COMPLETED:
                return float(self.total_walks_completed)
            case Metric.DISTANCE_KM:
                return float(self.total_distance_km)
            case Metric.WALKS_HOSTED:
                return float(self.total_walks_hosted)
        return 0.0


# --- Badges ---


class BadgeState(CamelModel):
    """``users/{uid}/badges/{badgeId}``."""

    title: str = ""
    description: str = ""
    metric: str = ""
    target: float = 0
    progress: float = 0.0
    achieved: bool = False
    earned_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("title", "description", "metric", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("earned_at", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("achieved", mode="before")
    @classmethod
    def _achieved(cls, value: Any) -> bool:
        return value is True

    @field_validator("progress", "target", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float:
        num = to_finite_float(value)
        return num if num is not None else 0.0


@dataclass(frozen=True)
class EvaluatedBadge:
    """One catalog entry after evaluation."""

    definition: BadgeDefinition
    state: BadgeState
    newly_earned: bool = False
