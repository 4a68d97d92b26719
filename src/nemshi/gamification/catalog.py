"""Badge catalog: 14 walking achievements over three stats metrics.

Ids, titles and targets must match the mobile app's badge catalog exactly;
the app renders ``users/{uid}/badges/{id}`` by id.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum


class Metric(StrEnum):
    """Stats field a badge target is measured against."""

    WALKS_COMPLETED = "totalWalksCompleted"
    DISTANCE_KM = "totalDistanceKm"
    WALKS_HOSTED = "totalWalksHosted"


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    title: str
    description: str
    metric: Metric
    target: float


@dataclass(frozen=True)
class BadgeCatalog:
    """Ordered, read-only set of badge definitions."""

    badges: tuple[BadgeDefinition, ...]

    def __post_init__(self) -> None:
        ids = [b.id for b in self.badges]
        if len(ids) != len(set(ids)):
            raise ValueError("Badge ids must be unique")

    @classmethod
    def of(cls, badges: Iterable[BadgeDefinition]) -> BadgeCatalog:
        return cls(tuple(badges))

    def __iter__(self) -> Iterator[BadgeDefinition]:
        return iter(self.badges)

    def __len__(self) -> int:
        return len(self.badges)

    def get(self, badge_id: str) -> BadgeDefinition | None:
        return next((b for b in self.badges if b.id == badge_id), None)


DEFAULT_CATALOG = BadgeCatalog.of([
    # Walks completed
    BadgeDefinition("first_walk", "First Steps", "Complete your first walk.", Metric.WALKS_COMPLETED, 1),
    BadgeDefinition("five_walks", "Getting Going", "Complete 5 walks.", Metric.WALKS_COMPLETED, 5),
    BadgeDefinition("ten_walks", "Consistent Walker", "Complete 10 walks.", Metric.WALKS_COMPLETED, 10),
    BadgeDefinition("twentyfive_walks", "Trail Regular", "Complete 25 walks.", Metric.WALKS_COMPLETED, 25),
    BadgeDefinition("fifty_walks", "Walk Centurion", "Complete 50 walks.", Metric.WALKS_COMPLETED, 50),
    BadgeDefinition("hundred_walks", "Habit Master", "Complete 100 walks.", Metric.WALKS_COMPLETED, 100),
    # Distance
    BadgeDefinition("km_20", "20 km", "Walk 20 km in total.", Metric.DISTANCE_KM, 20),
    BadgeDefinition("km_42", "Marathon Mindset", "Walk 42 km in total.", Metric.DISTANCE_KM, 42),
    BadgeDefinition("km_100", "Century Club", "Walk 100 km in total.", Metric.DISTANCE_KM, 100),
    BadgeDefinition("km_250", "Quarter to 1k", "Walk 250 km in total.", Metric.DISTANCE_KM, 250),
    BadgeDefinition("km_500", "Half to 1k", "Walk 500 km in total.", Metric.DISTANCE_KM, 500),
    # Hosting
    BadgeDefinition("first_host", "First Host", "Host your first walk.", Metric.WALKS_HOSTED, 1),
    BadgeDefinition("five_hosts", "Community Leader", "Host 5 walks.", Metric.WALKS_HOSTED, 5),
    BadgeDefinition("ten_hosts", "Super Host", "Host 10 walks.", Metric.WALKS_HOSTED, 10),
])
