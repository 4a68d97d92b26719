"""Walk stats aggregation: folds one completed walk into a user's totals."""

from __future__ import annotations

from typing import Any

import structlog

from nemshi.coercion import to_finite_float
from nemshi.gamification.schemas import UserStats
from nemshi.results import ErrorKind, Outcome
from nemshi.store import DocumentStore, StoreError
from nemshi.store import paths

logger = structlog.get_logger()


def _non_negative(value: object, field: str, user_id: str) -> float:
    num = to_finite_float(value)
    if num is None:
        return 0.0
    if num < 0:
        logger.warning("stats_negative_input_clamped", user_id=user_id, field=field, value=num)
        return 0.0
    return num


class StatsAggregator:
    """Maintains ``users/{uid}/stats/walkStats``."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def apply_completion(
        self,
        user_id: str,
        duration_minutes: float,
        distance_km: float,
        is_partial_credit: bool = False,
        *,
        walk_id: str | None = None,
    ) -> Outcome[UserStats]:
        """Record one completed (or partially completed) walk.

        Partial credit counts as a full walk; only the caller-supplied
        duration and distance differ. When ``walk_id`` is given, a completion
        marker is written in the same batch and a redelivered completion for
        that walk leaves the totals untouched.

        Returns the merged stats (existing fields plus the update).
        """
        minutes = _non_negative(duration_minutes, "duration_minutes", user_id)
        distance = _non_negative(distance_km, "distance_km", user_id)
        seconds = round(minutes * 60)
        stats_path = paths.walk_stats(user_id)

        try:
            snapshot = await self.store.get(stats_path)
            if walk_id is not None:
                marker = await self.store.get(paths.completion_marker(user_id, walk_id))
                if marker.exists:
                    logger.info("stats_completion_duplicate", user_id=user_id, walk_id=walk_id)
                    current = UserStats.model_validate(snapshot.to_dict()) if snapshot.exists else UserStats()
                    return Outcome(value=current, detail="duplicate")

            now = self.store.now()
            if not snapshot.exists:
                stats = UserStats(
                    user_id=user_id,
                    total_walks_completed=1,
                    total_walks_joined=1,
                    total_walks_hosted=0,
                    total_distance_km=distance,
                    total_duration=seconds,
                    total_participants=1,
                    average_distance_per_walk=distance,
                    average_duration_per_walk=float(seconds),
                    last_walk_date=now,
                    created_at=now,
                    last_updated=now,
                )
                update: dict[str, Any] = stats.to_document()
            else:
                current = UserStats.model_validate(snapshot.to_dict())
                total_walks = current.total_walks_completed + 1
                total_distance = current.total_distance_km + distance
                total_seconds = current.total_duration + seconds
                update = {
                    "totalWalksCompleted": total_walks,
                    "totalDistanceKm": total_distance,
                    "totalDuration": total_seconds,
                    "averageDistancePerWalk": total_distance / total_walks,
                    "averageDurationPerWalk": total_seconds / total_walks,
                    "lastWalkDate": now,
                    "lastUpdated": now,
                }
                stats = UserStats.model_validate({**current.to_document(), **update})

            batch = self.store.batch()
            batch.set(stats_path, update, merge=True)
            if walk_id is not None:
                batch.set(
                    paths.completion_marker(user_id, walk_id),
                    {
                        "walkId": walk_id,
                        "userId": user_id,
                        "partialCredit": is_partial_credit,
                        "durationMinutes": minutes,
                        "distanceKm": distance,
                        "recordedAt": now,
                    },
                )
            await batch.commit()
        except StoreError:
            logger.exception("stats_update_failed", user_id=user_id)
            return Outcome.failure(ErrorKind.PERSISTENCE, f"stats update failed for {user_id}")

        logger.info(
            "stats_updated",
            user_id=user_id,
            walks=stats.total_walks_completed,
            distance_km=stats.total_distance_km,
            partial=is_partial_credit,
        )
        return Outcome.success(stats)
