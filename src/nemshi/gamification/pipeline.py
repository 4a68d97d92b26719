"""Completion pipeline: stats -> badges -> notifications."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from nemshi.gamification.badge_service import BadgeEvaluator, EvaluationResult
from nemshi.gamification.schemas import UserStats
from nemshi.gamification.stats_service import StatsAggregator
from nemshi.results import Outcome

logger = structlog.get_logger()


@dataclass(frozen=True)
class CompletionResult:
    user_id: str
    stats: Outcome[UserStats]
    badges: EvaluationResult | None = None

    @property
    def ok(self) -> bool:
        return self.stats.ok and (self.badges is None or self.badges.ok)


class CompletionRecorder:
    """Records a walk completion for one user and evaluates their badges."""

    def __init__(self, aggregator: StatsAggregator, evaluator: BadgeEvaluator) -> None:
        self.aggregator = aggregator
        self.evaluator = evaluator

    async def record(
        self,
        user_id: str,
        duration_minutes: float,
        distance_km: float,
        is_partial_credit: bool = False,
        *,
        walk_id: str | None = None,
    ) -> CompletionResult:
        stats = await self.aggregator.apply_completion(
            user_id, duration_minutes, distance_km, is_partial_credit, walk_id=walk_id
        )
        if not stats.ok or stats.value is None:
            return CompletionResult(user_id=user_id, stats=stats)

        badges = await self.evaluator.evaluate(user_id, stats.value)
        if badges.newly_earned:
            logger.info(
                "completion_badges_earned",
                user_id=user_id,
                badges=[b.id for b in badges.newly_earned],
            )
        return CompletionResult(user_id=user_id, stats=stats, badges=badges)
