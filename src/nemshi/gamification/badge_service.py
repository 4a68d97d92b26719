"""Badge evaluation with earn-once semantics and notification."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from nemshi.gamification.catalog import DEFAULT_CATALOG, BadgeCatalog, BadgeDefinition
from nemshi.gamification.schemas import BadgeState, EvaluatedBadge, UserStats
from nemshi.notifications.dispatcher import DispatchResult, Notification, NotificationSink
from nemshi.results import ErrorKind
from nemshi.store import DocumentStore, StoreError
from nemshi.store import paths

logger = structlog.get_logger()

# Guards the achieved comparison against float error at exactly the target.
ACHIEVED_EPSILON = 1e-9

BADGE_NOTIFICATION_TAG = "badge_notification"


def evaluate_badge(
    definition: BadgeDefinition,
    value: float,
    previous: BadgeState | None,
    now: datetime,
) -> EvaluatedBadge:
    """Compute one badge's state from the current metric value.

    A badge never un-earns: once ``achieved`` is stored it stays true and
    its ``earned_at`` is carried forward unchanged.
    """
    target = definition.target
    progress = min(1.0, max(0.0, value / target)) if target > 0 else 0.0
    already_achieved = previous is not None and previous.achieved
    achieved = already_achieved or value >= target - ACHIEVED_EPSILON
    if already_achieved:
        progress = 1.0

    earned_at = None
    if achieved:
        earned_at = (previous.earned_at if previous is not None and already_achieved else None) or now

    state = BadgeState(
        title=definition.title,
        description=definition.description,
        metric=str(definition.metric),
        target=target,
        progress=progress,
        achieved=achieved,
        earned_at=earned_at,
        updated_at=now,
    )
    return EvaluatedBadge(definition=definition, state=state, newly_earned=achieved and not already_achieved)


@dataclass(frozen=True)
class EvaluationResult:
    user_id: str
    updated_badges: list[BadgeState] = field(default_factory=list)
    newly_earned: list[BadgeDefinition] = field(default_factory=list)
    dispatches: list[DispatchResult] = field(default_factory=list)
    error: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def badge_notification(badge: BadgeDefinition) -> tuple[Notification, dict[str, str]]:
    """Push content and data payload for a newly earned badge."""
    notification = Notification(
        title="\U0001f389 Badge Earned!",
        body=f'"{badge.title}" - {badge.description}',
    )
    data = {"action": "badge_earned", "badgeId": badge.id, "badgeTitle": badge.title}
    return notification, data


class BadgeEvaluator:
    """Evaluates the badge catalog against a user's stats."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: NotificationSink | None = None,
        catalog: BadgeCatalog = DEFAULT_CATALOG,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.catalog = catalog

    async def _load_states(self, user_id: str) -> dict[str, BadgeState]:
        docs = await self.store.list_collection(paths.badges(user_id), order_by="id")
        return {doc.id: BadgeState.model_validate(doc.to_dict()) for doc in docs}

    async def evaluate(self, user_id: str, stats: UserStats) -> EvaluationResult:
        """Evaluate every catalog badge and persist all states in one batch.

        Notifications for newly earned badges go out only after the batch
        commits, one per badge; a failed dispatch does not undo the states.
        """
        try:
            existing = await self._load_states(user_id)
        except StoreError:
            logger.exception("badge_state_load_failed", user_id=user_id)
            return EvaluationResult(user_id=user_id, error=ErrorKind.PERSISTENCE)

        now = self.store.now()
        evaluated = [
            evaluate_badge(badge, stats.metric(badge.metric), existing.get(badge.id), now)
            for badge in self.catalog
        ]

        batch = self.store.batch()
        for item in evaluated:
            batch.set(paths.badge(user_id, item.definition.id), item.state.to_document(), merge=True)
        try:
            await batch.commit()
        except StoreError:
            logger.exception("badge_state_commit_failed", user_id=user_id)
            return EvaluationResult(user_id=user_id, error=ErrorKind.PERSISTENCE)

        newly_earned = [item.definition for item in evaluated if item.newly_earned]
        for badge in newly_earned:
            logger.info("badge_earned", user_id=user_id, badge_id=badge.id)

        dispatches: list[DispatchResult] = []
        if self.dispatcher is not None:
            for badge in newly_earned:
                notification, data = badge_notification(badge)
                dispatches.append(
                    await self.dispatcher.send(user_id, notification, data, BADGE_NOTIFICATION_TAG)
                )

        return EvaluationResult(
            user_id=user_id,
            updated_badges=[item.state for item in evaluated],
            newly_earned=newly_earned,
            dispatches=dispatches,
        )
