"""Walk lifecycle handlers: start prompts, completion, auto-complete, early leave."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

import structlog

from nemshi.gamification.pipeline import CompletionRecorder, CompletionResult
from nemshi.notifications.dispatcher import DispatchResult, Notification, NotificationSink
from nemshi.results import ErrorKind, Outcome
from nemshi.store import DocumentStore, StoreError
from nemshi.store import paths
from nemshi.timeutils import minutes_between
from nemshi.walks.schemas import ParticipationDocument, ParticipationStatus, WalkDocument, WalkStatus

logger = structlog.get_logger()

DEFAULT_PLANNED_DURATION_MINUTES = 120
AUTO_COMPLETE_GRACE_MINUTES = 30
CONFIRMATION_TAG = "walk_confirmation"


def _status(data: Mapping[str, Any] | None) -> Any:
    return (data or {}).get("status")


def entered_status(before: Mapping[str, Any] | None, after: Mapping[str, Any] | None, status: str) -> bool:
    """True when a write moved the document into ``status``."""
    return after is not None and _status(after) == status and _status(before) != status


def _is_participation_path(path: str) -> bool:
    parts = path.split("/")
    return len(parts) == 4 and parts[0] == paths.USERS and parts[2] == paths.WALKS


def _is_walk_path(path: str) -> bool:
    parts = path.split("/")
    return len(parts) == 2 and parts[0] == paths.WALKS


class WalkLifecycle:
    """Reacts to walk and participation status transitions."""

    def __init__(
        self,
        store: DocumentStore,
        recorder: CompletionRecorder,
        dispatcher: NotificationSink,
        *,
        default_planned_minutes: int = DEFAULT_PLANNED_DURATION_MINUTES,
        grace_minutes: int = AUTO_COMPLETE_GRACE_MINUTES,
    ) -> None:
        self.store = store
        self.recorder = recorder
        self.dispatcher = dispatcher
        self.default_planned_minutes = default_planned_minutes
        self.grace_minutes = grace_minutes

    async def on_walk_started(
        self,
        walk_id: str,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> list[DispatchResult]:
        """Ask every joined participant (not the host) to confirm they are walking."""
        if not entered_status(before, after, WalkStatus.STARTING):
            return []
        walk = WalkDocument.model_validate(after)
        recipients = [uid for uid in dict.fromkeys(walk.joined_user_uids) if uid != walk.host_uid]
        if not recipients:
            logger.info("walk_started_no_participants", walk_id=walk_id)
            return []

        notification = Notification(
            title=f"{walk.title or 'Walk'} has started!",
            body="Are you joining this walk now?",
        )
        data = {"action": "walk_confirmation_prompt", "walkId": walk_id, "type": "confirmation_needed"}
        results = await asyncio.gather(
            *(self.dispatcher.send(uid, notification, data, CONFIRMATION_TAG) for uid in recipients)
        )
        logger.info("walk_started_prompts_sent", walk_id=walk_id, recipients=len(recipients))
        return list(results)

    async def on_walk_ended(
        self,
        walk_id: str,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> Outcome[list[CompletionResult]]:
        """Close out every actively-walking participant and record their completion."""
        if not entered_status(before, after, WalkStatus.COMPLETED):
            return Outcome.success([])
        walk = WalkDocument.model_validate(after)
        now = self.store.now()
        started_at = walk.started_at or now
        completed_at = walk.completed_at or now

        try:
            active = await self.store.query_group(
                paths.WALKS, walkId=walk_id, status=ParticipationStatus.ACTIVELY_WALKING.value
            )
            batch = self.store.batch()
            completions: list[tuple[str, int]] = []
            for snap in active:
                if not _is_participation_path(snap.path):
                    continue
                participation = ParticipationDocument.model_validate(snap.to_dict())
                user_id = participation.user_id or snap.path.split("/")[1]
                minutes = minutes_between(participation.confirmed_at or started_at, completed_at)
                batch.update(
                    snap.path,
                    {
                        "status": ParticipationStatus.COMPLETED.value,
                        "completedAt": completed_at,
                        "actualDurationMinutes": minutes,
                    },
                )
                completions.append((user_id, minutes))
            await batch.commit()
        except StoreError:
            logger.exception("walk_end_participation_update_failed", walk_id=walk_id)
            return Outcome.failure(ErrorKind.PERSISTENCE, f"participation update failed for {walk_id}")

        logger.info("walk_ended", walk_id=walk_id, participants=len(completions))
        results = await asyncio.gather(
            *(
                self.recorder.record(user_id, minutes, walk.distance_km, walk_id=walk_id)
                for user_id, minutes in completions
            )
        )
        return Outcome.success(list(results))

    def auto_complete_due(self, walk: WalkDocument, now: datetime) -> bool:
        if walk.status != WalkStatus.ACTIVE or walk.completed or walk.date_time is None:
            return False
        planned = walk.planned_duration_minutes or self.default_planned_minutes
        deadline = walk.date_time + timedelta(minutes=planned + self.grace_minutes)
        return now > deadline

    async def on_walk_auto_complete(
        self,
        walk_id: str,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> bool:
        """Complete an active walk the host forgot to end. Returns True if it did."""
        if after is None:
            return False
        walk = WalkDocument.model_validate(after)
        now = self.store.now()
        if not self.auto_complete_due(walk, now):
            return False

        started = walk.started_at or walk.date_time
        if started is None:
            return False
        try:
            await self.store.update(
                paths.walk(walk_id),
                {
                    "status": WalkStatus.COMPLETED.value,
                    "completedAt": now,
                    "actualDurationMinutes": minutes_between(started, now),
                },
            )
        except StoreError:
            logger.exception("walk_auto_complete_failed", walk_id=walk_id)
            return False
        logger.info("walk_auto_completed", walk_id=walk_id)
        return True

    async def sweep_auto_complete(self) -> list[str]:
        """Auto-complete every overdue active walk. Returns the completed walk ids."""
        try:
            active = await self.store.query_group(paths.WALKS, status=WalkStatus.ACTIVE.value)
        except StoreError:
            logger.exception("walk_auto_complete_sweep_failed")
            return []

        completed: list[str] = []
        for snap in active:
            if not _is_walk_path(snap.path):
                continue
            if await self.on_walk_auto_complete(snap.id, snap.data, snap.data):
                completed.append(snap.id)
        if completed:
            logger.info("walk_auto_complete_sweep", completed=len(completed))
        return completed

    async def on_user_left_walk_early(
        self,
        user_id: str,
        walk_id: str,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> CompletionResult | None:
        """Record partial credit for a participant who left before the walk ended."""
        if not entered_status(before, after, ParticipationStatus.COMPLETED_EARLY):
            return None
        participation = ParticipationDocument.model_validate(after)
        if participation.confirmed_at is None:
            logger.info("walk_left_early_unconfirmed", user_id=user_id, walk_id=walk_id)
            return None

        left_at = participation.completed_at or self.store.now()
        minutes = minutes_between(participation.confirmed_at, left_at)
        logger.info("walk_left_early", user_id=user_id, walk_id=walk_id, minutes=minutes)
        return await self.recorder.record(
            user_id,
            minutes,
            participation.actual_distance_km,
            is_partial_credit=True,
            walk_id=walk_id,
        )
