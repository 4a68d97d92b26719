"""Friend profile and walk summary denormalization.

``friend_profiles/{uid}`` is a public projection of a user's profile and
stats; ``friend_profiles/{uid}/walk_summaries/{walkId}`` holds one summary
per shared walk the user hosts or joined. Both are rebuilt from the source
documents on every write, never patched incrementally.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from nemshi.coercion import coerce_number
from nemshi.results import ErrorKind, Outcome
from nemshi.social.schemas import (
    DEFAULT_DISPLAY_NAME,
    DEFAULT_WALK_TITLE,
    FriendProfile,
    StatsDocument,
    UserDocument,
    WalkCategory,
    WalkRole,
    WalkSummary,
)
from nemshi.store import DocumentStore, StoreError
from nemshi.store import paths
from nemshi.walks.schemas import WalkDocument

logger = structlog.get_logger()

MAX_WALK_SUMMARIES_PER_USER = 40


def build_friend_profile(
    uid: str,
    user: Mapping[str, Any] | None,
    stats: Mapping[str, Any] | None,
    now: datetime,
) -> FriendProfile:
    """Project a user document and its stats onto the public profile."""
    user_doc = UserDocument.model_validate(user or {})
    stats_doc = StatsDocument.model_validate(stats or {})

    host_rating = stats_doc.host_rating if stats_doc.host_rating is not None else user_doc.host_rating
    return FriendProfile(
        uid=uid,
        display_name=user_doc.display_name or DEFAULT_DISPLAY_NAME,
        photo_url=user_doc.photo_url,
        bio=user_doc.bio,
        host_rating=coerce_number(host_rating, None),
        total_walks_hosted=stats_doc.total_walks_hosted,
        total_walks_joined=stats_doc.total_walks_joined,
        total_distance_km=stats_doc.total_distance_km,
        total_minutes=stats_doc.total_minutes,
        last_active_at=user_doc.last_active_at or stats_doc.last_activity or None,
        updated_at=now,
    )


def determine_walk_category(walk: WalkDocument | None, now: datetime) -> WalkCategory:
    if walk is None:
        return WalkCategory.UNKNOWN
    if walk.cancelled:
        return WalkCategory.CANCELLED
    if (walk.status or "").lower() in ("completed", "past"):
        return WalkCategory.PAST
    if walk.start_time is not None and walk.start_time <= now:
        return WalkCategory.PAST
    return WalkCategory.UPCOMING


def collect_shareable_user_roles(walk: WalkDocument | None) -> dict[str, WalkRole]:
    """Uids that may see this walk in friend views, with their role.

    Private and hidden walks share with nobody. The host comes first; a
    uid listed both as host and participant is recorded once, as host.
    """
    roles: dict[str, WalkRole] = {}
    if walk is None or walk.is_private or walk.hide_from_friends:
        return roles

    if walk.host_uid:
        roles[walk.host_uid] = WalkRole.HOST
    for uid in walk.joined_user_uids:
        if uid not in roles:
            roles[uid] = WalkRole.HOST if uid == walk.host_uid else WalkRole.PARTICIPANT
    return roles


def build_walk_summary(walk_id: str, walk: WalkDocument, role: WalkRole, now: datetime) -> WalkSummary:
    return WalkSummary(
        walk_id=walk_id,
        role=role,
        title=walk.title or DEFAULT_WALK_TITLE,
        visibility=walk.visibility,
        status=walk.status,
        meeting_place_name=walk.meeting_place_name,
        start_time=walk.start_time,
        end_time=walk.end_time,
        category=determine_walk_category(walk, now),
        distance_km=walk.distance_km,
        estimated_duration_minutes=walk.estimated_duration_minutes,
        cover_photo_url=walk.cover_photo_url,
        host_uid=walk.host_uid,
        updated_at=now,
    )


@dataclass
class SyncResult:
    """What one ``sync_walk_summary`` call did, per uid."""

    walk_id: str
    upserted: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    pruned: dict[str, int] = field(default_factory=dict)
    failed: dict[str, ErrorKind] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class FriendProfileSync:
    """Keeps the friend-facing projections in step with users and walks."""

    def __init__(self, store: DocumentStore, max_summaries: int = MAX_WALK_SUMMARIES_PER_USER) -> None:
        self.store = store
        self.max_summaries = max_summaries

    # --- profiles ---

    async def refresh_profile(self, uid: str) -> Outcome[FriendProfile]:
        """Rebuild ``friend_profiles/{uid}``; delete it if the user is gone.

        A deleted user yields ``Outcome(value=None, detail="deleted")``.
        """
        try:
            user_snap, stats_snap = await asyncio.gather(
                self.store.get(paths.user(uid)),
                self.store.get(paths.walk_stats(uid)),
            )
            if not user_snap.exists:
                logger.warning("friend_profile_user_missing", user_id=uid)
                await self.store.delete(paths.friend_profile(uid))
                return Outcome(detail="deleted")

            profile = build_friend_profile(uid, user_snap.data, stats_snap.data, self.store.now())
            await self.store.set(paths.friend_profile(uid), profile.to_document(), merge=True)
        except StoreError:
            logger.exception("friend_profile_sync_failed", user_id=uid)
            return Outcome.failure(ErrorKind.PERSISTENCE, f"profile refresh failed for {uid}")

        logger.info("friend_profile_synced", user_id=uid)
        return Outcome.success(profile)

    async def delete_profile(self, uid: str) -> Outcome[None]:
        try:
            await self.store.delete(paths.friend_profile(uid))
        except StoreError:
            logger.exception("friend_profile_delete_failed", user_id=uid)
            return Outcome.failure(ErrorKind.PERSISTENCE, f"profile delete failed for {uid}")
        logger.info("friend_profile_deleted", user_id=uid)
        return Outcome(detail="deleted")

    # --- walk summaries ---

    async def upsert_walk_summary(self, uid: str, walk_id: str, walk: WalkDocument, role: WalkRole) -> None:
        summary = build_walk_summary(walk_id, walk, role, self.store.now())
        await self.store.set(paths.walk_summary(uid, walk_id), summary.to_document(), merge=True)

    async def delete_walk_summary(self, uid: str, walk_id: str) -> None:
        await self.store.delete(paths.walk_summary(uid, walk_id))

    async def enforce_walk_summary_limit(self, uid: str, max_docs: int | None = None) -> int:
        """Delete every summary beyond the newest ``max_docs``; returns how many went."""
        limit = self.max_summaries if max_docs is None else max_docs
        if limit <= 0:
            return 0
        overflow = await self.store.list_collection(
            paths.walk_summaries(uid), order_by="update_time", descending=True, offset=limit
        )
        if not overflow:
            return 0

        batch = self.store.batch()
        for doc in overflow:
            batch.delete(doc.path)
        await batch.commit()
        logger.info("walk_summaries_pruned", user_id=uid, count=len(overflow))
        return len(overflow)

    async def sync_walk_summary(
        self,
        walk_id: str,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> SyncResult:
        """Bring every affected user's summary of one walk up to date.

        Users in the walk's shareable set after the write get an upsert;
        users who were in it before but no longer are lose their summary.
        Each touched user's summary list is then capped. Users are handled
        concurrently and one user's failure does not affect the others.
        """
        before_walk = WalkDocument.from_data(before)
        after_walk = WalkDocument.from_data(after)
        before_roles = collect_shareable_user_roles(before_walk)
        after_roles = collect_shareable_user_roles(after_walk)
        removed = [uid for uid in before_roles if uid not in after_roles]

        result = SyncResult(walk_id=walk_id)

        async def upsert(uid: str, role: WalkRole, walk: WalkDocument) -> None:
            try:
                await self.upsert_walk_summary(uid, walk_id, walk, role)
                result.upserted.append(uid)
            except StoreError:
                logger.exception("walk_summary_upsert_failed", user_id=uid, walk_id=walk_id)
                result.failed[uid] = ErrorKind.PERSISTENCE

        async def remove(uid: str) -> None:
            try:
                await self.delete_walk_summary(uid, walk_id)
                result.deleted.append(uid)
            except StoreError:
                logger.exception("walk_summary_delete_failed", user_id=uid, walk_id=walk_id)
                result.failed[uid] = ErrorKind.PERSISTENCE

        upserts: list[Awaitable[None]] = []
        if after_walk is not None:
            upserts = [upsert(uid, role, after_walk) for uid, role in after_roles.items()]
        await asyncio.gather(
            *upserts,
            *(remove(uid) for uid in removed),
        )

        async def prune(uid: str) -> None:
            try:
                count = await self.enforce_walk_summary_limit(uid)
            except StoreError:
                logger.exception("walk_summary_prune_failed", user_id=uid)
                result.failed.setdefault(uid, ErrorKind.PERSISTENCE)
                return
            if count:
                result.pruned[uid] = count

        touched = dict.fromkeys([*after_roles, *removed])
        await asyncio.gather(*(prune(uid) for uid in touched))

        if after_roles or removed:
            logger.info(
                "walk_summaries_synced",
                walk_id=walk_id,
                upserted=len(result.upserted),
                deleted=len(result.deleted),
                failed=len(result.failed),
            )
        return result
