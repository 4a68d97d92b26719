"""Wiring of the document triggers to the domain services."""

from __future__ import annotations

from nemshi.social.friend_profiles import FriendProfileSync
from nemshi.store import paths
from nemshi.store.base import ChangeEvent
from nemshi.triggers.registry import TriggerRegistry
from nemshi.walks.lifecycle import WalkLifecycle

USER_DOC = "users/{uid}"
USER_STATS_DOC = "users/{uid}/stats/{statsId}"
WALK_DOC = "walks/{walkId}"
PARTICIPATION_DOC = "users/{uid}/walks/{walkId}"


def build_registry(profiles: FriendProfileSync, lifecycle: WalkLifecycle) -> TriggerRegistry:
    registry = TriggerRegistry()

    # --- friend profiles ---

    async def sync_friend_profile(event: ChangeEvent, params: dict[str, str]) -> None:
        if event.after is None:
            await profiles.delete_profile(params["uid"])
        else:
            await profiles.refresh_profile(params["uid"])

    async def sync_friend_profile_stats(event: ChangeEvent, params: dict[str, str]) -> None:
        if params["statsId"] == paths.WALK_STATS_DOC_ID:
            await profiles.refresh_profile(params["uid"])

    async def sync_walk_summaries(event: ChangeEvent, params: dict[str, str]) -> None:
        await profiles.sync_walk_summary(params["walkId"], event.before, event.after)

    registry.register(USER_DOC, "written", sync_friend_profile)
    registry.register(USER_STATS_DOC, "written", sync_friend_profile_stats)
    registry.register(WALK_DOC, "written", sync_walk_summaries)

    # --- walk lifecycle ---

    async def walk_started(event: ChangeEvent, params: dict[str, str]) -> None:
        await lifecycle.on_walk_started(params["walkId"], event.before, event.after)

    async def walk_ended(event: ChangeEvent, params: dict[str, str]) -> None:
        await lifecycle.on_walk_ended(params["walkId"], event.before, event.after)

    async def walk_auto_complete(event: ChangeEvent, params: dict[str, str]) -> None:
        await lifecycle.on_walk_auto_complete(params["walkId"], event.before, event.after)

    async def user_left_walk_early(event: ChangeEvent, params: dict[str, str]) -> None:
        await lifecycle.on_user_left_walk_early(params["uid"], params["walkId"], event.before, event.after)

    registry.register(WALK_DOC, "updated", walk_started)
    registry.register(WALK_DOC, "updated", walk_ended)
    registry.register(WALK_DOC, "updated", walk_auto_complete)
    registry.register(PARTICIPATION_DOC, "updated", user_left_walk_early)

    return registry
