"""Friend profile and walk summary denormalization."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from nemshi.social.friend_profiles import (
    FriendProfileSync,
    build_friend_profile,
    collect_shareable_user_roles,
    determine_walk_category,
)
from nemshi.results import ErrorKind
from nemshi.social.schemas import WalkCategory, WalkRole
from nemshi.store import MemoryDocumentStore, StoreError
from nemshi.store import paths
from nemshi.walks.schemas import WalkDocument

NOW = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)


def walk(**fields) -> WalkDocument:
    return WalkDocument.model_validate(fields)


class TestBuildFriendProfile:
    def test_defaults_for_empty_documents(self):
        profile = build_friend_profile("u1", {}, None, NOW)
        assert profile.display_name == "Walker"
        assert profile.photo_url is None
        assert profile.bio is None
        assert profile.host_rating is None
        assert profile.total_walks_hosted == 0
        assert profile.total_distance_km == 0
        assert profile.updated_at == NOW

    def test_field_aliases_and_limits(self):
        user = {"displayName": "  " + "A" * 200, "about": "Hi there", "photoURL": "https://x/p.png"}
        stats = {
            "averageHostRating": "4.567",
            "hostedWalks": 3,
            "totalWalks": 8,
            "totalDistance": "12.375",
            "totalDuration": 5400,
        }
        profile = build_friend_profile("u1", user, stats, NOW)

        assert profile.display_name == "A" * 120
        assert profile.bio == "Hi there"
        assert profile.photo_url == "https://x/p.png"
        assert profile.host_rating == 4.57
        assert profile.total_walks_hosted == 3
        assert profile.total_walks_joined == 8
        assert profile.total_distance_km == 12.38
        assert profile.total_minutes == 90

    def test_invalid_numbers_default_to_zero(self):
        profile = build_friend_profile("u1", {"displayName": "Sam"}, {"totalWalksHosted": "lots"}, NOW)
        assert profile.total_walks_hosted == 0

    def test_last_active_falls_back_to_stats(self):
        profile = build_friend_profile("u1", {}, {"lastWalkDate": "2026-02-01T08:00:00Z"}, NOW)
        assert profile.last_active_at == datetime(2026, 2, 1, 8, tzinfo=timezone.utc)

    def test_document_uses_camel_case(self):
        doc = build_friend_profile("u1", {"displayName": "Sam"}, {}, NOW).to_document()
        assert doc["displayName"] == "Sam"
        assert "totalWalksHosted" in doc


class TestWalkCategory:
    def test_cancelled_wins(self):
        assert determine_walk_category(walk(cancelled=True, status="completed"), NOW) is WalkCategory.CANCELLED

    def test_future_walk_is_upcoming(self):
        future = (NOW + timedelta(days=1)).isoformat()
        assert determine_walk_category(walk(dateTime=future, status="open"), NOW) is WalkCategory.UPCOMING

    def test_completed_future_walk_is_past(self):
        future = (NOW + timedelta(days=1)).isoformat()
        assert determine_walk_category(walk(dateTime=future, status="completed"), NOW) is WalkCategory.PAST

    def test_started_walk_is_past(self):
        past = (NOW - timedelta(minutes=1)).isoformat()
        assert determine_walk_category(walk(startTime=past), NOW) is WalkCategory.PAST

    def test_missing_walk_is_unknown(self):
        assert determine_walk_category(None, NOW) is WalkCategory.UNKNOWN


class TestShareableRoles:
    def test_host_first_and_deduplicated(self):
        roles = collect_shareable_user_roles(
            walk(hostUid="h", joinedUserUids=["a", "h", "b"], joinedUids=["b", "c"])
        )
        assert list(roles) == ["h", "a", "b", "c"]
        assert roles["h"] is WalkRole.HOST
        assert roles["a"] is WalkRole.PARTICIPANT

    def test_private_and_hidden_walks_share_nothing(self):
        assert collect_shareable_user_roles(walk(hostUid="h", visibility="private")) == {}
        assert collect_shareable_user_roles(walk(hostUid="h", hideFromFriends=True)) == {}

    def test_ignores_non_string_uids(self):
        roles = collect_shareable_user_roles(walk(joinedUserUids=["a", 3, "", None]))
        assert roles == {"a": WalkRole.PARTICIPANT}


class TestRefreshProfile:
    async def test_writes_profile(self, profiles: FriendProfileSync, store: MemoryDocumentStore):
        await store.set(paths.user("u1"), {"displayName": "Sam"})
        await store.set(paths.walk_stats("u1"), {"totalWalksHosted": 2})

        outcome = await profiles.refresh_profile("u1")

        assert outcome.ok
        doc = (await store.get(paths.friend_profile("u1"))).to_dict()
        assert doc["uid"] == "u1"
        assert doc["displayName"] == "Sam"
        assert doc["totalWalksHosted"] == 2

    async def test_missing_user_deletes_profile(self, profiles: FriendProfileSync, store: MemoryDocumentStore):
        await store.set(paths.friend_profile("u1"), {"uid": "u1"})

        outcome = await profiles.refresh_profile("u1")
        again = await profiles.refresh_profile("u1")

        assert outcome.ok and outcome.value is None
        assert again.ok
        assert not (await store.get(paths.friend_profile("u1"))).exists

    async def test_store_error_reported(
        self, profiles: FriendProfileSync, store: MemoryDocumentStore, monkeypatch: pytest.MonkeyPatch
    ):
        async def broken(_path: str):
            raise StoreError("down")

        monkeypatch.setattr(store, "get", broken)
        outcome = await profiles.refresh_profile("u1")

        assert not outcome.ok
        assert outcome.error is ErrorKind.PERSISTENCE


class TestWalkSummarySync:
    async def test_upserts_for_host_and_participants(self, profiles: FriendProfileSync, store: MemoryDocumentStore):
        after = {"title": "Park loop", "hostUid": "h", "joinedUserUids": ["a"], "distanceKm": 4.2}

        result = await profiles.sync_walk_summary("w1", None, after)

        assert result.ok
        assert sorted(result.upserted) == ["a", "h"]
        host = (await store.get(paths.walk_summary("h", "w1"))).to_dict()
        assert host["role"] == "host"
        assert host["title"] == "Park loop"
        assert host["distanceKm"] == 4.2
        assert (await store.get(paths.walk_summary("a", "w1"))).to_dict()["role"] == "participant"

    async def test_going_private_deletes_every_summary(
        self, profiles: FriendProfileSync, store: MemoryDocumentStore
    ):
        before = {"hostUid": "h", "joinedUserUids": ["a", "b"], "visibility": "open"}
        await profiles.sync_walk_summary("w1", None, before)

        result = await profiles.sync_walk_summary("w1", before, {**before, "visibility": "private"})

        assert result.upserted == []
        assert sorted(result.deleted) == ["a", "b", "h"]
        for uid in ("h", "a", "b"):
            assert not (await store.get(paths.walk_summary(uid, "w1"))).exists

    async def test_user_who_left_loses_summary(self, profiles: FriendProfileSync, store: MemoryDocumentStore):
        before = {"hostUid": "h", "joinedUserUids": ["a", "b"]}
        await profiles.sync_walk_summary("w1", None, before)

        result = await profiles.sync_walk_summary("w1", before, {"hostUid": "h", "joinedUserUids": ["a"]})

        assert result.deleted == ["b"]
        assert (await store.get(paths.walk_summary("a", "w1"))).exists

    async def test_deleted_walk_removes_summaries(self, profiles: FriendProfileSync, store: MemoryDocumentStore):
        before = {"hostUid": "h"}
        await profiles.sync_walk_summary("w1", None, before)
        await profiles.sync_walk_summary("w1", before, None)
        assert not (await store.get(paths.walk_summary("h", "w1"))).exists

    async def test_failed_upsert_is_isolated_to_one_user(
        self, profiles: FriendProfileSync, store: MemoryDocumentStore, monkeypatch: pytest.MonkeyPatch
    ):
        original_set = store.set

        async def flaky_set(path: str, data, *, merge: bool = False) -> None:
            if path == paths.walk_summary("b", "w1"):
                raise StoreError("down")
            await original_set(path, data, merge=merge)

        monkeypatch.setattr(store, "set", flaky_set)
        result = await profiles.sync_walk_summary("w1", None, {"hostUid": "h", "joinedUserUids": ["a", "b"]})

        assert not result.ok
        assert result.failed == {"b": ErrorKind.PERSISTENCE}
        assert sorted(result.upserted) == ["a", "h"]
        assert (await store.get(paths.walk_summary("h", "w1"))).exists
        assert (await store.get(paths.walk_summary("a", "w1"))).exists
        assert not (await store.get(paths.walk_summary("b", "w1"))).exists

    async def test_failed_delete_is_isolated_to_one_user(
        self, profiles: FriendProfileSync, store: MemoryDocumentStore, monkeypatch: pytest.MonkeyPatch
    ):
        before = {"hostUid": "h", "joinedUserUids": ["a", "b"]}
        await profiles.sync_walk_summary("w1", None, before)
        original_delete = store.delete

        async def flaky_delete(path: str) -> None:
            if path == paths.walk_summary("a", "w1"):
                raise StoreError("down")
            await original_delete(path)

        monkeypatch.setattr(store, "delete", flaky_delete)
        result = await profiles.sync_walk_summary("w1", before, {"hostUid": "h"})

        assert result.failed == {"a": ErrorKind.PERSISTENCE}
        assert result.deleted == ["b"]
        assert result.upserted == ["h"]
        assert not (await store.get(paths.walk_summary("b", "w1"))).exists

    async def test_failed_prune_keeps_the_upsert(
        self, profiles: FriendProfileSync, store: MemoryDocumentStore, monkeypatch: pytest.MonkeyPatch
    ):
        async def broken(*_args, **_kwargs):
            raise StoreError("down")

        monkeypatch.setattr(store, "list_collection", broken)
        result = await profiles.sync_walk_summary("w1", None, {"hostUid": "h"})

        assert result.upserted == ["h"]
        assert result.failed == {"h": ErrorKind.PERSISTENCE}
        assert result.pruned == {}
        assert (await store.get(paths.walk_summary("h", "w1"))).exists


class TestSummaryLimit:
    async def test_keeps_forty_newest(self, profiles: FriendProfileSync, store: MemoryDocumentStore):
        for i in range(45):
            await store.set(paths.walk_summary("u1", f"w{i:02d}"), {"walkId": f"w{i:02d}"})

        removed = await profiles.enforce_walk_summary_limit("u1")

        remaining = await store.list_collection(paths.walk_summaries("u1"), order_by="id")
        assert removed == 5
        assert len(remaining) == 40
        assert [d.id for d in remaining] == [f"w{i:02d}" for i in range(5, 45)]

    async def test_under_limit_is_untouched(self, profiles: FriendProfileSync, store: MemoryDocumentStore):
        await store.set(paths.walk_summary("u1", "w1"), {"walkId": "w1"})
        assert await profiles.enforce_walk_summary_limit("u1") == 0

    async def test_sync_prunes_touched_users(self, store: MemoryDocumentStore):
        sync = FriendProfileSync(store, max_summaries=2)
        for i in range(3):
            await sync.sync_walk_summary(f"w{i}", None, {"hostUid": "h"})

        remaining = await store.list_collection(paths.walk_summaries("h"), order_by="id")
        assert [d.id for d in remaining] == ["w1", "w2"]
