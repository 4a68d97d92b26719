"""Maintenance backfills over the in-memory store."""

from __future__ import annotations

from nemshi.scripts.backfill_display_name_lower import backfill_display_name_lower, normalize_display_name
from nemshi.scripts.backfill_friend_profiles import backfill_friend_profiles, parse_args
from nemshi.social.friend_profiles import FriendProfileSync
from nemshi.store import MemoryDocumentStore
from nemshi.store import paths


class TestFriendProfileBackfill:
    async def test_rebuilds_profiles_and_summaries(self, store: MemoryDocumentStore):
        for i in range(5):
            await store.set(paths.user(f"u{i}"), {"displayName": f"User {i}"})
        await store.set(paths.walk("w-open"), {"hostUid": "u0", "joinedUserUids": ["u1", "u2"]})
        await store.set(paths.walk("w-private"), {"hostUid": "u3", "visibility": "private"})

        report = await backfill_friend_profiles(store, FriendProfileSync(store), users_batch=2, walks_batch=1)

        assert report.profiles == 5
        assert report.walks == 1
        assert report.users_touched == {"u0", "u1", "u2"}
        assert report.failures == 0
        for i in range(5):
            assert (await store.get(paths.friend_profile(f"u{i}"))).to_dict()["displayName"] == f"User {i}"
        assert (await store.get(paths.walk_summary("u0", "w-open"))).to_dict()["role"] == "host"
        assert await store.list_collection(paths.walk_summaries("u3")) == []

    async def test_prunes_to_limit(self, store: MemoryDocumentStore):
        await store.set(paths.user("h"), {"displayName": "Host"})
        for i in range(4):
            await store.set(paths.walk(f"w{i}"), {"hostUid": "h"})

        await backfill_friend_profiles(store, FriendProfileSync(store, max_summaries=3))

        assert len(await store.list_collection(paths.walk_summaries("h"))) == 3

    def test_cli_batch_sizes(self):
        args = parse_args(["--users-batch", "50", "--walks-batch", "25"])
        assert args.users_batch == 50
        assert args.walks_batch == 25


class TestDisplayNameLowerBackfill:
    def test_normalize(self):
        assert normalize_display_name("  Ada LOVELACE ") == "ada lovelace"
        assert normalize_display_name(None) == ""

    async def test_updates_only_what_changed(self, store: MemoryDocumentStore):
        await store.set(paths.user("a"), {"displayName": "Ada"})
        await store.set(paths.user("b"), {"displayName": "Bob", "displayNameLower": "bob"})
        await store.set(paths.user("c"), {"displayName": "   "})
        await store.set(paths.user("d"), {"email": "d@example.com"})
        await store.set(paths.user("e"), {"displayName": "Eve", "displayNameLower": "old"})

        report = await backfill_display_name_lower(store, batch_size=2)

        assert (report.processed, report.updated, report.skipped) == (5, 2, 3)
        assert (await store.get(paths.user("a"))).to_dict()["displayNameLower"] == "ada"
        assert (await store.get(paths.user("e"))).to_dict()["displayNameLower"] == "eve"
        assert "displayNameLower" not in (await store.get(paths.user("d"))).to_dict()
