"""End-to-end trigger flow on the in-memory store: writes drive every handler."""

from __future__ import annotations

from datetime import timedelta

import pytest

from nemshi.config import Settings
from nemshi.container import Container, build_container
from nemshi.store import MemoryDocumentStore
from nemshi.store import paths

from tests.conftest import START, FakeTransport


def iso(minutes: int) -> str:
    return (START + timedelta(minutes=minutes)).isoformat()


@pytest.fixture
def wired(store: MemoryDocumentStore) -> tuple[Container, FakeTransport]:
    transport = FakeTransport(dead={"stale-token": "UNREGISTERED"})
    container = build_container(Settings(store_backend="memory", publish_changes=False), store, transport)
    store.add_listener(container.registry)
    return container, transport


class TestWalkFlow:
    async def test_start_to_finish(self, wired: tuple[Container, FakeTransport], store: MemoryDocumentStore):
        _, transport = wired
        await store.set(paths.user("h"), {"displayName": "Host"})
        await store.set(paths.user("a"), {"displayName": "Ada"})
        await store.set(paths.fcm_token("a", "a-phone"), {"token": "a-phone"})
        await store.set(paths.fcm_token("a", "stale-token"), {"token": "stale-token"})

        walk = {
            "title": "Morning loop",
            "hostUid": "h",
            "joinedUserUids": ["a"],
            "visibility": "open",
            "status": "scheduled",
            "dateTime": iso(0),
            "distanceKm": 5,
        }
        await store.set(paths.walk("w1"), walk)
        assert (await store.get(paths.walk_summary("h", "w1"))).to_dict()["role"] == "host"
        assert (await store.get(paths.walk_summary("a", "w1"))).to_dict()["role"] == "participant"

        await store.update(paths.walk("w1"), {"status": "starting"})
        prompts = [m for _, m in transport.messages if m.tag == "walk_confirmation"]
        assert len(prompts) == 1
        assert prompts[0].title == "Morning loop has started!"
        assert not (await store.get(paths.fcm_token("a", "stale-token"))).exists

        await store.set(
            paths.participation("a", "w1"),
            {"walkId": "w1", "userId": "a", "status": "actively_walking", "confirmedAt": iso(0)},
        )
        await store.update(paths.walk("w1"), {"status": "active", "startedAt": iso(0)})
        await store.update(paths.walk("w1"), {"status": "completed", "completedAt": iso(40)})

        participation = (await store.get(paths.participation("a", "w1"))).to_dict()
        assert participation["status"] == "completed"
        assert participation["actualDurationMinutes"] == 40

        stats = (await store.get(paths.walk_stats("a"))).to_dict()
        assert stats["totalWalksCompleted"] == 1
        assert stats["totalDuration"] == 2400

        profile = (await store.get(paths.friend_profile("a"))).to_dict()
        assert profile["displayName"] == "Ada"
        assert profile["totalDistanceKm"] == 5
        assert profile["totalMinutes"] == 40

        badge_pushes = [m for _, m in transport.messages if m.tag == "badge_notification"]
        assert [m.data["badgeId"] for m in badge_pushes] == ["first_walk"]
        assert (await store.get(paths.walk_summary("a", "w1"))).to_dict()["category"] == "past"

    async def test_leaving_early_gives_partial_credit(
        self, wired: tuple[Container, FakeTransport], store: MemoryDocumentStore
    ):
        await store.set(
            paths.participation("a", "w1"),
            {"walkId": "w1", "status": "actively_walking", "confirmedAt": iso(0), "actualDistanceKm": 1.5},
        )
        await store.update(paths.participation("a", "w1"), {"status": "completed_early", "completedAt": iso(20)})

        stats = (await store.get(paths.walk_stats("a"))).to_dict()
        assert stats["totalWalksCompleted"] == 1
        assert stats["totalDistanceKm"] == 1.5
        assert stats["totalDuration"] == 1200

    async def test_private_walk_is_hidden_from_friends(
        self, wired: tuple[Container, FakeTransport], store: MemoryDocumentStore
    ):
        await store.set(paths.walk("w1"), {"hostUid": "h", "joinedUserUids": ["a"]})
        await store.update(paths.walk("w1"), {"visibility": "private"})

        assert await store.list_collection(paths.walk_summaries("h")) == []
        assert await store.list_collection(paths.walk_summaries("a")) == []

    async def test_deleted_user_loses_profile(self, wired: tuple[Container, FakeTransport], store: MemoryDocumentStore):
        await store.set(paths.user("u1"), {"displayName": "Sam"})
        await store.set(paths.walk_stats("u1"), {"totalWalksHosted": 4})
        assert (await store.get(paths.friend_profile("u1"))).to_dict()["totalWalksHosted"] == 4

        await store.delete(paths.user("u1"))
        assert not (await store.get(paths.friend_profile("u1"))).exists
