"""Service wiring shared by the HTTP app, the trigger worker and the scripts."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from nemshi.config import Settings
from nemshi.database import close_db, get_session_factory, init_db
from nemshi.gamification.badge_service import BadgeEvaluator
from nemshi.gamification.pipeline import CompletionRecorder
from nemshi.gamification.stats_service import StatsAggregator
from nemshi.notifications.dispatcher import NotificationDispatcher
from nemshi.notifications.transport import BasePushTransport, create_transport
from nemshi.social.friend_profiles import FriendProfileSync
from nemshi.store import DocumentStore, MemoryDocumentStore, SqlDocumentStore
from nemshi.triggers.handlers import build_registry
from nemshi.triggers.registry import TriggerRegistry
from nemshi.walks.lifecycle import WalkLifecycle

logger = structlog.get_logger()


@dataclass
class Container:
    store: DocumentStore
    transport: BasePushTransport
    dispatcher: NotificationDispatcher
    aggregator: StatsAggregator
    evaluator: BadgeEvaluator
    recorder: CompletionRecorder
    profiles: FriendProfileSync
    lifecycle: WalkLifecycle
    registry: TriggerRegistry

    async def aclose(self) -> None:
        await self.transport.aclose()
        await self.store.close()


def build_container(settings: Settings, store: DocumentStore, transport: BasePushTransport) -> Container:
    """Assemble the services around an already-opened store and transport."""
    dispatcher = NotificationDispatcher(store, transport)
    aggregator = StatsAggregator(store)
    evaluator = BadgeEvaluator(store, dispatcher)
    recorder = CompletionRecorder(aggregator, evaluator)
    profiles = FriendProfileSync(store, max_summaries=settings.max_walk_summaries_per_user)
    lifecycle = WalkLifecycle(
        store,
        recorder,
        dispatcher,
        default_planned_minutes=settings.default_planned_duration_minutes,
        grace_minutes=settings.auto_complete_grace_minutes,
    )
    return Container(
        store=store,
        transport=transport,
        dispatcher=dispatcher,
        aggregator=aggregator,
        evaluator=evaluator,
        recorder=recorder,
        profiles=profiles,
        lifecycle=lifecycle,
        registry=build_registry(profiles, lifecycle),
    )


async def open_store(settings: Settings) -> DocumentStore:
    """Open the configured document store backend."""
    if settings.store_backend == "memory":
        return MemoryDocumentStore()
    if settings.store_backend != "sql":
        msg = f"Unknown store backend: {settings.store_backend!r}"
        raise ValueError(msg)
    await init_db(settings.database_url)
    return SqlDocumentStore(get_session_factory())


async def create_container(settings: Settings) -> Container:
    """Open the store and push transport and wire the services.

    With the in-memory backend there is no change stream, so the trigger
    registry listens on the store directly.
    """
    store = await open_store(settings)
    container = build_container(settings, store, create_transport(settings))
    if settings.store_backend == "memory":
        store.add_listener(container.registry)
    logger.info("container_ready", store_backend=settings.store_backend)
    return container


async def close_container(container: Container, settings: Settings) -> None:
    await container.aclose()
    if settings.store_backend == "sql":
        await close_db()


_container: Container | None = None


def set_container(container: Container | None) -> None:
    global _container  # noqa: PLW0603
    _container = container


def get_container() -> Container:
    """Get the process-wide container."""
    if _container is None:
        msg = "Container not initialized. Call set_container() first."
        raise RuntimeError(msg)
    return _container


def get_store() -> DocumentStore:
    """FastAPI dependency: the document store."""
    return get_container().store
