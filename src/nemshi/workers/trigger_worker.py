"""arq worker for the document trigger consumer.

Runs as a separate process, reading change events from the Redis Stream
and sweeping overdue walks every five minutes.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq.connections import RedisSettings
from arq.cron import cron

from nemshi.config import get_settings
from nemshi.container import Container, close_container, create_container
from nemshi.middleware.logging import setup_logging
from nemshi.triggers.consumer import ChangeEventConsumer
from nemshi.triggers.publisher import RedisChangePublisher

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the services and the consumer on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    container = await create_container(settings)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    container.store.add_listener(
        RedisChangePublisher(redis_client, settings.change_stream, settings.change_stream_maxlen)
    )

    consumer = ChangeEventConsumer(
        redis_client=redis_client,
        registry=container.registry,
        stream=settings.change_stream,
        group=settings.change_consumer_group,
        consumer_name=settings.change_consumer_name,
    )
    await consumer.setup_group()

    ctx["redis_client"] = redis_client
    ctx["container"] = container
    ctx["consumer"] = consumer

    # One long-running consume job per worker; the fixed id makes re-enqueueing a no-op
    await ctx["redis"].enqueue_job("consume_changes", _job_id=f"consume_changes:{settings.change_consumer_name}")
    logger.info("Trigger consumer started (consumer=%s)", settings.change_consumer_name)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    consumer: ChangeEventConsumer | None = ctx.get("consumer")
    if consumer:
        consumer.stop()

    redis_client: aioredis.Redis | None = ctx.get("redis_client")
    if redis_client:
        await redis_client.aclose()

    container: Container | None = ctx.get("container")
    if container:
        await close_container(container, get_settings())

    logger.info("Trigger consumer shut down")


async def consume_changes(ctx: dict) -> None:  # type: ignore[type-arg]
    """Main consumer task; runs until cancelled."""
    consumer: ChangeEventConsumer = ctx["consumer"]
    await consumer.run()


async def auto_complete_walks(ctx: dict) -> int:  # type: ignore[type-arg]
    """Periodic task to auto-complete walks past their grace period."""
    container: Container = ctx["container"]
    completed = await container.lifecycle.sweep_auto_complete()
    if completed:
        logger.info("Auto-completed %d walks", len(completed))
    return len(completed)


class WorkerSettings:
    """arq worker settings for the trigger consumer."""

    functions = [consume_changes, auto_complete_walks]
    cron_jobs = [
        cron(auto_complete_walks, minute=set(range(0, 60, 5)), run_at_startup=False),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 4
    job_timeout = 0  # consume_changes runs forever
    allow_abort_jobs = True
