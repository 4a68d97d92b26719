"""Standalone runner for the document trigger consumer.

Reads change events from the Redis Stream and runs the registered triggers,
and periodically sweeps overdue walks for auto-completion.

Usage: python -m nemshi.workers.trigger_runner
"""

from __future__ import annotations

import asyncio
import logging
import signal

import redis.asyncio as aioredis

from nemshi.config import get_settings
from nemshi.container import close_container, create_container
from nemshi.middleware.logging import setup_logging
from nemshi.triggers.consumer import ChangeEventConsumer
from nemshi.triggers.publisher import RedisChangePublisher

logger = logging.getLogger(__name__)

AUTO_COMPLETE_INTERVAL = 300  # 5 minutes


async def main() -> None:
    """Run the change event consumer and the auto-complete sweeper."""
    settings = get_settings()
    setup_logging(settings)
    container = await create_container(settings)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )

    # Writes made by the triggers themselves (e.g. auto-complete) feed back into the stream
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

    # Handle graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, consumer.stop)

    async def auto_complete_sweeper() -> None:
        """Periodically auto-complete walks past their grace period."""
        while not consumer.running:
            await asyncio.sleep(1)
        while consumer.running:
            try:
                completed = await container.lifecycle.sweep_auto_complete()
                if completed:
                    logger.info("Auto-complete sweeper: completed %d walks", len(completed))
            except Exception:
                logger.exception("Auto-complete sweeper error")
            await asyncio.sleep(AUTO_COMPLETE_INTERVAL)

    logger.info("Starting trigger consumer (consumer=%s)", settings.change_consumer_name)

    try:
        await asyncio.gather(consumer.run(), auto_complete_sweeper())
    finally:
        await redis_client.aclose()
        await close_container(container, settings)
        logger.info("Trigger consumer stopped")


if __name__ == "__main__":
    asyncio.run(main())
