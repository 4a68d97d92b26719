"""Redis Stream consumer for document change events.

Reads the change stream with XREADGROUP in its own consumer group and hands
each event to the trigger registry. A message is acknowledged once its
handlers have run; a malformed message is acknowledged and dropped.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from nemshi.triggers.publisher import decode_event
from nemshi.triggers.registry import TriggerRegistry

logger = logging.getLogger(__name__)


class ChangeEventConsumer:
    """Processes document change events from a Redis Stream."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        registry: TriggerRegistry,
        stream: str = "docs:changes",
        group: str = "nemshi-triggers",
        consumer_name: str = "trigger-worker-1",
    ) -> None:
        self.redis = redis_client
        self.registry = registry
        self.stream = stream
        self.group = group
        self.consumer_name = consumer_name
        self._running = False
        self._processed = 0
        self._errors = 0

    @property
    def running(self) -> bool:
        return self._running

    async def setup_group(self) -> None:
        """Create the consumer group (idempotent)."""
        try:
            await self.redis.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info("Created consumer group %s for %s", self.group, self.stream)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def consume(self, count: int = 100, block_ms: int = 5000) -> int:
        """Read and process a batch of events.

        Returns:
            Number of events processed.
        """
        try:
            events = await self.redis.xreadgroup(
                groupname=self.group,
                consumername=self.consumer_name,
                streams={self.stream: ">"},
                count=count,
                block=block_ms,
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            return 0

        if not events:
            return 0

        processed = 0
        for _stream_name, messages in events:
            for msg_id, fields in messages:
                try:
                    event = decode_event(fields)
                except ValueError as e:
                    self._errors += 1
                    logger.warning("Dropping malformed change event %s: %s", msg_id, e)
                    await self.redis.xack(self.stream, self.group, msg_id)
                    continue

                report = await self.registry.dispatch(event)
                if not report.ok:
                    self._errors += 1
                    logger.warning(
                        "Handlers failed for %s (%s): %s", event.path, msg_id, ", ".join(report.failed)
                    )
                await self.redis.xack(self.stream, self.group, msg_id)
                processed += 1
                self._processed += 1

        return processed

    async def run(self) -> None:
        """Main consumer loop; runs until ``stop`` is called."""
        await self.setup_group()
        self._running = True
        logger.info("Change event consumer started (consumer=%s)", self.consumer_name)

        while self._running:
            try:
                await self.consume()
            except Exception:
                logger.exception("Consumer loop error")
                await asyncio.sleep(1)

    def stop(self) -> None:
        """Signal the consumer to stop."""
        self._running = False
