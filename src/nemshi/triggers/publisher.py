"""Publishes document change events to a Redis Stream.

Stream entry fields:

- ``event_id``: unique id of the write
- ``path``: document path
- ``kind``: created | updated | deleted
- ``data``: JSON ``{"before": {...} | null, "after": {...} | null}``
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from nemshi.store.base import ChangeEvent

logger = logging.getLogger(__name__)


def encode_event(event: ChangeEvent) -> dict[str, str]:
    return {
        "event_id": event.event_id,
        "path": event.path,
        "kind": event.kind,
        "data": json.dumps({"before": event.before, "after": event.after}),
    }


def decode_event(fields: dict[str, Any]) -> ChangeEvent:
    """Inverse of ``encode_event``. Raises ValueError on a malformed entry."""
    path = fields.get("path")
    if not isinstance(path, str) or not path:
        msg = "change event has no path"
        raise ValueError(msg)
    try:
        payload = json.loads(fields.get("data") or "{}")
    except json.JSONDecodeError as e:
        msg = f"change event data is not JSON: {e}"
        raise ValueError(msg) from e
    if not isinstance(payload, dict):
        msg = "change event data is not an object"
        raise ValueError(msg)

    before = payload.get("before")
    after = payload.get("after")
    kwargs: dict[str, Any] = {}
    if fields.get("event_id"):
        kwargs["event_id"] = str(fields["event_id"])
    return ChangeEvent(
        path=path,
        before=before if isinstance(before, dict) else None,
        after=after if isinstance(after, dict) else None,
        **kwargs,
    )


class RedisChangePublisher:
    """Store change listener that appends every event to the change stream."""

    def __init__(self, redis_client: aioredis.Redis, stream: str, maxlen: int = 100_000) -> None:
        self.redis = redis_client
        self.stream = stream
        self.maxlen = maxlen

    async def __call__(self, event: ChangeEvent) -> None:
        try:
            await self.redis.xadd(self.stream, encode_event(event), maxlen=self.maxlen, approximate=True)
        except aioredis.RedisError:
            logger.error(
                "Failed to publish %s %s (event %s) to %s", event.kind, event.path, event.event_id, self.stream
            )
            raise
        logger.debug("Published %s %s to %s", event.kind, event.path, self.stream)
