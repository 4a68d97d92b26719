"""Document-path trigger registry.

Handlers are registered against path patterns such as ``walks/{walkId}``
or ``users/{uid}/walks/{walkId}`` and an event kind:

- ``written``: any create, update or delete
- ``created`` / ``updated`` / ``deleted``: only that kind of write

Every handler matching an event runs concurrently. A handler that raises
is logged and reported; it does not stop the other handlers for the event.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

from nemshi.store.base import ChangeEvent

logger = structlog.get_logger()

TriggerKind = Literal["written", "created", "updated", "deleted"]
TriggerHandler = Callable[[ChangeEvent, dict[str, str]], Awaitable[Any]]

_PARAM = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """``walks/{walkId}`` -> a regex with one named group per wildcard segment."""
    parts = []
    for segment in pattern.strip("/").split("/"):
        match = _PARAM.match(segment)
        parts.append(f"(?P<{match.group(1)}>[^/]+)" if match else re.escape(segment))
    return re.compile("^" + "/".join(parts) + "$")


@dataclass(frozen=True)
class Trigger:
    name: str
    pattern: str
    kind: TriggerKind
    handler: TriggerHandler
    regex: re.Pattern[str]

    def matches(self, event: ChangeEvent) -> dict[str, str] | None:
        if self.kind != "written" and self.kind != event.kind:
            return None
        match = self.regex.match(event.path)
        return match.groupdict() if match else None


@dataclass
class DispatchReport:
    path: str
    event_id: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class TriggerRegistry:
    """Routes change events to the handlers registered for their path."""

    def __init__(self) -> None:
        self._triggers: list[Trigger] = []

    def __len__(self) -> int:
        return len(self._triggers)

    @property
    def triggers(self) -> tuple[Trigger, ...]:
        return tuple(self._triggers)

    def register(
        self,
        pattern: str,
        kind: TriggerKind,
        handler: TriggerHandler,
        name: str | None = None,
    ) -> Trigger:
        trigger = Trigger(
            name=name or getattr(handler, "__name__", pattern),
            pattern=pattern,
            kind=kind,
            handler=handler,
            regex=compile_pattern(pattern),
        )
        self._triggers.append(trigger)
        return trigger

    async def dispatch(self, event: ChangeEvent) -> DispatchReport:
        report = DispatchReport(path=event.path, event_id=event.event_id)
        matched = [(t, params) for t in self._triggers if (params := t.matches(event)) is not None]
        if not matched:
            return report

        async def run(trigger: Trigger, params: dict[str, str]) -> None:
            try:
                await trigger.handler(event, params)
            except Exception:
                logger.exception(
                    "trigger_handler_failed",
                    trigger=trigger.name,
                    path=event.path,
                    event_id=event.event_id,
                )
                report.failed.append(trigger.name)
            else:
                report.succeeded.append(trigger.name)

        await asyncio.gather(*(run(t, p) for t, p in matched))
        return report

    async def __call__(self, event: ChangeEvent) -> None:
        """Lets the registry be attached directly as a store change listener."""
        await self.dispatch(event)
