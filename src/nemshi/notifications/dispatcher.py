"""Per-user push dispatch with dead-token cleanup.

Device tokens live at ``users/{uid}/fcmTokens/{token}``. Sending resolves
the user's tokens, multicasts, and deletes every token the transport
reports as permanently invalid. Dispatch is best effort: failures are
logged and reported in the result, never raised.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from nemshi.notifications.transport import BasePushTransport, PushMessage
from nemshi.results import ErrorKind
from nemshi.store import DocumentStore, StoreError
from nemshi.store import paths

logger = structlog.get_logger()


@dataclass(frozen=True)
class Notification:
    title: str
    body: str


@dataclass(frozen=True)
class DispatchResult:
    user_id: str
    sent: int = 0
    failed: int = 0
    retired_tokens: list[str] = field(default_factory=list)
    error: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class NotificationSink(Protocol):
    """What the badge evaluator and lifecycle handlers need from a dispatcher."""

    async def send(
        self,
        user_id: str,
        notification: Notification,
        data: Mapping[str, Any] | None = None,
        correlation_tag: str | None = None,
    ) -> DispatchResult: ...


def _stringify(data: Mapping[str, Any] | None) -> dict[str, str]:
    """FCM data payloads only carry string values."""
    if not data:
        return {}
    return {str(k): "" if v is None else str(v) for k, v in data.items()}


class NotificationDispatcher:
    """Resolves a user's device tokens and sends through a push transport."""

    def __init__(self, store: DocumentStore, transport: BasePushTransport) -> None:
        self.store = store
        self.transport = transport

    async def _tokens(self, user_id: str) -> list[str]:
        docs = await self.store.list_collection(paths.fcm_tokens(user_id), order_by="id")
        tokens: list[str] = []
        for doc in docs:
            token = doc.to_dict().get("token") or doc.id
            if isinstance(token, str) and token and token not in tokens:
                tokens.append(token)
        return tokens

    async def send(
        self,
        user_id: str,
        notification: Notification,
        data: Mapping[str, Any] | None = None,
        correlation_tag: str | None = None,
    ) -> DispatchResult:
        try:
            tokens = await self._tokens(user_id)
        except StoreError:
            logger.exception("push_token_lookup_failed", user_id=user_id)
            return DispatchResult(user_id=user_id, error=ErrorKind.PERSISTENCE)

        if not tokens:
            logger.info("push_no_tokens", user_id=user_id, tag=correlation_tag)
            return DispatchResult(user_id=user_id)

        message = PushMessage(
            title=notification.title,
            body=notification.body,
            data=_stringify(data),
            tag=correlation_tag,
        )
        try:
            results = await self.transport.send_multicast(tokens, message)
        except Exception:
            logger.exception("push_dispatch_failed", user_id=user_id, tag=correlation_tag)
            return DispatchResult(user_id=user_id, failed=len(tokens), error=ErrorKind.DISPATCH)

        sent = sum(1 for r in results if r.success)
        dead = [r.token for r in results if r.token_is_dead]
        logger.info(
            "push_sent",
            user_id=user_id,
            tag=correlation_tag,
            sent=sent,
            failed=len(results) - sent,
        )

        retired: list[str] = []
        if dead:
            batch = self.store.batch()
            for token in dead:
                batch.delete(paths.fcm_token(user_id, token))
            try:
                await batch.commit()
                retired = dead
                logger.info("push_tokens_retired", user_id=user_id, count=len(dead))
            except StoreError:
                logger.exception("push_token_cleanup_failed", user_id=user_id)
                return DispatchResult(
                    user_id=user_id,
                    sent=sent,
                    failed=len(results) - sent,
                    error=ErrorKind.PERSISTENCE,
                )

        return DispatchResult(
            user_id=user_id,
            sent=sent,
            failed=len(results) - sent,
            retired_tokens=retired,
        )
