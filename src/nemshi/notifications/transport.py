"""
Push transport with provider abstraction.

Supports FCM HTTP v1 (default) and a log-only transport for environments
without push credentials. Provider is selected via configuration.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from nemshi.config import Settings

logger = structlog.get_logger()

# FCM v1 error codes that mean the registration token will never work again.
DEAD_TOKEN_ERRORS = frozenset({"UNREGISTERED", "INVALID_ARGUMENT", "NOT_FOUND", "SENDER_ID_MISMATCH"})


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    tag: str | None = None


@dataclass(frozen=True)
class SendResult:
    """Delivery outcome for one device token."""

    token: str
    success: bool
    error_code: str | None = None

    @property
    def token_is_dead(self) -> bool:
        return not self.success and self.error_code in DEAD_TOKEN_ERRORS


class BasePushTransport(ABC):
    """Abstract base class for push delivery providers."""

    @abstractmethod
    async def send_multicast(self, tokens: list[str], message: PushMessage) -> list[SendResult]:
        """Send one message to many tokens. Returns one result per token, in order."""
        ...

    async def aclose(self) -> None:  # noqa: B027
        """Release network resources."""


class LogOnlyTransport(BasePushTransport):
    """Logs instead of delivering (no push credentials configured)."""

    async def send_multicast(self, tokens: list[str], message: PushMessage) -> list[SendResult]:
        logger.info("push_skipped_no_transport", tokens=len(tokens), title=message.title, tag=message.tag)
        return [SendResult(token=t, success=True) for t in tokens]


class FcmTransport(BasePushTransport):
    """Send via the FCM HTTP v1 API, one request per token."""

    def __init__(
        self,
        project_id: str,
        access_token: str,
        endpoint: str = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = endpoint.format(project_id=project_id)
        self.access_token = access_token
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _payload(self, token: str, message: PushMessage) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "token": token,
            "notification": {"title": message.title, "body": message.body},
            "data": message.data,
        }
        if message.tag:
            payload["android"] = {"notification": {"tag": message.tag}}
            payload["apns"] = {"payload": {"aps": {"thread-id": message.tag}}}
        return {"message": payload}

    async def _send_one(self, token: str, message: PushMessage) -> SendResult:
        try:
            response = await self._client.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                },
                json=self._payload(token, message),
            )
        except httpx.HTTPError as exc:
            logger.warning("push_send_failed", error=str(exc))
            return SendResult(token=token, success=False, error_code="TRANSPORT_ERROR")

        if response.is_success:
            return SendResult(token=token, success=True)
        return SendResult(token=token, success=False, error_code=_error_code(response))

    async def send_multicast(self, tokens: list[str], message: PushMessage) -> list[SendResult]:
        return list(await asyncio.gather(*(self._send_one(t, message) for t in tokens)))

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_code(response: httpx.Response) -> str:
    """Extract the FCM error code from an error response body.

    FCM v1 reports e.g. ``UNREGISTERED`` under ``error.details[].errorCode``
    and the canonical status under ``error.status``.
    """
    try:
        error = response.json().get("error", {})
    except ValueError:
        return f"HTTP_{response.status_code}"
    for detail in error.get("details") or []:
        code = detail.get("errorCode")
        if code:
            return str(code)
    return str(error.get("status") or f"HTTP_{response.status_code}")


def create_transport(settings: Settings) -> BasePushTransport:
    """Create the push transport based on configuration."""
    if settings.fcm_project_id and settings.fcm_access_token:
        return FcmTransport(
            project_id=settings.fcm_project_id,
            access_token=settings.fcm_access_token,
            endpoint=settings.fcm_endpoint,
            timeout=settings.fcm_timeout_seconds,
        )
    logger.warning("push_transport_unconfigured")
    return LogOnlyTransport()
