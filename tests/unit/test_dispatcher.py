"""Push dispatch, dead-token cleanup and the FCM transport."""

from __future__ import annotations

import json

import httpx

from nemshi.config import Settings
from nemshi.notifications.dispatcher import Notification, NotificationDispatcher
from nemshi.notifications.transport import (
    FcmTransport,
    LogOnlyTransport,
    PushMessage,
    SendResult,
    create_transport,
)
from nemshi.results import ErrorKind
from nemshi.store import MemoryDocumentStore
from nemshi.store import paths

from tests.conftest import FakeTransport

HELLO = Notification(title="Hi", body="There")


async def add_tokens(store: MemoryDocumentStore, uid: str, *tokens: str) -> None:
    for token in tokens:
        await store.set(paths.fcm_token(uid, token), {"token": token})


class TestNotificationDispatcher:
    async def test_no_tokens_is_a_quiet_success(self, store: MemoryDocumentStore):
        transport = FakeTransport()
        result = await NotificationDispatcher(store, transport).send("u1", HELLO)

        assert result.ok
        assert result.sent == 0
        assert transport.messages == []

    async def test_sends_to_every_token_with_string_data(self, store: MemoryDocumentStore):
        await add_tokens(store, "u1", "t1", "t2")
        transport = FakeTransport()

        result = await NotificationDispatcher(store, transport).send(
            "u1", HELLO, {"walkId": "w1", "count": 3, "missing": None}, "walk_confirmation"
        )

        assert result.sent == 2
        tokens, message = transport.messages[0]
        assert tokens == ["t1", "t2"]
        assert message.data == {"walkId": "w1", "count": "3", "missing": ""}
        assert message.tag == "walk_confirmation"

    async def test_dead_tokens_are_retired(self, store: MemoryDocumentStore):
        await add_tokens(store, "u1", "good", "gone", "flaky")
        transport = FakeTransport(dead={"gone": "UNREGISTERED", "flaky": "UNAVAILABLE"})

        result = await NotificationDispatcher(store, transport).send("u1", HELLO)

        assert result.sent == 1
        assert result.failed == 2
        assert result.retired_tokens == ["gone"]
        assert not (await store.get(paths.fcm_token("u1", "gone"))).exists
        assert (await store.get(paths.fcm_token("u1", "flaky"))).exists

    async def test_transport_exception_is_reported(self, store: MemoryDocumentStore):
        await add_tokens(store, "u1", "t1")

        class Exploding(FakeTransport):
            async def send_multicast(self, tokens: list[str], message: PushMessage) -> list[SendResult]:
                raise RuntimeError("boom")

        result = await NotificationDispatcher(store, Exploding()).send("u1", HELLO)

        assert result.error is ErrorKind.DISPATCH
        assert result.failed == 1


def fcm_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestFcmTransport:
    async def test_payload_and_auth(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": "projects/p/messages/1"})

        transport = FcmTransport("proj", "secret", client=fcm_client(handler))
        results = await transport.send_multicast(["t1"], PushMessage("T", "B", {"k": "v"}, tag="badge_earned"))

        assert results == [SendResult(token="t1", success=True)]
        request = seen[0]
        assert request.url == "https://fcm.googleapis.com/v1/projects/proj/messages:send"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)["message"]
        assert body["token"] == "t1"
        assert body["notification"] == {"title": "T", "body": "B"}
        assert body["android"]["notification"]["tag"] == "badge_earned"
        await transport.aclose()

    async def test_error_code_from_details(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                404,
                json={"error": {"status": "NOT_FOUND", "details": [{"errorCode": "UNREGISTERED"}]}},
            )

        transport = FcmTransport("proj", "secret", client=fcm_client(handler))
        [result] = await transport.send_multicast(["t1"], PushMessage("T", "B"))

        assert result.error_code == "UNREGISTERED"
        assert result.token_is_dead

    async def test_non_json_error_uses_http_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        transport = FcmTransport("proj", "secret", client=fcm_client(handler))
        [result] = await transport.send_multicast(["t1"], PushMessage("T", "B"))

        assert result.error_code == "HTTP_503"
        assert not result.token_is_dead

    async def test_network_error_is_not_dead(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = FcmTransport("proj", "secret", client=fcm_client(handler))
        [result] = await transport.send_multicast(["t1"], PushMessage("T", "B"))

        assert result.error_code == "TRANSPORT_ERROR"
        assert not result.token_is_dead


class TestCreateTransport:
    def test_without_credentials_logs_only(self):
        assert isinstance(create_transport(Settings(fcm_project_id="", fcm_access_token="")), LogOnlyTransport)

    async def test_with_credentials_uses_fcm(self):
        transport = create_transport(Settings(fcm_project_id="p", fcm_access_token="t"))
        assert isinstance(transport, FcmTransport)
        await transport.aclose()
