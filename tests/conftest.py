"""Shared test fixtures."""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator, Callable, Generator, Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient

from nemshi.auth.jwt import reset_keys
from nemshi.config import get_settings
from nemshi.container import Container, build_container, set_container
from nemshi.gamification.badge_service import BadgeEvaluator
from nemshi.gamification.pipeline import CompletionRecorder
from nemshi.gamification.stats_service import StatsAggregator
from nemshi.notifications.dispatcher import DispatchResult, Notification
from nemshi.notifications.transport import BasePushTransport, PushMessage, SendResult
from nemshi.social.friend_profiles import FriendProfileSync
from nemshi.store import MemoryDocumentStore
from nemshi.walks.lifecycle import WalkLifecycle

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; every reading advances by ``step``."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value

    def advance(self, delta: timedelta) -> None:
        self.current += delta


class RecordingSink:
    """Notification sink that records every send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Notification, dict[str, Any], str | None]] = []

    async def send(
        self,
        user_id: str,
        notification: Notification,
        data: Mapping[str, Any] | None = None,
        correlation_tag: str | None = None,
    ) -> DispatchResult:
        self.sent.append((user_id, notification, dict(data or {}), correlation_tag))
        return DispatchResult(user_id=user_id, sent=1)

    def for_user(self, user_id: str) -> list[tuple[str, Notification, dict[str, Any], str | None]]:
        return [s for s in self.sent if s[0] == user_id]


class FakeTransport(BasePushTransport):
    """Push transport that succeeds unless a token is listed as dead."""

    def __init__(self, dead: dict[str, str] | None = None) -> None:
        self.dead = dead or {}
        self.messages: list[tuple[list[str], PushMessage]] = []
        self.closed = False

    async def send_multicast(self, tokens: list[str], message: PushMessage) -> list[SendResult]:
        self.messages.append((list(tokens), message))
        return [
            SendResult(token=t, success=False, error_code=self.dead[t]) if t in self.dead
            else SendResult(token=t, success=True)
            for t in tokens
        ]

    async def aclose(self) -> None:
        self.closed = True


# --- Domain fixtures ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryDocumentStore:
    return MemoryDocumentStore(clock)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def aggregator(store: MemoryDocumentStore) -> StatsAggregator:
    return StatsAggregator(store)


@pytest.fixture
def evaluator(store: MemoryDocumentStore, sink: RecordingSink) -> BadgeEvaluator:
    return BadgeEvaluator(store, sink)


@pytest.fixture
def recorder(aggregator: StatsAggregator, evaluator: BadgeEvaluator) -> CompletionRecorder:
    return CompletionRecorder(aggregator, evaluator)


@pytest.fixture
def profiles(store: MemoryDocumentStore) -> FriendProfileSync:
    return FriendProfileSync(store)


@pytest.fixture
def lifecycle(store: MemoryDocumentStore, recorder: CompletionRecorder, sink: RecordingSink) -> WalkLifecycle:
    return WalkLifecycle(store, recorder, sink)


# --- Settings / auth ---


@pytest.fixture
def settings_env(monkeypatch: pytest.MonkeyPatch) -> Generator[Callable[..., None], None, None]:
    """Set NEMSHI_* environment variables for the duration of a test."""

    def apply(**values: str) -> None:
        for key, value in values.items():
            monkeypatch.setenv(f"NEMSHI_{key.upper()}", value)
        get_settings.cache_clear()

    yield apply
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def rsa_keys(tmp_path_factory: pytest.TempPathFactory) -> tuple[bytes, Path]:
    """RSA private key (PEM) and the path of its public key file."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_path = tmp_path_factory.mktemp("keys") / "jwt_public.pem"
    public_path.write_bytes(
        key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return private_pem, public_path


@pytest.fixture
def make_token(
    rsa_keys: tuple[bytes, Path], settings_env: Callable[..., None]
) -> Generator[Callable[..., str], None, None]:
    """Factory for signed bearer tokens accepted by the app."""
    private_pem, public_path = rsa_keys
    settings_env(jwt_public_key_path=str(public_path), jwt_algorithm="RS256")
    reset_keys()

    def make(sub: str | None = "user-1", expires_in: int = 3600, **claims: Any) -> str:
        payload: dict[str, Any] = {"exp": int(time.time()) + expires_in, **claims}
        if sub is not None:
            payload["sub"] = sub
        return jwt.encode(payload, private_pem, algorithm="RS256")

    yield make
    reset_keys()


# --- HTTP ---


@pytest.fixture
def app_container(store: MemoryDocumentStore, settings_env: Callable[..., None]) -> Generator[Container, None, None]:
    settings_env(store_backend="memory", publish_changes="false")
    container = build_container(get_settings(), store, FakeTransport())
    set_container(container)
    yield container
    set_container(None)


@pytest_asyncio.fixture
async def client(app_container: Container) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client backed by the in-memory store."""
    from nemshi.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
