"""pytest fixtures for StyleSwap backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- settings: Test Settings pointing at a per-test SQLite file
- session_factory: Function-scoped async session factory with all tables created
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- no_sleep / fast_poller: Poll loop helpers that never actually wait
- scripted_provider: Video provider replaying scripted poll results
- gateway / razorpay_client / payments: Razorpay API stand-in and the real
  client and coordinator wired to it
- artifact_store: Downloaded renders under tmp_path
"""

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from styleswap.core.config import Settings
from styleswap.core.database import create_tables, setup_db_session
from styleswap.models.generation_job import Provider
from styleswap.services.artifacts import ArtifactStore
from styleswap.services.generation.base import (
    Artifact,
    PollResult,
    TaskHandle,
    VideoProvider,
)
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.payments.razorpay_client import RazorpayClient
from styleswap.services.polling import Poller
from styleswap.uow import create_uow_factory


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Autouse fixture ensures TZ=UTC is set before any test runs.
    """
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'styleswap_test.db'}"


@pytest.fixture
def settings(db_url, tmp_path) -> Settings:
    """Settings for tests: validation skipped, fast polling, fake keys."""
    return Settings(
        APP_ENV="test",
        DATABASE_URL=db_url,
        ARTIFACT_DIR=str(tmp_path / "artifacts"),
        GEMINI_API_KEY="test-gemini-key",
        KLING_ACCESS_KEY="test-access",
        KLING_SECRET_KEY="test-secret",
        RAZORPAY_KEY_ID="rzp_test_key",
        RAZORPAY_KEY_SECRET="rzp_test_secret",
        POLL_INTERVAL_SECONDS=0,
    )


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_url):
    """Provide a session factory for a fresh SQLite database with all tables."""
    factory = setup_db_session(db_url)
    await create_tables(factory)
    yield factory
    await factory.kw["bind"].dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session.

    Each test gets its own database file, so no truncation is needed.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays without waiting."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def fast_poller(no_sleep):
    """Poller factory that never waits between attempts."""

    def _factory(config):
        return Poller(config, sleep=no_sleep)

    return _factory


class ScriptedProvider(VideoProvider):
    """Video provider that replays scripted poll results.

    The last scripted result repeats once the script runs out. Exceptions in
    the script are raised from poll(); an artifact (or exception) given at
    construction replaces what retrieve() hands back.
    """

    provider = Provider.THIRD_PARTY_VENDOR

    def __init__(self, results=None, submit_error=None, task_id="task-123", artifact=None):
        self.results = list(results or [PollResult.pending()])
        self.artifact = artifact
        self.submit_error = submit_error
        self.task_id = task_id
        self.submitted: list = []
        self.poll_calls = 0

    async def submit(self, request, on_status=None):
        self.submitted.append(request)
        if on_status:
            on_status("Waking up AI Engine...")
        if self.submit_error is not None:
            raise self.submit_error
        return TaskHandle(task_id=self.task_id, provider=self.provider)

    async def poll(self, handle):
        self.poll_calls += 1
        item = self.results[min(self.poll_calls, len(self.results)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    async def retrieve(self, handle, result_url):
        if isinstance(self.artifact, Exception):
            raise self.artifact
        return self.artifact or Artifact(url=result_url)


class GatewayRecorder:
    """httpx.MockTransport handler standing in for the Razorpay API."""

    def __init__(self, capture_status=200, refund_status=200, capture_body=None, refund_body=None):
        self.capture_status = capture_status
        self.refund_status = refund_status
        self.capture_body = capture_body
        self.refund_body = refund_body
        self.requests: list[httpx.Request] = []

    def calls(self, action: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{action}")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/capture"):
            body = self.capture_body or {"id": "pay_1", "status": "captured"}
            return httpx.Response(self.capture_status, json=body)
        if request.url.path.endswith("/refund"):
            body = self.refund_body or {"id": "rfnd_1", "status": "processed"}
            return httpx.Response(self.refund_status, json=body)
        return httpx.Response(404, json={"error": {"description": "not found"}})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def scripted_provider():
    """ScriptedProvider class (instantiate per test with a poll script)."""
    return ScriptedProvider


@pytest.fixture
def gateway_recorder():
    """GatewayRecorder class (instantiate per test with failing responses)."""
    return GatewayRecorder


@pytest.fixture
def gateway():
    """Razorpay stand-in that succeeds on capture and refund."""
    return GatewayRecorder()


@pytest.fixture
def razorpay_client(gateway):
    return RazorpayClient("rzp_test_key", "rzp_test_secret", transport=gateway.transport())


@pytest.fixture
def payments(razorpay_client, uow_factory):
    return PaymentCoordinator(razorpay_client, uow_factory)


@pytest.fixture
def artifact_store(tmp_path):
    """Artifact store writing under the test's temporary directory."""
    return ArtifactStore(tmp_path / "artifacts")
