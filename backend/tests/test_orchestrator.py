"""Render orchestrator tests.

Tests focus on the render/payment contract:
- Success captures exactly once and persists the result
- Every failure refunds exactly once with one user-facing message
- Free renders never reach the gateway
- A failed refund tells the user their money is being looked into
"""

import pytest

from styleswap.models.generation_job import JobStatus, Provider
from styleswap.models.transaction import TransactionStatus
from styleswap.services.exceptions import (
    ConfigurationError,
    ArtifactMissingError,
    ContentPolicyError,
    GenerationTimeout,
    ProviderFailure,
    ProviderUnavailableError,
    SubmissionError,
)
from styleswap.services.generation.base import Artifact, PollResult, VideoRequest
from styleswap.services.orchestrator import (
    ARTIFACT_MISSING_MESSAGE,
    BUSY_MESSAGE,
    CONFIGURATION_MESSAGE,
    CONTENT_MESSAGE,
    REFUND_FAILED_SUFFIX,
    REFUNDED_SUFFIX,
    TIMEOUT_MESSAGE,
    UNEXPECTED_MESSAGE,
    RenderOrchestrator,
    user_message_for,
)
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.payments.razorpay_client import RazorpayClient
from styleswap.services.polling import PollConfig

VIDEO_URL = "https://cdn.example.com/video.mp4"


def make_orchestrator(
    provider, payments, uow_factory, fast_poller, max_attempts=20, artifacts=None
):
    return RenderOrchestrator(
        providers={Provider.THIRD_PARTY_VENDOR: provider},
        payments=payments,
        uow_factory=uow_factory,
        poll_configs={
            Provider.THIRD_PARTY_VENDOR: PollConfig(interval_seconds=0, max_attempts=max_attempts)
        },
        poller_factory=fast_poller,
        artifacts=artifacts,
    )


def make_request(**overrides) -> VideoRequest:
    values = {"start_image": "QUJD", "prompt": "slow zoom", "duration": "10"}
    values.update(overrides)
    return VideoRequest(**values)


async def load_job(uow_factory, job_id):
    async with await uow_factory() as uow:
        return await uow.jobs.get_by_id(job_id)


@pytest.mark.parametrize(
    "error, expected",
    [
        (ConfigurationError("no keys"), CONFIGURATION_MESSAGE),
        (ContentPolicyError("blocked"), CONTENT_MESSAGE),
        (SubmissionError("Server Error (400)"), "Server Error (400). Please try again."),
        (
            SubmissionError("No Task ID received. Please try again."),
            "No Task ID received. Please try again.",
        ),
        (ProviderFailure("x", reason="nsfw content"), "Rendering engine error: nsfw content"),
        (GenerationTimeout("late", attempts=180), TIMEOUT_MESSAGE),
        (ProviderUnavailableError("503"), BUSY_MESSAGE),
        (ValueError("Prompt too long"), "Prompt too long"),
        (RuntimeError("boom"), UNEXPECTED_MESSAGE),
    ],
)
def test_user_message_for(error, expected):
    assert user_message_for(error) == expected


@pytest.mark.asyncio
async def test_success_captures_once(
    scripted_provider, payments, gateway, uow_factory, fast_poller
):
    provider = scripted_provider([PollResult.pending(), PollResult.succeeded(VIDEO_URL)])
    orchestrator = make_orchestrator(provider, payments, uow_factory, fast_poller)
    hold = await payments.authorize("pay_1", 28)
    progress: list[tuple[int, str]] = []

    outcome = await orchestrator.run_video(
        make_request(), hold, on_progress=lambda p, text: progress.append((p, text))
    )

    assert outcome.succeeded
    assert outcome.video_url == VIDEO_URL
    assert outcome.captured
    assert len(gateway.calls("capture")) == 1
    assert gateway.calls("refund") == []
    assert progress[0] == (0, "Waking up AI Engine...")
    assert progress[-1] == (100, "Done")

    job = await load_job(uow_factory, outcome.job_id)
    assert job.status == JobStatus.SUCCEEDED
    assert job.task_id == "task-123"
    assert job.result_url == VIDEO_URL
    assert job.payment_id == "pay_1"
    assert job.poll_attempts == 2


@pytest.mark.asyncio
async def test_provider_failure_refunds_once(
    scripted_provider, payments, gateway, uow_factory, fast_poller
):
    provider = scripted_provider([PollResult.pending(), PollResult.failed("nsfw content")])
    orchestrator = make_orchestrator(provider, payments, uow_factory, fast_poller)
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert not outcome.succeeded
    assert outcome.refunded
    assert outcome.user_message == f"Rendering engine error: nsfw content {REFUNDED_SUFFIX}"
    assert len(gateway.calls("refund")) == 1
    assert gateway.calls("capture") == []

    job = await load_job(uow_factory, outcome.job_id)
    assert job.status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_missing_artifact_refunds(
    scripted_provider, payments, gateway, uow_factory, fast_poller
):
    provider = scripted_provider([PollResult.succeeded(None)])
    orchestrator = make_orchestrator(provider, payments, uow_factory, fast_poller)
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert outcome.error_type == "ArtifactMissingError"
    assert outcome.user_message.startswith(ARTIFACT_MISSING_MESSAGE)
    assert provider.poll_calls == 12
    assert len(gateway.calls("refund")) == 1


@pytest.mark.asyncio
async def test_timeout_marks_job_timed_out(scripted_provider, payments, uow_factory, fast_poller):
    provider = scripted_provider([PollResult.pending()])
    orchestrator = make_orchestrator(provider, payments, uow_factory, fast_poller, max_attempts=4)
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert outcome.refunded
    job = await load_job(uow_factory, outcome.job_id)
    assert job.status == JobStatus.TIMED_OUT
    assert job.poll_attempts == 4


@pytest.mark.asyncio
async def test_submission_error_fails_before_polling(
    scripted_provider, payments, gateway, uow_factory, fast_poller
):
    provider = scripted_provider(submit_error=SubmissionError("Server Error (500)"))
    orchestrator = make_orchestrator(provider, payments, uow_factory, fast_poller)
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert provider.poll_calls == 0
    assert outcome.user_message.startswith("Server Error (500). Please try again.")
    job = await load_job(uow_factory, outcome.job_id)
    assert job.status == JobStatus.FAILED
    assert job.task_id is None


@pytest.mark.asyncio
async def test_free_render_never_touches_gateway(
    scripted_provider, payments, gateway, uow_factory, fast_poller
):
    orchestrator = make_orchestrator(
        scripted_provider([PollResult.failed("engine crashed")]), payments, uow_factory, fast_poller
    )
    hold = await payments.authorize(None, 0)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert outcome.user_message == "Rendering engine error: engine crashed"
    assert not outcome.refunded
    assert gateway.requests == []
    job = await load_job(uow_factory, outcome.job_id)
    assert job.payment_id is None


@pytest.mark.asyncio
async def test_refund_failure_is_reported(
    scripted_provider, gateway_recorder, uow_factory, fast_poller
):
    gateway = gateway_recorder(refund_status=500)
    payments = PaymentCoordinator(
        RazorpayClient("k", "s", transport=gateway.transport()), uow_factory
    )
    orchestrator = make_orchestrator(
        scripted_provider([PollResult.failed("engine crashed")]), payments, uow_factory, fast_poller
    )
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert outcome.refund_failed
    assert outcome.user_message.endswith(REFUND_FAILED_SUFFIX)
    async with await uow_factory() as uow:
        record = await uow.transactions.get_by_payment_id("pay_1")
    assert record.status == TransactionStatus.REFUND_REQUESTED


@pytest.mark.asyncio
async def test_capture_failure_still_delivers_video(
    scripted_provider, gateway_recorder, uow_factory, fast_poller
):
    gateway = gateway_recorder(capture_status=500)
    payments = PaymentCoordinator(
        RazorpayClient("k", "s", transport=gateway.transport()), uow_factory
    )
    orchestrator = make_orchestrator(
        scripted_provider([PollResult.succeeded(VIDEO_URL)]), payments, uow_factory, fast_poller
    )
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert outcome.succeeded
    assert outcome.video_url == VIDEO_URL
    assert not outcome.captured
    assert gateway.calls("refund") == []


@pytest.mark.asyncio
async def test_unconfigured_provider_refunds(payments, gateway, uow_factory, fast_poller):
    orchestrator = RenderOrchestrator(
        providers={},
        payments=payments,
        uow_factory=uow_factory,
        poll_configs={},
        poller_factory=fast_poller,
    )
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert outcome.user_message == f"{CONFIGURATION_MESSAGE} {REFUNDED_SUFFIX}"
    assert len(gateway.calls("refund")) == 1


@pytest.mark.asyncio
async def test_overlong_prompt_is_rejected(
    scripted_provider, payments, uow_factory, fast_poller
):
    provider = scripted_provider()
    orchestrator = make_orchestrator(provider, payments, uow_factory, fast_poller)
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(prompt="x" * 1001), hold)

    assert outcome.error_type == "ValueError"
    assert provider.submitted == []
    assert outcome.refunded


@pytest.mark.asyncio
async def test_downloaded_artifact_is_stored_before_capture(
    scripted_provider, payments, gateway, uow_factory, fast_poller, artifact_store
):
    provider = scripted_provider(
        [PollResult.succeeded("https://files.example.com/abc:download?alt=media")],
        artifact=Artifact(content=b"MP4DATA"),
    )
    orchestrator = make_orchestrator(
        provider, payments, uow_factory, fast_poller, artifacts=artifact_store
    )
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert outcome.succeeded
    assert outcome.video_url == f"/api/videos/{outcome.job_id}/content"
    assert artifact_store.path_for(outcome.job_id).read_bytes() == b"MP4DATA"
    assert len(gateway.calls("capture")) == 1


@pytest.mark.asyncio
async def test_failed_download_refunds_instead_of_capturing(
    scripted_provider, payments, gateway, uow_factory, fast_poller, artifact_store
):
    provider = scripted_provider(
        [PollResult.succeeded(VIDEO_URL)],
        artifact=ArtifactMissingError("Could not download video."),
    )
    orchestrator = make_orchestrator(
        provider, payments, uow_factory, fast_poller, artifacts=artifact_store
    )
    hold = await payments.authorize("pay_1", 28)

    outcome = await orchestrator.run_video(make_request(), hold)

    assert not outcome.succeeded
    assert outcome.user_message == f"{ARTIFACT_MISSING_MESSAGE} {REFUNDED_SUFFIX}"
    assert gateway.calls("capture") == []
    assert len(gateway.calls("refund")) == 1
    job = await load_job(uow_factory, outcome.job_id)
    assert job.status == JobStatus.FAILED


class FakeStyler:
    def __init__(self, error=None):
        self.error = error

    async def generate_style(self, image_b64, prompt, refinement=None):
        if self.error:
            raise self.error
        return "data:image/png;base64,UE5H"


@pytest.mark.asyncio
async def test_run_style(payments, uow_factory):
    orchestrator = RenderOrchestrator({}, payments, uow_factory, {}, style_provider=FakeStyler())

    outcome = await orchestrator.run_style("QUJD", "anime")

    assert outcome.succeeded
    assert outcome.image_url == "data:image/png;base64,UE5H"
    job = await load_job(uow_factory, outcome.job_id)
    assert job.status == JobStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_run_style_failure_message(payments, uow_factory):
    styler = FakeStyler(error=ContentPolicyError("no image"))
    orchestrator = RenderOrchestrator({}, payments, uow_factory, {}, style_provider=styler)

    outcome = await orchestrator.run_style("QUJD", "anime")

    assert not outcome.succeeded
    assert outcome.user_message == CONTENT_MESSAGE
    job = await load_job(uow_factory, outcome.job_id)
    assert job.status == JobStatus.FAILED
