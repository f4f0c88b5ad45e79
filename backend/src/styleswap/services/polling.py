"""Poll loop that drives a submitted task to a terminal state.

Each attempt sleeps one interval and then issues exactly one status query.
Transient errors on a single attempt are logged and the loop moves on;
explicit failure, an exhausted artifact grace period and an exhausted attempt
budget end the loop with distinct exceptions.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from styleswap.services.exceptions import (
    ArtifactMissingError,
    GenerationTimeout,
    ProviderFailure,
    TransientError,
)
from styleswap.services.generation.base import PollState, TaskHandle, VideoProvider

logger = structlog.get_logger()

ProgressCallback = Callable[[int, str], None]


@dataclass
class PollConfig:
    """Poll loop limits.

    Attributes:
        interval_seconds: Sleep before every status query
        max_attempts: Hard attempt budget (180 x 10s = 30 minutes)
        artifact_grace_attempts: Consecutive "succeeded but no result" answers tolerated
    """

    interval_seconds: float = 10
    max_attempts: int = 180
    artifact_grace_attempts: int = 12


@dataclass
class PollOutcome:
    result_url: str
    attempts: int


class Poller:
    """Polls one task until success, failure or timeout."""

    def __init__(
        self,
        config: PollConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._sleep = sleep

    async def run(
        self,
        provider: VideoProvider,
        handle: TaskHandle,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PollOutcome:
        """Poll until the task reaches a terminal state.

        Args:
            provider: Backend that owns the task
            handle: Task handle returned by submit
            on_progress: Receives (percent, status text); percent stays below 100

        Returns:
            Result location and number of attempts used

        Raises:
            ProviderFailure: Provider reported failure (stops immediately)
            ArtifactMissingError: Succeeded without a result for the whole grace period
            GenerationTimeout: Attempt budget exhausted
        """
        log = logger.bind(task_id=handle.task_id, provider=handle.provider.value)
        missing_artifact_count = 0

        for attempt in range(1, self.config.max_attempts + 1):
            progress = provider.progress_for(handle, attempt)
            if on_progress:
                on_progress(progress, f"Rendering: {progress}%")

            await self._sleep(self.config.interval_seconds)

            try:
                result = await provider.poll(handle)
            except TransientError as e:
                log.warning(
                    "job.poll.transient_error",
                    attempt=attempt,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                continue

            if result.state == PollState.FAILED:
                reason = result.reason or "Rendering engine error."
                log.warning("job.poll.failed", attempt=attempt, reason=reason)
                raise ProviderFailure(f"Render failed: {reason}", reason=reason)

            if result.state == PollState.SUCCEEDED:
                if result.result_url:
                    log.info("job.poll.succeeded", attempt=attempt)
                    return PollOutcome(result_url=result.result_url, attempts=attempt)

                missing_artifact_count += 1
                log.warning(
                    "job.poll.succeeded_without_artifact",
                    attempt=attempt,
                    count=missing_artifact_count,
                )
                if on_progress:
                    on_progress(progress, "Finalizing files...")
                if missing_artifact_count >= self.config.artifact_grace_attempts:
                    raise ArtifactMissingError(
                        "Provider reported success but did not provide the video link "
                        f"after {missing_artifact_count} attempts."
                    )
                continue

            missing_artifact_count = 0

        log.error("job.poll.timed_out", attempts=self.config.max_attempts)
        minutes = self.config.max_attempts * self.config.interval_seconds / 60
        raise GenerationTimeout(
            f"Render process timed out after {minutes:g} minutes.",
            attempts=self.config.max_attempts,
        )
