"""Background render tasks keyed by job id.

A render keeps running after every watcher has gone away: watching is
observation only, and only shutdown cancels a task.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import AsyncIterator, Optional
from uuid import UUID, uuid4

import structlog

from styleswap.models.generation_job import Provider
from styleswap.services.generation.base import VideoRequest
from styleswap.services.orchestrator import UNEXPECTED_MESSAGE, RenderOrchestrator, RenderOutcome
from styleswap.services.payments.hold import PaymentHold

logger = structlog.get_logger()

MAX_FINISHED_JOBS = 500


class JobAlreadyRunningError(Exception):
    """A poll loop for this job id is already active."""

    pass


@dataclass
class JobProgress:
    """Latest observable state of one render."""

    job_id: UUID
    percent: int = 0
    message: str = "Queued"
    done: bool = False
    outcome: Optional[RenderOutcome] = None


class JobRunner:
    """Owns render tasks so they outlive the request that started them."""

    def __init__(self, orchestrator: RenderOrchestrator, max_finished: int = MAX_FINISHED_JOBS):
        self.orchestrator = orchestrator
        self.max_finished = max_finished
        self._tasks: dict[UUID, asyncio.Task] = {}
        self._progress: OrderedDict[UUID, JobProgress] = OrderedDict()
        self._watchers: dict[UUID, set[asyncio.Queue]] = {}

    def start(
        self,
        request: VideoRequest,
        hold: PaymentHold,
        provider: Provider = Provider.THIRD_PARTY_VENDOR,
        job_id: Optional[UUID] = None,
    ) -> UUID:
        """Launch a render in the background.

        Returns:
            Job id the render is tracked under

        Raises:
            JobAlreadyRunningError: A render with this id is still running
        """
        job_id = job_id or uuid4()
        if self.is_running(job_id):
            raise JobAlreadyRunningError(f"Job {job_id} is already being polled.")

        self._progress[job_id] = JobProgress(job_id=job_id)
        task = asyncio.create_task(
            self._run(job_id, request, hold, provider), name=f"render-{job_id}"
        )
        self._tasks[job_id] = task
        logger.info("job_runner.started", job_id=str(job_id), provider=provider.value)
        return job_id

    def is_running(self, job_id: UUID) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def running_jobs(self) -> set[UUID]:
        return {job_id for job_id, task in self._tasks.items() if not task.done()}

    def progress(self, job_id: UUID) -> Optional[JobProgress]:
        current = self._progress.get(job_id)
        return replace(current) if current else None

    async def wait(self, job_id: UUID) -> Optional[RenderOutcome]:
        """Wait for a render to finish and return its outcome."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        current = self._progress.get(job_id)
        return current.outcome if current else None

    async def watch(self, job_id: UUID) -> AsyncIterator[JobProgress]:
        """Yield progress snapshots until the render finishes.

        Closing the iterator detaches the watcher without touching the render.
        """
        current = self._progress.get(job_id)
        if current is None:
            return

        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.setdefault(job_id, set()).add(queue)
        try:
            snapshot = replace(current)
            yield snapshot
            while not snapshot.done:
                snapshot = await queue.get()
                yield snapshot
        finally:
            watchers = self._watchers.get(job_id)
            if watchers is not None:
                watchers.discard(queue)
                if not watchers:
                    self._watchers.pop(job_id, None)
            logger.debug("job_runner.watcher_detached", job_id=str(job_id))

    async def shutdown(self) -> None:
        """Cancel running renders; their holds are left for the reconciler."""
        running = [task for task in self._tasks.values() if not task.done()]
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)
        if running:
            logger.info("job_runner.shutdown", cancelled=len(running))

    def _publish(self, job_id: UUID, **changes) -> None:
        current = self._progress.get(job_id)
        if current is None:
            return
        for name, value in changes.items():
            setattr(current, name, value)
        for queue in self._watchers.get(job_id, ()):
            queue.put_nowait(replace(current))

    async def _run(
        self, job_id: UUID, request: VideoRequest, hold: PaymentHold, provider: Provider
    ) -> None:
        def on_progress(percent: int, message: str) -> None:
            self._publish(job_id, percent=percent, message=message)

        try:
            outcome = await self.orchestrator.run_video(
                request, hold, provider=provider, job_id=job_id, on_progress=on_progress
            )
        except asyncio.CancelledError:
            logger.warning("job_runner.cancelled", job_id=str(job_id))
            raise
        except Exception as e:
            # Hold stays authorized; the stale hold reconciler settles it
            logger.error(
                "job_runner.crashed",
                job_id=str(job_id),
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )
            outcome = RenderOutcome(
                succeeded=False,
                job_id=job_id,
                user_message=UNEXPECTED_MESSAGE,
                error_type=type(e).__name__,
            )
        finally:
            self._tasks.pop(job_id, None)

        self._publish(
            job_id,
            percent=100 if outcome.succeeded else self._progress[job_id].percent,
            message="Done" if outcome.succeeded else (outcome.user_message or "Failed"),
            done=True,
            outcome=outcome,
        )
        logger.info("job_runner.finished", job_id=str(job_id), succeeded=outcome.succeeded)
        self._prune()

    def _prune(self) -> None:
        finished = [job_id for job_id, state in self._progress.items() if state.done]
        for job_id in finished[: max(0, len(finished) - self.max_finished)]:
            self._progress.pop(job_id, None)
