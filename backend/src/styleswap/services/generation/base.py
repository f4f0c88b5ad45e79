"""Provider abstraction shared by every asynchronous video backend.

Each backend implements submit (request -> task handle) and poll
(task handle -> pending | succeeded(result) | failed(reason)); the Poller and
the orchestrator only ever talk to this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from styleswap.models.generation_job import JobKind, Provider

StatusCallback = Callable[[str], None]


class PollState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PollResult:
    """Outcome of one status query.

    A SUCCEEDED result may still lack result_url; the Poller treats that as
    pending for a bounded grace period.
    """

    state: PollState
    result_url: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def pending(cls) -> "PollResult":
        return cls(PollState.PENDING)

    @classmethod
    def succeeded(cls, result_url: Optional[str]) -> "PollResult":
        return cls(PollState.SUCCEEDED, result_url=result_url or None)

    @classmethod
    def failed(cls, reason: str) -> "PollResult":
        return cls(PollState.FAILED, reason=reason)


@dataclass
class TaskHandle:
    """Pollable reference to a submitted job.

    Attributes:
        task_id: Provider task / operation identifier (never empty)
        provider: Backend that owns the task
        context: Provider-specific state needed to poll (operation object, credential)
    """

    task_id: str
    provider: Provider
    context: Any = field(default=None, repr=False)


@dataclass
class Artifact:
    """A finished render: a public URL, or bytes the backend must serve itself."""

    url: Optional[str] = None
    content: Optional[bytes] = field(default=None, repr=False)
    media_type: str = "video/mp4"


@dataclass
class VideoRequest:
    """User inputs for a video render.

    Images are base64 strings, with or without a data-URL prefix.
    """

    start_image: str
    prompt: str
    end_image: Optional[str] = None
    refinement: Optional[str] = None
    duration: str = "5"
    aspect_ratio: str = "9:16"
    mode: str = "std"
    negative_prompt: Optional[str] = None
    fast: bool = False
    pre_styled_keyframe: Optional[str] = None

    @property
    def kind(self) -> JobKind:
        if self.end_image:
            return JobKind.VIDEO_FIRST_LAST_FRAME
        return JobKind.VIDEO_SINGLE_FRAME


def strip_data_url(image: str) -> str:
    """Return the raw base64 payload of a data URL (or the input unchanged)."""
    return image.split(",", 1)[1] if "," in image else image


class VideoProvider(ABC):
    """Asynchronous video generation backend."""

    provider: Provider
    # Attempts that map to 100% progress; progress is capped at 99 until done
    progress_span_attempts: float = 150

    @abstractmethod
    async def submit(
        self, request: VideoRequest, on_status: Optional[StatusCallback] = None
    ) -> TaskHandle:
        """Submit a render and return its task handle.

        Raises:
            ConfigurationError: Credentials missing
            SubmissionError: Provider rejected the request or returned no task id
            TransientError: Network-level failure
        """

    @abstractmethod
    async def poll(self, handle: TaskHandle) -> PollResult:
        """Query task status once.

        Raises:
            TransientError: Network failure or malformed response (caller retries)
        """

    async def retrieve(self, handle: TaskHandle, result_url: str) -> Artifact:
        """Make the finished artifact deliverable.

        The default hands out the provider's own URL. Providers whose URLs need
        a secret download the bytes instead.

        Raises:
            ArtifactMissingError: The artifact could not be fetched
        """
        return Artifact(url=result_url)

    def progress_for(self, handle: TaskHandle, attempt: int) -> int:
        """Coarse progress percentage for a pending attempt, never 100."""
        return min(int(attempt / self.progress_span_attempts * 100), 99)
