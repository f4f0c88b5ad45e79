"""GenerationJob entity - one render request tracked from submission to terminal outcome."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class JobKind(str, Enum):
    """What the job produces."""

    STYLE_TRANSFORM = "style-transform"
    VIDEO_FIRST_LAST_FRAME = "video-first-frame-last-frame"
    VIDEO_SINGLE_FRAME = "video-single-frame"


class Provider(str, Enum):
    """Which generation backend runs the job."""

    FIRST_PARTY = "first-party"
    THIRD_PARTY_VENDOR = "third-party-vendor"


class JobStatus(str, Enum):
    """Job lifecycle status."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed-out"


TERMINAL_STATUSES = (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.TIMED_OUT)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job or hold state transition."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class GenerationJob(SQLModel, table=True):
    """GenerationJob tracks a provider task and its outcome."""

    __tablename__ = "generation_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    task_id: Optional[str] = Field(default=None, max_length=255, index=True)
    kind: JobKind
    provider: Provider
    prompt: str = Field(default="", max_length=4000)
    refinement: Optional[str] = Field(default=None, max_length=1000)
    duration: Optional[str] = Field(default=None, max_length=4)
    status: JobStatus = Field(default=JobStatus.SUBMITTED, index=True)
    result_url: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    payment_id: Optional[str] = Field(default=None, max_length=255, index=True)
    poll_attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_polling(self, task_id: str) -> None:
        """Transition from submitted to polling once the provider returned a task id.

        Raises:
            InvalidStateTransition: If current status is not submitted
            ValueError: If task_id is empty
        """
        if self.status != JobStatus.SUBMITTED:
            raise InvalidStateTransition(
                f"Cannot mark polling from {self.status.value}. Job must be in submitted state."
            )
        if not task_id:
            raise ValueError("task_id is required")
        self.task_id = task_id
        self.status = JobStatus.POLLING

    def mark_succeeded(self, result_url: str) -> None:
        """Transition to succeeded with the retrievable result location.

        Synchronous style jobs go straight from submitted to succeeded.

        Raises:
            InvalidStateTransition: If the job is already terminal
            ValueError: If result_url is empty
        """
        self._ensure_not_terminal("succeeded")
        if not result_url:
            raise ValueError("result_url is required")
        self.result_url = result_url
        self.status = JobStatus.SUCCEEDED
        self.completed_at = _utcnow()

    def mark_failed(self, error_message: str) -> None:
        """Transition from any non-terminal state to failed."""
        self._ensure_not_terminal("failed")
        self.error_message = error_message[:1000]
        self.status = JobStatus.FAILED
        self.completed_at = _utcnow()

    def mark_timed_out(self, error_message: str) -> None:
        """Transition from any non-terminal state to timed-out."""
        self._ensure_not_terminal("timed-out")
        self.error_message = error_message[:1000]
        self.status = JobStatus.TIMED_OUT
        self.completed_at = _utcnow()

    def _ensure_not_terminal(self, target: str) -> None:
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark {target} from terminal state {self.status.value}."
            )
