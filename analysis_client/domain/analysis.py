"""Domain entities for remote analysis jobs."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Client-side status of a remote job."""

    IDLE = "idle"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.QUEUED, JobStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    """Visible state of the job driven by a poller."""

    status: JobStatus = JobStatus.IDLE
    result: Any | None = None
    error: str | None = None
    job_id: str | None = None
    loading: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "jobId": self.job_id,
            "loading": self.loading,
        }


@dataclass(slots=True)
class SubmissionAttempt:
    """Ephemeral record of one user submission, never persisted."""

    raw_input: str
    instruction: str | None = None
    submitted_at: float = 0.0


class SubmissionOutcome(str, Enum):
    """How the orchestrator disposed of a submission attempt."""

    ACCEPTED = "accepted"
    EMPTY = "empty"
    INVALID = "invalid"
    COOLDOWN = "cooldown"
    IN_FLIGHT = "in_flight"
    REDIRECTING = "redirecting"
    REDIRECT_FAILED = "redirect_failed"
