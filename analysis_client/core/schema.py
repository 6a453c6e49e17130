from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CreateJobResponse(BaseModel):
    """Body of ``POST /api/analysis-requests/`` and its profile variant."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    job_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("requestId", "jobId", "job_id"),
    )
    status: str | None = None
    message: str | None = None
    estimated_wait: str | None = Field(default=None, validation_alias=AliasChoices("estimatedWait", "estimated_wait"))
    queue_position: int | None = Field(default=None, validation_alias=AliasChoices("queuePosition", "queue_position"))


class RemoteJob(BaseModel):
    """Body of ``GET /api/analysis-requests/{id}``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    status: str | None = None
    result: Any | None = None
    profile_result: Any | None = Field(default=None, validation_alias=AliasChoices("profileResult", "profile_result"))
    error_message: str | None = Field(
        default=None,
        validation_alias=AliasChoices("errorMessage", "error_message"),
    )

    @property
    def payload(self) -> Any | None:
        """Result of a single video job, or of a profile job."""

        if self.result:
            return self.result
        if self.profile_result:
            return self.profile_result
        return None


class DashboardData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    num_reqs: int = Field(default=0, validation_alias=AliasChoices("numReqs", "num_reqs"))
    video_analysis_free_quota: int = Field(
        default=0,
        validation_alias=AliasChoices("videoAnalysisFreeQuota", "video_analysis_free_quota"),
    )
    video_analysis_paid_quota: int = Field(
        default=0,
        validation_alias=AliasChoices("videoAnalysisPaidQuota", "video_analysis_paid_quota"),
    )
    reqs: list[RemoteJob] = Field(default_factory=list)
