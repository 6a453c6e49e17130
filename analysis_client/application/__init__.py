"""Application services."""

from .bootstrap import AuthBootstrap
from .history import BoundedHistoryStore
from .orchestrator import SubmissionOrchestrator
from .poller import CancellationToken, JobPoller
from .service import (
    AnalysisForm,
    AnalysisService,
    build_analysis_service,
    configure_analysis_service,
    get_analysis_service,
    reset_analysis_state,
)

__all__ = [
    "AnalysisForm",
    "AnalysisService",
    "AuthBootstrap",
    "BoundedHistoryStore",
    "CancellationToken",
    "JobPoller",
    "SubmissionOrchestrator",
    "build_analysis_service",
    "configure_analysis_service",
    "get_analysis_service",
    "reset_analysis_state",
]
