"""Normalisation of the remote status vocabulary.

The remote service reports ``pending``, ``queued``, ``processing``, ``cached``,
``completed`` and ``failed`` in arbitrary letter case. Nothing outside this
module compares raw remote strings.
"""
from __future__ import annotations

from typing import Any

from analysis_client.domain import JobStatus

_COMPLETED_ALIASES = {"completed", "cached"}


def _lower(raw_status: Any) -> str:
    return raw_status.strip().lower() if isinstance(raw_status, str) else ""


def is_cached(raw_status: Any) -> bool:
    """Return ``True`` when a creation response short-circuits to a cached result."""

    return _lower(raw_status) == "cached"


def normalize_status(raw_status: Any, payload: Any | None = None) -> JobStatus:
    """Map a remote status and result payload onto :class:`JobStatus`.

    ``failed`` wins over everything else. A non-empty payload means the job is
    completed whatever the literal status says.
    """

    lowered = _lower(raw_status)
    if lowered == "failed":
        return JobStatus.FAILED
    if lowered in _COMPLETED_ALIASES or payload:
        return JobStatus.COMPLETED
    if lowered == "queued":
        return JobStatus.QUEUED
    return JobStatus.PROCESSING


def advance_status(current: JobStatus, incoming: JobStatus) -> JobStatus:
    """Apply ``incoming`` without ever moving from processing back to queued."""

    if current is JobStatus.PROCESSING and incoming is JobStatus.QUEUED:
        return current
    return incoming
