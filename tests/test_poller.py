from __future__ import annotations

import asyncio
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from analysis_client.application.poller import (
    FAILED_MESSAGE,
    MISSING_JOB_ID_MESSAGE,
    TIMEOUT_MESSAGE,
    JobPoller,
)
from analysis_client.domain import ApiHttpError, JobStatus, MissingJobIdError


class FakeRemote:
    """Scripted creation and status endpoints."""

    def __init__(self, create_response, polls=None):
        self.create_response = create_response
        self.polls = list(polls or [])
        self.created: list[tuple[str, str | None]] = []
        self.fetched: list[str] = []

    async def create(self, value, instruction):
        self.created.append((value, instruction))
        if isinstance(self.create_response, Exception):
            raise self.create_response
        return self.create_response

    async def get(self, job_id):
        self.fetched.append(job_id)
        response = self.polls.pop(0) if len(self.polls) > 1 else self.polls[0]
        if isinstance(response, Exception):
            raise response
        return response


def _poller(remote: FakeRemote, **kwargs) -> JobPoller:
    return JobPoller(remote.create, remote.get, poll_interval=0, **kwargs)


@pytest.mark.asyncio
async def test_happy_path_reaches_completed():
    remote = FakeRemote(
        {"jobId": "abc", "status": "queued"},
        [{"status": "processing"}, {"status": "completed", "result": {"text": "ok"}}],
    )
    poller = _poller(remote)
    seen: list[JobStatus] = []
    poller.subscribe(lambda snapshot: seen.append(snapshot.status))

    response = await poller.submit("https://example.com/v/1", "summarise")

    assert response is not None and response.job_id == "abc"
    assert remote.created == [("https://example.com/v/1", "summarise")]
    assert poller.status is JobStatus.COMPLETED
    assert poller.result == {"text": "ok"}
    assert poller.error is None
    assert poller.loading is False
    assert seen == [JobStatus.IDLE, JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETED]
    assert poller.task is None


@pytest.mark.asyncio
async def test_cached_creation_fetches_once_without_polling():
    remote = FakeRemote(
        {"requestId": "cached-1", "status": "CACHED"},
        [{"id": "cached-1", "status": "completed", "result": {"text": "from cache"}}],
    )
    poller = _poller(remote)

    await poller.submit("https://example.com/v/2")

    assert remote.fetched == ["cached-1"]
    assert poller.status is JobStatus.COMPLETED
    assert poller.result == {"text": "from cache"}
    assert poller.job_id == "cached-1"


@pytest.mark.asyncio
async def test_profile_result_counts_as_payload():
    remote = FakeRemote({"requestId": "p-1"}, [{"status": "processing", "profileResult": {"followers": 10}}])
    poller = _poller(remote)

    await poller.submit("creator")

    assert poller.status is JobStatus.COMPLETED
    assert poller.result == {"followers": 10}


@pytest.mark.asyncio
async def test_remote_failure_uses_remote_message_or_default():
    remote = FakeRemote({"jobId": "f-1"}, [{"status": "failed", "errorMessage": "Video is private"}])
    poller = _poller(remote)
    await poller.submit("x")
    assert poller.status is JobStatus.FAILED
    assert poller.error == "Video is private"
    assert poller.result is None

    remote = FakeRemote({"jobId": "f-2"}, [{"status": "Failed"}])
    poller = _poller(remote)
    await poller.submit("x")
    assert poller.error == FAILED_MESSAGE


@pytest.mark.asyncio
async def test_timeout_after_max_attempts():
    remote = FakeRemote({"jobId": "slow"}, [{"status": "processing"}])
    poller = _poller(remote)

    await poller.submit("x")

    assert len(remote.fetched) == 150
    assert poller.status is JobStatus.FAILED
    assert poller.error == TIMEOUT_MESSAGE
    assert poller.loading is False


@pytest.mark.asyncio
async def test_status_never_regresses_to_queued():
    remote = FakeRemote(
        {"jobId": "j"},
        [{"status": "processing"}, {"status": "queued"}, {"status": "completed", "result": "done"}],
    )
    poller = _poller(remote)
    seen: list[JobStatus] = []
    poller.subscribe(lambda snapshot: seen.append(snapshot.status))

    await poller.submit("x")

    processing_at = seen.index(JobStatus.PROCESSING)
    assert JobStatus.QUEUED not in seen[processing_at:]
    assert seen[-1] is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_missing_job_id_fails_and_raises():
    remote = FakeRemote({"status": "queued", "message": "accepted"})
    poller = _poller(remote)

    with pytest.raises(MissingJobIdError):
        await poller.submit("x")

    assert poller.status is JobStatus.FAILED
    assert poller.error == MISSING_JOB_ID_MESSAGE
    assert remote.fetched == []


@pytest.mark.asyncio
async def test_creation_error_is_exposed_as_state():
    remote = FakeRemote(ApiHttpError("Monthly quota reached", 403, {"error": "Monthly quota reached"}))
    poller = _poller(remote)

    assert await poller.submit("x") is None
    assert poller.status is JobStatus.FAILED
    assert poller.error == "Monthly quota reached"
    assert poller.loading is False


@pytest.mark.asyncio
async def test_poll_error_is_terminal():
    remote = FakeRemote({"jobId": "boom"}, [ApiHttpError("Server exploded", 500)])
    poller = _poller(remote)

    await poller.submit("x")

    assert remote.fetched == ["boom"]
    assert poller.status is JobStatus.FAILED
    assert poller.error == "Server exploded"


@pytest.mark.asyncio
async def test_cancel_during_fetch_leaves_state_untouched():
    entered = asyncio.Event()
    release = asyncio.Event()

    async def create(value, instruction):
        return {"jobId": "inflight"}

    async def get(job_id):
        entered.set()
        await release.wait()
        return {"status": "completed", "result": {"late": True}}

    poller = JobPoller(create, get, poll_interval=0)
    task = poller.start("x")
    await entered.wait()

    poller.cancel()
    release.set()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert poller.status is JobStatus.QUEUED
    assert poller.result is None
    assert poller.task is None
    poller.cancel()


@pytest.mark.asyncio
async def test_submit_returns_none_when_cancelled():
    entered = asyncio.Event()

    async def create(value, instruction):
        entered.set()
        await asyncio.Event().wait()

    poller = JobPoller(create, lambda job_id: None, poll_interval=0)
    pending = asyncio.create_task(poller.submit("x"))
    await entered.wait()

    poller.cancel()

    assert await pending is None


@pytest.mark.asyncio
async def test_resubmission_discards_late_results():
    entered = {"job-1": asyncio.Event(), "job-2": asyncio.Event()}
    gates = {"job-1": asyncio.Event(), "job-2": asyncio.Event()}
    ids = iter(["job-1", "job-2"])

    async def create(value, instruction):
        return {"jobId": next(ids)}

    async def get(job_id):
        entered[job_id].set()
        await gates[job_id].wait()
        return {"status": "completed", "result": {"from": job_id}}

    poller = JobPoller(create, get, poll_interval=0)
    snapshots = []
    poller.subscribe(snapshots.append)

    first = poller.start("a")
    await entered["job-1"].wait()
    second = poller.start("b")
    gates["job-1"].set()
    await entered["job-2"].wait()
    gates["job-2"].set()
    await second

    assert first.cancelled()
    assert poller.job_id == "job-2"
    assert poller.result == {"from": "job-2"}
    assert all(snapshot.result != {"from": "job-1"} for snapshot in snapshots)


@pytest.mark.asyncio
async def test_reset_returns_to_idle():
    remote = FakeRemote({"jobId": "r"}, [{"status": "failed"}])
    poller = _poller(remote)
    await poller.submit("x")

    poller.reset()

    assert poller.snapshot.to_dict() == {
        "status": "idle",
        "result": None,
        "error": None,
        "jobId": None,
        "loading": False,
    }


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_polling():
    remote = FakeRemote({"jobId": "l"}, [{"status": "completed", "result": 1}])
    poller = _poller(remote)

    def broken(snapshot):
        raise RuntimeError("listener bug")

    poller.subscribe(broken)
    await poller.submit("x")

    assert poller.status is JobStatus.COMPLETED


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        JobPoller(lambda *args: None, lambda job_id: None, max_attempts=0)


@pytest.mark.asyncio
async def test_cancel_between_ticks_stops_polling():
    fetched: list[str] = []
    first_fetch = asyncio.Event()

    async def create(value, instruction):
        return {"jobId": "ticking"}

    async def get(job_id):
        fetched.append(job_id)
        first_fetch.set()
        return {"status": "processing"}

    poller = JobPoller(create, get, poll_interval=0.05)
    seen = []
    poller.subscribe(seen.append)
    task = poller.start("x")
    await first_fetch.wait()
    await asyncio.sleep(0.01)
    before = poller.snapshot

    poller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0.15)

    assert fetched == ["ticking"]
    assert poller.snapshot == before
    assert seen[-1] == before
    assert poller.status is JobStatus.PROCESSING


@pytest.mark.asyncio
async def test_next_fetch_waits_for_previous_response_plus_interval():
    loop = asyncio.get_running_loop()
    calls: list[tuple[float, float]] = []
    responses = [{"status": "queued"}, {"status": "processing"}, {"status": "completed", "result": "ok"}]

    async def create(value, instruction):
        return {"jobId": "cadence"}

    async def get(job_id):
        started = loop.time()
        await asyncio.sleep(0.02)
        calls.append((started, loop.time()))
        return responses.pop(0)

    poller = JobPoller(create, get, poll_interval=0.05)
    await poller.submit("x")

    assert poller.status is JobStatus.COMPLETED
    assert len(calls) == 3
    for (_, previous_end), (next_start, _) in zip(calls, calls[1:]):
        assert next_start - previous_end >= 0.045
