"""Drive one remote job from creation to a terminal status.

Only one job is live per poller. Starting a new job cancels the previous one
synchronously, before the new creation request is dispatched. Every
continuation re-checks the job's :class:`CancellationToken` before touching
visible state, so a fetch that resolves after cancellation is a no-op.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel

from analysis_client.core.schema import CreateJobResponse, RemoteJob
from analysis_client.core.status import advance_status, is_cached, normalize_status
from analysis_client.domain import JobSnapshot, JobStatus, MissingJobIdError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_POLL_ATTEMPTS = 150

MISSING_JOB_ID_MESSAGE = "Analysis request ID missing in response"
FAILED_MESSAGE = "Analysis failed"
TIMEOUT_MESSAGE = "Analysis timeout - please check dashboard for results"
POLL_FAILED_MESSAGE = "Polling failed"
SUBMIT_FAILED_MESSAGE = "Failed to submit analysis"

CreateFn = Callable[[str, str | None], Awaitable[Any]]
GetFn = Callable[[str], Awaitable[Any]]
StateListener = Callable[[JobSnapshot], None]

ModelT = TypeVar("ModelT", bound=BaseModel)


def _coerce(model: type[ModelT], raw: Any) -> ModelT:
    if isinstance(raw, model):
        return raw
    if isinstance(raw, Mapping):
        return model.model_validate(dict(raw))
    return model()


def _result_of(remote: RemoteJob) -> Any:
    payload = remote.payload
    if payload:
        return payload
    return remote.model_dump(exclude_none=True)


class CancellationToken:
    """Cooperative cancellation flag owned by exactly one job."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class JobPoller:
    """Submit a job, poll it until terminal and expose the visible state."""

    def __init__(
        self,
        create_fn: CreateFn,
        get_fn: GetFn,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._create_fn = create_fn
        self._get_fn = get_fn
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._state = JobSnapshot()
        self._listeners: list[StateListener] = []
        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # visible state
    # ------------------------------------------------------------------
    @property
    def snapshot(self) -> JobSnapshot:
        return self._state

    @property
    def status(self) -> JobStatus:
        return self._state.status

    @property
    def result(self) -> Any | None:
        return self._state.result

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def job_id(self) -> str | None:
        return self._state.job_id

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, token: CancellationToken | None, **changes: Any) -> bool:
        if token is not None and token.cancelled:
            return False
        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return True
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:  # noqa: BLE001
                logger.exception("Job state listener failed")
        return True

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def cancel(self) -> None:
        """Abort the in-flight call and the scheduled tick. Safe to repeat."""

        token, task = self._token, self._task
        self._token = None
        self._task = None
        if token is not None:
            token.cancel()
        if task is not None and not task.done():
            task.cancel()

    def reset(self) -> None:
        self.cancel()
        self._set_state(None, status=JobStatus.IDLE, result=None, error=None, job_id=None, loading=False)

    def start(self, input_value: str, instruction: str | None = None) -> asyncio.Task:
        """Retire any previous job and schedule a new one.

        The visible state is already reset to idle when this returns.
        """

        self.cancel()
        token = CancellationToken()
        self._token = token
        self._set_state(token, status=JobStatus.IDLE, result=None, error=None, job_id=None, loading=True)
        task = asyncio.get_running_loop().create_task(self._run(token, input_value, instruction))
        self._task = task
        return task

    async def submit(self, input_value: str, instruction: str | None = None) -> CreateJobResponse | None:
        """Run a job to completion and return the creation response.

        Returns ``None`` when the job was cancelled or creation failed. Raises
        :class:`MissingJobIdError` when the service assigned no identifier.
        """

        task = self.start(input_value, instruction)
        token = self._token
        try:
            return await task
        except asyncio.CancelledError:
            if token is not None and token.cancelled:
                return None
            if self._token is token:
                self.cancel()
            raise

    # ------------------------------------------------------------------
    # internal
    # ------------------------------------------------------------------
    async def _run(
        self,
        token: CancellationToken,
        input_value: str,
        instruction: str | None,
    ) -> CreateJobResponse | None:
        try:
            raw = await self._create_fn(input_value, instruction)
            if token.cancelled:
                return None
            response = _coerce(CreateJobResponse, raw)
            job_id = response.job_id
            if not job_id:
                self._set_state(token, status=JobStatus.FAILED, error=MISSING_JOB_ID_MESSAGE, loading=False)
                raise MissingJobIdError(MISSING_JOB_ID_MESSAGE)

            if is_cached(response.status):
                self._set_state(token, job_id=job_id)
                remote = _coerce(RemoteJob, await self._get_fn(job_id))
                self._set_state(token, status=JobStatus.COMPLETED, result=_result_of(remote), loading=False)
                return response

            self._set_state(token, job_id=job_id, status=JobStatus.QUEUED)
            await self._poll(token, job_id)
            return response
        except MissingJobIdError:
            raise
        except Exception as exc:  # noqa: BLE001
            if token.cancelled:
                return None
            logger.error("Submit analysis error: %s", exc)
            self._set_state(token, status=JobStatus.FAILED, error=str(exc) or SUBMIT_FAILED_MESSAGE, loading=False)
            return None
        finally:
            if self._token is token:
                self._token = None
                self._task = None

    async def _poll(self, token: CancellationToken, job_id: str) -> None:
        attempts = 0
        while not token.cancelled:
            try:
                raw = await self._get_fn(job_id)
            except Exception as exc:  # noqa: BLE001
                if token.cancelled:
                    return
                logger.error("Poll error for job %s: %s", job_id, exc)
                self._set_state(token, status=JobStatus.FAILED, error=str(exc) or POLL_FAILED_MESSAGE, loading=False)
                return
            if token.cancelled:
                return

            remote = _coerce(RemoteJob, raw)
            status = normalize_status(remote.status, remote.payload)

            if status is JobStatus.FAILED:
                self._set_state(
                    token,
                    status=JobStatus.FAILED,
                    error=remote.error_message or FAILED_MESSAGE,
                    loading=False,
                )
                return

            if status is JobStatus.COMPLETED:
                self._set_state(token, status=JobStatus.COMPLETED, result=_result_of(remote), loading=False)
                return

            self._set_state(token, status=advance_status(self._state.status, status))
            attempts += 1
            if attempts >= self._max_attempts:
                self._set_state(token, status=JobStatus.FAILED, error=TIMEOUT_MESSAGE, loading=False)
                return

            await asyncio.sleep(self._poll_interval)
