"""User-facing submission contract layered over a poller and a history store."""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from analysis_client.application.bootstrap import AuthBootstrap
from analysis_client.application.history import BoundedHistoryStore, HistoryEntry
from analysis_client.application.poller import JobPoller
from analysis_client.core.progress import ProgressProjection
from analysis_client.domain import (
    IdentityError,
    InputValidationError,
    JobSnapshot,
    JobStatus,
    SubmissionAttempt,
    SubmissionOutcome,
)
from analysis_client.infrastructure.identity import IdentityProvider
from analysis_client.infrastructure.session_context import SessionContext

logger = logging.getLogger(__name__)

COOLDOWN = 2.0
MESSAGE_TTL = 2.0
RESULT_READY_DELAY = 0.1

COOLDOWN_MESSAGE = "Please wait a moment before submitting again."
REDIRECT_ERROR_MESSAGE = "We could not start the sign-in flow. Disable pop-up blockers and try again."

InputProcessor = Callable[[str], "str | Awaitable[str]"]


class SubmissionOrchestrator:
    """Gate, dispatch and follow up one logical form's submissions.

    Gates run in order: re-entrancy, pending sign-in redirect, empty input,
    validation, cooldown, identity. Only an attempt that passes all of them
    reaches the poller and advances the cooldown clock.
    """

    def __init__(
        self,
        poller: JobPoller,
        history: BoundedHistoryStore,
        identity: IdentityProvider,
        context: SessionContext,
        *,
        cooldown: float = COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
        process_input: InputProcessor | None = None,
        validate_input: Callable[[str], None] | None = None,
        bootstrap: AuthBootstrap | None = None,
        progress: ProgressProjection | None = None,
        on_success: Callable[[HistoryEntry], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        on_result_ready: Callable[[HistoryEntry], Any] | None = None,
        return_path: str = "/",
        message_ttl: float = MESSAGE_TTL,
    ) -> None:
        self._poller = poller
        self._history = history
        self._identity = identity
        self._context = context
        self._cooldown = cooldown
        self._clock = clock
        self._process_input = process_input
        self._validate_input = validate_input
        self._bootstrap = bootstrap
        self.progress = progress or ProgressProjection()
        self._on_success = on_success
        self._on_error = on_error
        self._on_result_ready = on_result_ready
        self._return_path = return_path
        self._message_ttl = message_ttl

        self._last_submit_at: float | None = None
        self._accepting = False
        self._notified_results: set[str] = set()
        self._notified_errors: set[str] = set()
        self._redirecting = False
        self._redirect_error: str | None = None
        self._message_handle: asyncio.TimerHandle | None = None
        self.attempt: SubmissionAttempt | None = None
        self._unsubscribe = poller.subscribe(self._on_job_state)

    # ------------------------------------------------------------------
    # projection
    # ------------------------------------------------------------------
    @property
    def history(self) -> BoundedHistoryStore:
        return self._history

    @property
    def redirecting(self) -> bool:
        return self._redirecting

    @property
    def redirect_error(self) -> str | None:
        return self._redirect_error

    def state(self) -> dict[str, Any]:
        snapshot = self._poller.snapshot
        return {
            **snapshot.to_dict(),
            "progress": self.progress.value,
            "history": self._history.history,
            "redirecting": self._redirecting,
            "redirectError": self._redirect_error,
        }

    # ------------------------------------------------------------------
    # transient messages
    # ------------------------------------------------------------------
    def _flash(self, message: str) -> None:
        self._set_message(message)
        self._message_handle = asyncio.get_running_loop().call_later(self._message_ttl, self._expire_message, message)

    def _expire_message(self, message: str) -> None:
        if self._redirect_error == message:
            self._redirect_error = None
        self._message_handle = None

    def _set_message(self, message: str | None) -> None:
        if self._message_handle is not None:
            self._message_handle.cancel()
            self._message_handle = None
        self._redirect_error = message

    # ------------------------------------------------------------------
    # identity
    # ------------------------------------------------------------------
    async def _current_session(self):
        try:
            return await self._identity.get_current_session()
        except IdentityError as exc:
            logger.error("Failed to check auth session: %s", exc)
            return None

    async def _ensure_signed_in(self) -> bool:
        self._set_message(None)
        session = await self._current_session()
        if session is not None:
            if self._bootstrap is not None:
                await self._bootstrap.ensure_signup(session)
            return True

        self._context.save_post_auth_redirect(self._return_path)
        self._redirecting = True
        try:
            await self._identity.begin_identity_redirect(self._return_path)
        except IdentityError as exc:
            logger.error("Sign-in redirect failed: %s", exc)
            self._set_message(REDIRECT_ERROR_MESSAGE)
            self._redirecting = False
            self._context.clear_post_auth_redirect()
        return False

    async def refresh_identity(self) -> None:
        """Clear ``redirecting`` once the sign-in round trip produced a session."""

        if self._redirecting and await self._current_session() is not None:
            self._redirecting = False

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------
    async def submit(self, input_value: str, instruction: str | None = None) -> SubmissionOutcome:
        if self._accepting:
            logger.debug("Dropping submission while the previous one is being accepted")
            return SubmissionOutcome.IN_FLIGHT

        if self._redirecting:
            await self.refresh_identity()
            if self._redirecting:
                logger.debug("Dropping submission while the sign-in redirect is pending")
                return SubmissionOutcome.REDIRECTING

        trimmed = input_value.strip()
        if not trimmed:
            return SubmissionOutcome.EMPTY

        if self._validate_input is not None:
            try:
                self._validate_input(trimmed)
            except InputValidationError as exc:
                self._flash(str(exc))
                return SubmissionOutcome.INVALID

        now = self._clock()
        if self._last_submit_at is not None and now - self._last_submit_at < self._cooldown:
            self._flash(COOLDOWN_MESSAGE)
            return SubmissionOutcome.COOLDOWN

        self._accepting = True
        try:
            if not await self._ensure_signed_in():
                if self._redirect_error:
                    return SubmissionOutcome.REDIRECT_FAILED
                return SubmissionOutcome.REDIRECTING

            self._last_submit_at = now
            self.progress.reset()
            prompt = (instruction or "").strip() or None
            self.attempt = SubmissionAttempt(raw_input=trimmed, instruction=prompt, submitted_at=now)

            processed: Any = trimmed
            if self._process_input is not None:
                processed = self._process_input(trimmed)
                if inspect.isawaitable(processed):
                    processed = await processed

            task = self._poller.start(processed, prompt)
            task.add_done_callback(self._on_task_done)
            return SubmissionOutcome.ACCEPTED
        finally:
            self._accepting = False

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Analysis submission failed: %s", exc)

    async def wait(self) -> None:
        """Wait for the current job to settle; cancellation counts as settled."""

        task = self._poller.task
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def cancel(self) -> None:
        self._poller.cancel()

    def reset(self) -> None:
        self._poller.reset()

    # ------------------------------------------------------------------
    # job state follow-up
    # ------------------------------------------------------------------
    def _history_entry(self, snapshot: JobSnapshot) -> HistoryEntry:
        entry: HistoryEntry = {
            "id": snapshot.job_id,
            "status": snapshot.status.value,
            "result": snapshot.result,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
        if self.attempt is not None:
            entry["input"] = self.attempt.raw_input
            entry["instruction"] = self.attempt.instruction
        return entry

    def _update_progress(self, status: JobStatus) -> None:
        if status.is_active:
            self.progress.start()
        elif status is JobStatus.COMPLETED:
            self.progress.complete()
        elif status is JobStatus.FAILED:
            self.progress.fail()
        else:
            self.progress.reset()

    def _on_job_state(self, snapshot: JobSnapshot) -> None:
        self._update_progress(snapshot.status)

        job_id = snapshot.job_id
        if (
            snapshot.status is JobStatus.COMPLETED
            and snapshot.result is not None
            and job_id
            and job_id not in self._notified_results
        ):
            self._notified_results.add(job_id)
            entry = self._history_entry(snapshot)
            self._history.upsert_item(entry)
            if self._on_result_ready is not None:
                asyncio.get_running_loop().call_later(RESULT_READY_DELAY, self._on_result_ready, entry)
            if self._on_success is not None:
                self._on_success(entry)

        error = snapshot.error
        if error and error not in self._notified_errors:
            self._notified_errors.add(error)
            if self._on_error is not None:
                self._on_error(error)

    def close(self) -> None:
        self._unsubscribe()
        self.progress.stop()
        self._set_message(None)
