"""One backend signup per signed-in user per session."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable

from analysis_client.domain import ApiHttpError, StorageError
from analysis_client.infrastructure.identity import Session
from analysis_client.infrastructure.session_context import SessionContext

logger = logging.getLogger(__name__)

SIGNED_UP = "true"
SIGNUP_PENDING = "pending"


class AuthBootstrap:
    def __init__(self, signup_fn: Callable[[], Awaitable[str]], context: SessionContext) -> None:
        self._signup_fn = signup_fn
        self._context = context
        self.error: str | None = None

    async def ensure_signup(self, session: Session) -> None:
        """Register ``session``'s user with the backend unless already done.

        A failed signup is remembered as pending and retried next time; it never
        blocks the caller.
        """

        if self._context.signup_status(session.user_id) == SIGNED_UP:
            return
        try:
            message = await self._signup_fn()
        except ApiHttpError as exc:
            logger.warning("Backend signup failed for %s: %s", session.user_id, exc)
            self.error = str(exc)
            status = SIGNUP_PENDING
        else:
            logger.info("Auth signup for %s: %s", session.user_id, message)
            self.error = None
            status = SIGNED_UP
        try:
            self._context.mark_signup(session.user_id, status)
        except StorageError as exc:
            logger.error("Failed to remember signup status for %s: %s", session.user_id, exc)
