"""Session-scoped context: post-auth redirect, signup flags and session id."""
from __future__ import annotations

import logging
import uuid

from analysis_client.domain import StorageError
from analysis_client.infrastructure.storage import KeyValueStorage

logger = logging.getLogger(__name__)

POST_AUTH_REDIRECT_KEY = "postAuthRedirect"
SESSION_ID_KEY = "x-session-id"
SIGNED_UP_PREFIX = "signed_up_"
AUTH_PREFIX = "auth_"


class SessionContext:
    """Small key-value context passed explicitly to the orchestrator."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    # ------------------------------------------------------------------
    # post-auth redirect
    # ------------------------------------------------------------------
    def save_post_auth_redirect(self, path: str = "/") -> None:
        try:
            self._storage.set_item(POST_AUTH_REDIRECT_KEY, path)
        except StorageError as exc:
            logger.error("Failed to persist post-auth redirect: %s", exc)

    def peek_post_auth_redirect(self) -> str | None:
        return self._storage.get_item(POST_AUTH_REDIRECT_KEY)

    def clear_post_auth_redirect(self) -> None:
        try:
            self._storage.remove_item(POST_AUTH_REDIRECT_KEY)
        except StorageError as exc:
            logger.error("Failed to clear post-auth redirect: %s", exc)

    def consume_post_auth_redirect(self, fallback: str = "/") -> str:
        stored = self.peek_post_auth_redirect()
        self.clear_post_auth_redirect()
        return stored if stored is not None else fallback

    # ------------------------------------------------------------------
    # signup flags
    # ------------------------------------------------------------------
    def signup_status(self, user_id: str) -> str | None:
        return self._storage.get_item(f"{SIGNED_UP_PREFIX}{user_id}")

    def mark_signup(self, user_id: str, status: str) -> None:
        self._storage.set_item(f"{SIGNED_UP_PREFIX}{user_id}", status)

    # ------------------------------------------------------------------
    # correlation id
    # ------------------------------------------------------------------
    def ensure_session_id(self) -> str:
        session_id = self._storage.get_item(SESSION_ID_KEY)
        if not session_id:
            session_id = str(uuid.uuid4())
            self._storage.set_item(SESSION_ID_KEY, session_id)
        return session_id

    def clear_auth_state(self) -> list[str]:
        """Drop stale auth keys after the identity session disappeared."""

        removed: list[str] = []
        for key in self._storage.keys():
            if key.startswith((SIGNED_UP_PREFIX, AUTH_PREFIX)) or key == POST_AUTH_REDIRECT_KEY:
                self._storage.remove_item(key)
                removed.append(key)
        return removed
