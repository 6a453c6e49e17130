"""Identity session lookup and sign-in redirect.

The Supabase provider mirrors the browser flow: it reads the current session
and, when there is none, asks Supabase for a Google OAuth URL and hands it to
``open_url``. Without Supabase credentials the local provider treats every
caller as signed in so the client can run against a development backend.
"""
from __future__ import annotations

import asyncio
import logging
import webbrowser
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from supabase import Client, create_client

from analysis_client.domain import IdentityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Session:
    user_id: str
    access_token: str | None = None
    email: str | None = None


class IdentityProvider(Protocol):
    """Contract for identity integrations."""

    async def get_current_session(self) -> Session | None: ...

    async def begin_identity_redirect(self, return_path: str) -> None: ...

    async def sign_out(self) -> None: ...

    async def get_access_token(self) -> str | None: ...


class LocalIdentityProvider:
    """Fallback provider used when no identity service is configured."""

    def __init__(self, user_id: str = "local") -> None:
        self._session: Session | None = Session(user_id=user_id)
        self._user_id = user_id

    async def get_current_session(self) -> Session | None:
        return self._session

    async def begin_identity_redirect(self, return_path: str) -> None:  # pragma: no cover
        self._session = Session(user_id=self._user_id)

    async def sign_out(self) -> None:
        self._session = None

    async def get_access_token(self) -> str | None:
        return self._session.access_token if self._session else None


class SupabaseIdentityProvider:
    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        *,
        redirect_url: str,
        provider: str = "google",
        open_url: Callable[[str], Any] = webbrowser.open,
        client: Client | None = None,
    ) -> None:
        self._supabase_url = supabase_url
        self._supabase_key = supabase_key
        self._redirect_url = redirect_url
        self._provider = provider
        self._open_url = open_url
        self._client = client
        self.last_redirect_url: str | None = None

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = create_client(self._supabase_url, self._supabase_key)
        return self._client

    async def get_current_session(self) -> Session | None:
        try:
            session = await asyncio.to_thread(self._get_client().auth.get_session)
        except Exception as exc:
            raise IdentityError(f"Failed to check auth session: {exc}") from exc
        if session is None or session.user is None:
            return None
        return Session(
            user_id=str(session.user.id),
            access_token=session.access_token,
            email=getattr(session.user, "email", None),
        )

    async def get_access_token(self) -> str | None:
        session = await self.get_current_session()
        return session.access_token if session else None

    async def begin_identity_redirect(self, return_path: str) -> None:
        credentials = {
            "provider": self._provider,
            "options": {
                "redirect_to": self._redirect_url,
                "query_params": {"access_type": "offline", "prompt": "consent"},
            },
        }
        try:
            response = await asyncio.to_thread(self._get_client().auth.sign_in_with_oauth, credentials)
        except Exception as exc:
            raise IdentityError(f"Sign-in redirect failed: {exc}") from exc
        url = getattr(response, "url", None)
        if not url:
            raise IdentityError("Sign-in redirect failed: provider returned no URL")
        self.last_redirect_url = url
        logger.info("Opening sign-in page for return path %s", return_path)
        self._open_url(url)

    async def sign_out(self) -> None:
        try:
            await asyncio.to_thread(self._get_client().auth.sign_out)
        except Exception as exc:
            raise IdentityError(f"Sign-out failed: {exc}") from exc
