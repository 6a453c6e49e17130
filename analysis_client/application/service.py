"""Process-wide wiring of the analysis forms and their collaborators."""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

import httpx

from analysis_client.application.bootstrap import AuthBootstrap
from analysis_client.application.history import BoundedHistoryStore
from analysis_client.application.orchestrator import SubmissionOrchestrator
from analysis_client.application.poller import JobPoller
from analysis_client.core.normalize import normalize_handle, normalize_video_url
from analysis_client.core.schema import DashboardData
from analysis_client.core.settings import Settings
from analysis_client.core.validation import validate_handle, validate_video_url
from analysis_client.domain import IdentityError
from analysis_client.infrastructure import (
    AnalysisApiClient,
    IdentityProvider,
    LocalIdentityProvider,
    SessionContext,
    StorageArea,
    SupabaseIdentityProvider,
)

logger = logging.getLogger(__name__)

VIDEO_HISTORY_KEY = "zlyzer-video-analysis-history"
PROFILE_HISTORY_KEY = "zlyzer-profile-analysis-history"
STORAGE_FILENAME = "local_storage.json"


@dataclass(slots=True)
class AnalysisForm:
    name: str
    poller: JobPoller
    history: BoundedHistoryStore
    orchestrator: SubmissionOrchestrator


class AnalysisService:
    """Coordinates the analysis forms, the remote API and the identity session."""

    def __init__(
        self,
        api: AnalysisApiClient,
        identity: IdentityProvider,
        context: SessionContext,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api = api
        self.identity = identity
        self.context = context
        self.forms: dict[str, AnalysisForm] = {}
        self._http_client = http_client

    def add_form(self, form: AnalysisForm) -> None:
        self.forms[form.name] = form

    def form(self, name: str) -> AnalysisForm:
        try:
            return self.forms[name]
        except KeyError:
            raise KeyError(f"unknown form {name!r}") from None

    async def dashboard(self) -> DashboardData:
        return await self.api.get_dashboard()

    async def handle_unauthorized(self) -> None:
        """Sign out and drop stale auth keys when the identity session is gone."""

        try:
            session = await self.identity.get_current_session()
        except IdentityError as exc:
            logger.error("Session check after 401 failed: %s", exc)
            session = None
        if session is not None:
            logger.info("Session is valid, 401 came from the API server")
            return

        logger.info("Invalid or expired session detected, signing out")
        try:
            await self.identity.sign_out()
        except IdentityError as exc:
            logger.error("Sign-out after 401 failed: %s", exc)
        removed = self.context.clear_auth_state()
        logger.info("Cleared stale session keys: %s", ", ".join(removed) or "none")

    async def aclose(self) -> None:
        for form in self.forms.values():
            form.orchestrator.close()
            form.poller.cancel()
            form.history.close()
        await self.api.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()


def _build_identity(settings: Settings) -> IdentityProvider:
    if settings.supabase_url and settings.supabase_anon_key:
        return SupabaseIdentityProvider(
            settings.supabase_url,
            settings.supabase_anon_key,
            redirect_url=settings.redirect_url,
        )
    return LocalIdentityProvider()


def build_analysis_service(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
    identity: IdentityProvider | None = None,
    storage_area: StorageArea | None = None,
    session_area: StorageArea | None = None,
) -> AnalysisService:
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(follow_redirects=True)
    identity = identity or _build_identity(settings)
    storage_area = storage_area or StorageArea(
        settings.storage_root / STORAGE_FILENAME,
        quota_bytes=settings.storage_quota_bytes,
    )
    context = SessionContext((session_area or StorageArea()).connect())

    service: AnalysisService

    async def on_unauthorized() -> None:
        await service.handle_unauthorized()

    api = AnalysisApiClient(
        settings.api_base_url,
        token_provider=identity.get_access_token,
        session_id_provider=context.ensure_session_id,
        on_unauthorized=on_unauthorized,
        http_client=client,
    )
    service = AnalysisService(api, identity, context, http_client=client if owns_client else None)
    bootstrap = AuthBootstrap(api.auth_signup, context)

    form_specs = [
        (
            "video",
            api.create_analysis,
            functools.partial(normalize_video_url, http_client=client),
            validate_video_url,
            VIDEO_HISTORY_KEY,
        ),
        ("profile", api.create_profile_analysis, normalize_handle, validate_handle, PROFILE_HISTORY_KEY),
    ]
    for name, create_fn, process_input, validate_input, history_key in form_specs:
        poller = JobPoller(
            create_fn,
            api.get_analysis,
            poll_interval=settings.poll_interval,
            max_attempts=settings.max_poll_attempts,
        )
        history = BoundedHistoryStore(storage_area.connect(), history_key, max_items=settings.history_max_items)
        orchestrator = SubmissionOrchestrator(
            poller,
            history,
            identity,
            context,
            cooldown=settings.cooldown,
            process_input=process_input,
            validate_input=validate_input,
            bootstrap=bootstrap,
        )
        service.add_form(AnalysisForm(name=name, poller=poller, history=history, orchestrator=orchestrator))
    return service


_service: AnalysisService | None = None


def configure_analysis_service(service: AnalysisService) -> None:
    """Install the service used by the HTTP routes."""

    global _service
    _service = service


def get_analysis_service() -> AnalysisService:
    """Return the process service, building it from the environment on first use."""

    global _service
    if _service is None:
        _service = build_analysis_service(Settings.from_env())
    return _service


def reset_analysis_state() -> None:
    """Forget the installed service (used in tests)."""

    global _service
    _service = None
