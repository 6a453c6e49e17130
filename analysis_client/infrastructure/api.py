"""HTTP client for the remote analysis job service."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

import httpx

from analysis_client.core.schema import CreateJobResponse, DashboardData, RemoteJob
from analysis_client.domain import ApiHttpError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]
SessionIdProvider = Callable[[], str]
UnauthorizedHook = Callable[[], Awaitable[None]]

CREATE_TIMEOUT = 30.0
READ_TIMEOUT = 20.0


class AnalysisApiClient:
    """Async client for ``/api/analysis-requests`` and the account endpoints."""

    def __init__(
        self,
        api_base: str,
        *,
        token_provider: TokenProvider | None = None,
        session_id_provider: SessionIdProvider | None = None,
        on_unauthorized: UnauthorizedHook | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._api_base = api_base.rstrip("/")
        self._token_provider = token_provider
        self._session_id_provider = session_id_provider
        self._on_unauthorized = on_unauthorized
        self._client = http_client or httpx.AsyncClient()
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _build_url(self, endpoint: str) -> str:
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        return f"{self._api_base}{path}"

    async def _access_token(self) -> str | None:
        if self._token_provider is None:
            return None
        try:
            return await self._token_provider()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Token provider failed, sending request without token: %s", exc)
            return None

    async def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        token = await self._access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if self._session_id_provider is not None:
            session_id = self._session_id_provider()
            if session_id:
                headers["x-session-id"] = session_id
        return headers

    @staticmethod
    def _read_body(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return None
        return response.text or None

    @staticmethod
    def _error_message(response: httpx.Response, body: Any) -> str:
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        if isinstance(body, str) and body:
            return body
        return response.reason_phrase or f"API Error: {response.status_code}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        timeout: float = READ_TIMEOUT,
    ) -> Any:
        headers = await self._build_headers()
        try:
            response = await self._client.request(
                method,
                self._build_url(endpoint),
                headers=headers,
                json=json,
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            raise ApiHttpError(str(exc) or "Network error", 0, {"cause": repr(exc)}) from exc

        body = self._read_body(response)
        if response.is_success:
            return body

        if response.status_code == 401 and self._on_unauthorized is not None:
            logger.warning("401 Unauthorized from %s, checking session validity", endpoint)
            await self._on_unauthorized()
        raise ApiHttpError(self._error_message(response, body), response.status_code, body)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def create_analysis(self, video_url: str, custom_prompt: str | None = None) -> CreateJobResponse:
        payload: dict[str, Any] = {"videoUrl": video_url}
        if custom_prompt:
            payload["customPrompt"] = custom_prompt
        body = await self._request("POST", "/api/analysis-requests/", json=payload, timeout=CREATE_TIMEOUT)
        return CreateJobResponse.model_validate(body or {})

    async def create_profile_analysis(self, handle: str, custom_prompt: str | None = None) -> CreateJobResponse:
        payload: dict[str, Any] = {"username": handle.removeprefix("@")}
        if custom_prompt:
            payload["customPrompt"] = custom_prompt
        body = await self._request("POST", "/api/analysis-requests/profile", json=payload, timeout=CREATE_TIMEOUT)
        return CreateJobResponse.model_validate(body or {})

    async def get_analysis(self, request_id: str) -> RemoteJob:
        body = await self._request("GET", f"/api/analysis-requests/{request_id}")
        return RemoteJob.model_validate(body or {})

    async def get_dashboard(self) -> DashboardData:
        body = await self._request("GET", "/api/user/dashboard")
        return DashboardData.model_validate(body or {})

    async def auth_signup(self) -> str:
        body = await self._request("POST", "/auth/signup")
        if isinstance(body, dict):
            return str(body.get("message") or body)
        return str(body or "")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["AnalysisApiClient", "ApiHttpError"]
