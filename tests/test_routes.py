from __future__ import annotations

import json
import time
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest
from fastapi.testclient import TestClient

from analysis_client.application import build_analysis_service, reset_analysis_state
from analysis_client.core.settings import Settings
from analysis_client.infrastructure import LocalIdentityProvider, StorageArea

API_BASE = "http://analysis.test"
VIDEO = "https://www.tiktok.com/@creator/video/1"


class RemoteService:
    """In-memory stand-in for the remote analysis API."""

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.dashboard_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/auth/signup":
            return httpx.Response(200, json={"message": "User created"})
        if path == "/api/user/dashboard":
            if self.dashboard_status != 200:
                return httpx.Response(self.dashboard_status, json={"error": "dashboard unavailable"})
            return httpx.Response(200, json={"numReqs": 1, "videoAnalysisFreeQuota": 4, "reqs": []})
        if request.method == "POST" and path.startswith("/api/analysis-requests/"):
            self.created.append({"path": path, "body": json.loads(request.content)})
            return httpx.Response(202, json={"requestId": f"r-{len(self.created)}", "status": "queued"})
        if request.method == "GET" and path.startswith("/api/analysis-requests/"):
            job_id = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"id": job_id, "status": "completed", "result": {"text": job_id}})
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture(autouse=True)
def reset_state():
    reset_analysis_state()
    yield
    reset_analysis_state()


@pytest.fixture()
def remote():
    return RemoteService()


@pytest.fixture()
def client(tmp_path, remote):
    from analysis_client.app import create_app

    settings = Settings(api_base_url=API_BASE, poll_interval_ms=10, cooldown_ms=0, storage_root=tmp_path)
    service = build_analysis_service(
        settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(remote)),
        identity=LocalIdentityProvider(),
        storage_area=StorageArea(tmp_path / "local_storage.json"),
    )
    app = create_app(settings, service=service)
    with TestClient(app) as test_client:
        yield test_client


def _wait_for_status(client: TestClient, form: str, status: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        state = client.get(f"/api/forms/{form}").json()
        if state["status"] == status or time.monotonic() > deadline:
            return state
        time.sleep(0.02)


def test_root_lists_forms(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["forms"] == ["profile", "video"]


def test_video_submission_end_to_end(client, remote, tmp_path):
    response = client.post("/api/forms/video/submit", json={"input": f"  {VIDEO}?_t=abc ", "instruction": "hooks"})
    assert response.status_code == 200
    assert response.json()["outcome"] == "accepted"

    state = _wait_for_status(client, "video", "completed")
    assert state["result"] == {"text": "r-1"}
    assert state["jobId"] == "r-1"
    assert state["loading"] is False
    assert remote.created[0]["path"] == "/api/analysis-requests/"
    assert remote.created[0]["body"] == {"videoUrl": VIDEO, "customPrompt": "hooks"}

    history = client.get("/api/forms/video/history").json()
    assert history["storage_key"] == "zlyzer-video-analysis-history"
    assert [item["id"] for item in history["items"]] == ["r-1"]
    assert (tmp_path / "local_storage.json").exists()

    assert client.delete("/api/forms/video/history/missing").status_code == 404
    assert client.delete("/api/forms/video/history/r-1").json() == {"items": []}


def test_profile_submission_uses_profile_endpoint(client, remote):
    response = client.post("/api/forms/profile/submit", json={"input": "@creator"})
    assert response.json()["outcome"] == "accepted"

    _wait_for_status(client, "profile", "completed")
    assert remote.created[0]["path"] == "/api/analysis-requests/profile"
    assert remote.created[0]["body"] == {"username": "creator"}

    assert client.delete("/api/forms/profile/history").json() == {"items": []}


def test_invalid_submissions(client, remote):
    assert client.post("/api/forms/video/submit", json={}).status_code == 400
    assert client.post("/api/forms/video/submit", json={"input": "x", "instruction": 3}).status_code == 400

    body = client.post("/api/forms/video/submit", json={"input": "https://example.com/v/1"}).json()
    assert body["outcome"] == "invalid"
    assert body["redirectError"] == "Please enter a valid TikTok video URL."

    assert client.post("/api/forms/video/submit", json={"input": "   "}).json()["outcome"] == "empty"
    assert remote.created == []


def test_unknown_form_is_404(client):
    assert client.get("/api/forms/audio").status_code == 404
    assert client.post("/api/forms/audio/submit", json={"input": VIDEO}).status_code == 404


def test_cancel_and_reset_routes(client):
    client.post("/api/forms/video/submit", json={"input": VIDEO})
    _wait_for_status(client, "video", "completed")

    assert client.post("/api/forms/video/cancel").status_code == 200
    state = client.post("/api/forms/video/reset").json()
    assert state["status"] == "idle"
    assert state["result"] is None


def test_dashboard(client, remote):
    response = client.get("/api/dashboard")
    assert response.status_code == 200
    assert response.json()["num_reqs"] == 1
    assert response.json()["video_analysis_free_quota"] == 4

    remote.dashboard_status = 500
    response = client.get("/api/dashboard")
    assert response.status_code == 502
    assert response.json()["detail"] == "dashboard unavailable"

    remote.dashboard_status = 403
    assert client.get("/api/dashboard").status_code == 403


def test_service_is_built_on_startup_not_on_import(tmp_path, remote, monkeypatch):
    import analysis_client.app as app_module

    settings = Settings(api_base_url=API_BASE, storage_root=tmp_path)
    built = []

    def fake_build(received: Settings):
        service = build_analysis_service(
            received,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(remote)),
            identity=LocalIdentityProvider(),
            storage_area=StorageArea(),
        )
        built.append(service)
        return service

    monkeypatch.setattr(app_module, "build_analysis_service", fake_build)
    app = app_module.create_app(settings)
    assert built == []

    with TestClient(app) as test_client:
        assert len(built) == 1
        assert test_client.get("/").json()["forms"] == ["profile", "video"]
    assert not list(tmp_path.iterdir())
