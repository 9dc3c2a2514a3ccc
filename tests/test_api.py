"""Tests for the HTTP routes."""

import os
import time

import pytest
from fastapi.testclient import TestClient

from stock_video_assembler.api import app as app_module
from stock_video_assembler.api.app import _cleanup_loop, create_app, run_cleanup
from stock_video_assembler.api.deps import get_app_settings, get_orchestrator
from stock_video_assembler.errors import ProviderError
from stock_video_assembler.services.job_orchestrator import JobOrchestrator

from conftest import FakeProvider, FakeTranscoder


@pytest.fixture
def orchestrator(test_settings):
    orchestrator = JobOrchestrator(test_settings, provider=FakeProvider(), transcoder=FakeTranscoder())
    yield orchestrator
    orchestrator.shutdown(wait=True)


@pytest.fixture
def client(test_settings, orchestrator):
    app = create_app(test_settings, start_cleanup=False)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_app_settings] = lambda: test_settings
    with TestClient(app) as client:
        yield client


class TestVideoRoutes:

    def test_create_and_poll(self, client, orchestrator):
        response = client.post(
            "/api/video/create",
            json={"scenes": [{"prompt": "sunset"}, {"prompt": "mountains"}], "settings": {"resolution": "1280x720"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "created"
        assert body["estimated_time"] == "30-60 seconds"

        orchestrator.shutdown(wait=True)
        status = client.get(f"/api/video/status/{body['job_id']}")
        assert status.status_code == 200
        assert status.json()["status"] == "completed"
        assert status.json()["progress"] == 100

    def test_create_rejects_missing_scenes(self, client):
        response = client.post("/api/video/create", json={"settings": {}})

        assert response.status_code == 400
        assert "Scenes" in response.json()["detail"]

    def test_create_rejects_bad_settings(self, client):
        response = client.post("/api/video/create", json={"scenes": [{"prompt": "a"}], "settings": {"fps": 0}})

        assert response.status_code == 400

    def test_unknown_job_is_404(self, client):
        response = client.get("/api/video/status/nope")

        assert response.status_code == 404

    def test_jobs_listing(self, client, orchestrator):
        client.post("/api/video/create", json={"scenes": [{"prompt": "rain"}]})
        orchestrator.shutdown(wait=True)

        body = client.get("/api/video/jobs").json()
        assert body["count"] == 1
        assert body["jobs"][0]["scenes"] == 1

    def test_provider_status(self, client):
        assert client.get("/api/video/provider/status").json()["status"] == "active"

    def test_popular_videos(self, client):
        response = client.get("/api/video/popular", params={"per_page": 5})

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["videos"][0]["video_id"] == 900

    def test_popular_videos_provider_error(self, client, orchestrator):
        def unavailable(constraints=None):
            raise ProviderError("API rate limit exceeded, please wait", status_code=429)

        orchestrator.provider.popular = unavailable

        assert client.get("/api/video/popular").status_code == 429


class TestFileAndSystemRoutes:

    def test_output_file_served(self, client, test_settings):
        (test_settings.output_dir / "video_x.mp4").write_bytes(b"movie")

        response = client.get("/output/video_x.mp4")

        assert response.status_code == 200
        assert response.content == b"movie"

    def test_missing_output_file(self, client):
        assert client.get("/output/missing.mp4").status_code == 404

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "OK"
        assert "timestamp" in body
        assert body["disk"]["total"]["formatted"] == "0 Bytes"

    def test_index_lists_endpoints(self, client):
        body = client.get("/").json()

        assert body["endpoints"]["create"] == "POST /api/video/create"


def test_run_cleanup_removes_stale_files(test_settings, orchestrator, monkeypatch):
    stale = test_settings.temp_dir / "scene_1_old.mp4"
    stale.write_bytes(b"old")
    old = time.time() - 2 * 60 * 60
    os.utime(stale, (old, old))
    fresh = test_settings.output_dir / "video_new.mp4"
    fresh.write_bytes(b"new")

    monkeypatch.setattr("stock_video_assembler.api.app.get_orchestrator", lambda: orchestrator)
    run_cleanup(test_settings)

    assert not stale.exists()
    assert fresh.exists()


def test_run_cleanup_frees_space_over_disk_limit(test_settings, orchestrator, monkeypatch):
    staged = test_settings.temp_dir / "scene_1_running.mp4"
    staged.write_bytes(b"x" * (2 * 1024 * 1024))
    recent = time.time() - 5 * 60
    os.utime(staged, (recent, recent))
    test_settings.disk_limit_mb = 1

    monkeypatch.setattr("stock_video_assembler.api.app.get_orchestrator", lambda: orchestrator)
    run_cleanup(test_settings)

    assert not staged.exists()


class _Ticks:
    """Stop event stand-in that lets the cleanup loop run a fixed number of passes."""

    def __init__(self, passes):
        self.passes = passes

    def wait(self, timeout):
        self.passes -= 1
        return self.passes < 0


def test_cleanup_loop_survives_unexpected_errors(test_settings, monkeypatch):
    calls = []

    def broken(settings):
        calls.append(settings)
        raise RuntimeError("registry unavailable")

    monkeypatch.setattr(app_module, "run_cleanup", broken)

    _cleanup_loop(test_settings, _Ticks(3))

    assert len(calls) == 3
