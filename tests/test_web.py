"""
Tests for the web API — app factory, package routes, SSE stream.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from flask.testing import FlaskClient

from wingetctl.core.config.loader import ToolConfig
from wingetctl.core.errors import Cancelled, NonZeroExit, SpawnFailure
from wingetctl.core.models.stream import OperationContext, StreamEvent
from wingetctl.core.services import package_ops
from wingetctl.core.services.package_ops import WingetService
from wingetctl.ui.web.routes_packages import (
    DEFAULT_HEARTBEAT,
    MAX_HEARTBEAT,
    MIN_HEARTBEAT,
    heartbeat_interval,
)
from wingetctl.ui.web.server import create_app

from tests.fakes import FakeRunner

JSON_LIST = json.dumps([{"Name": "Git", "Id": "Git.Git", "Version": "2.40.0"}])


@pytest.fixture()
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def service(runner: FakeRunner) -> WingetService:
    return WingetService(ToolConfig(), runner=runner)


@pytest.fixture()
def client(service: WingetService) -> FlaskClient:
    """Create a Flask test client."""
    app = create_app(service)
    app.config["TESTING"] = True
    return app.test_client()


def _text(chunk: bytes | str) -> str:
    return chunk.decode("utf-8") if isinstance(chunk, bytes) else chunk


# ── App Factory Tests ────────────────────────────────────────────────


class TestAppFactory:
    def test_service_attached(self, service):
        app = create_app(service)
        assert app.extensions["wingetctl"] is service

    def test_defaults_to_process_service(self, monkeypatch, service):
        monkeypatch.setattr(package_ops, "_service", service)
        assert create_app().extensions["wingetctl"] is service


# ── Observe ──────────────────────────────────────────────────────────


class TestListRoute:
    def test_list(self, client, runner):
        runner.outcomes = [JSON_LIST]
        resp = client.get("/api/packages")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["ok"] is True
        assert data["packages"] == [{"name": "Git", "id": "Git.Git", "version": "2.40.0", "available": ""}]

    def test_list_failure(self, client, runner):
        runner.outcomes = [SpawnFailure("no winget"), SpawnFailure("no winget")]
        resp = client.get("/api/packages")
        assert resp.status_code == 500
        assert resp.get_json()["ok"] is False


class TestInstallPathRoute:
    def test_found(self, client, monkeypatch):
        monkeypatch.setattr(
            package_ops, "find_install_path",
            lambda pid, name=None: {"ok": True, "path": "C:\\Git", "candidates": []},
        )
        resp = client.get("/api/packages/install-path?id=Git.Git&name=Git")
        assert resp.status_code == 200
        assert resp.get_json()["path"] == "C:\\Git"

    def test_not_found(self, client, monkeypatch):
        monkeypatch.setattr(
            package_ops, "find_install_path",
            lambda pid, name=None: {"ok": False, "error": "not_found", "candidates": []},
        )
        resp = client.get("/api/packages/install-path?id=Git.Git")
        assert resp.status_code == 404

    def test_missing_id(self, client):
        assert client.get("/api/packages/install-path").status_code == 400


# ── Act ──────────────────────────────────────────────────────────────


class TestActRoutes:
    def test_upgrade(self, client, runner):
        runner.outcomes = ["Successfully installed"]
        resp = client.post("/api/packages/upgrade", json={"id": "Git.Git", "trackId": "row-1", "name": "Git"})
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True, "output": "Successfully installed"}
        args, ctx = runner.calls[0]
        assert args == ["upgrade", "--id", "Git.Git", "-e"]
        assert ctx.track_id == "row-1"
        assert ctx.name == "Git"

    def test_upgrade_all(self, client, runner):
        resp = client.post("/api/packages/upgrade-all", json={"trackId": "all"})
        assert resp.status_code == 200
        assert runner.calls[0][0] == ["upgrade", "--all", "-e"]

    def test_uninstall(self, client, runner):
        resp = client.post("/api/packages/uninstall", json={"id": "Git.Git"})
        assert resp.status_code == 200
        assert runner.calls[0][0] == ["uninstall", "--id", "Git.Git", "-e"]

    def test_numeric_track_id(self, client, runner):
        resp = client.post("/api/packages/upgrade", json={"id": "Git.Git", "trackId": 7})
        assert resp.status_code == 200
        assert runner.calls[0][1].track_id == "7"

    def test_missing_id(self, client, runner):
        resp = client.post("/api/packages/upgrade", json={})
        assert resp.status_code == 400
        assert runner.calls == []

    def test_no_body(self, client, runner):
        resp = client.post("/api/packages/uninstall")
        assert resp.status_code == 400

    def test_cancelled(self, client, runner):
        runner.outcomes = [Cancelled("row-1")]
        resp = client.post("/api/packages/upgrade", json={"id": "Git.Git", "trackId": "row-1"})
        assert resp.status_code == 409
        assert resp.get_json() == {"ok": False, "cancelled": True, "trackId": "row-1"}

    def test_failure(self, client, runner):
        runner.outcomes = [NonZeroExit("No applicable upgrade found.", exit_code=1)]
        resp = client.post("/api/packages/upgrade", json={"id": "Git.Git"})
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "No applicable upgrade found."


class TestCancelRoute:
    def test_not_running(self, client, service):
        service.runner = MagicMock()
        service.runner.cancel.return_value = package_ops.CancelResult.failure("not_running")
        resp = client.post("/api/packages/cancel", json={"trackId": "row-1"})
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": False, "error": "not_running"}

    def test_cancelled(self, client, service):
        service.runner = MagicMock()
        service.runner.cancel.return_value = package_ops.CancelResult.cancelled()
        resp = client.post("/api/packages/cancel", json={"trackId": "row-1"})
        assert resp.get_json() == {"ok": True, "killed": True}
        service.runner.cancel.assert_called_once_with("row-1")

    def test_invalid_token(self, client):
        resp = client.post("/api/packages/cancel", json={"trackId": "  "})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "invalid_track_id"


# ── Stream ───────────────────────────────────────────────────────────


class TestStreamRoute:
    def test_heartbeat_then_event(self, client, service):
        resp = client.get("/api/packages/stream?heartbeat=1", buffered=False)
        assert resp.status_code == 200
        assert resp.mimetype == "text/event-stream"

        chunks = iter(resp.response)
        assert _text(next(chunks)) == ": heartbeat\n\n"

        ctx = OperationContext(action="upgrade", id="Git.Git", track_id="row-1")
        service.bus.publish(StreamEvent.for_chunk("50%\n", "stdout", ["upgrade"], ctx))

        frame = _text(next(chunks))
        while frame.startswith(":"):
            frame = _text(next(chunks))
        lines = frame.strip().split("\n")
        assert lines[0] == "event: winget:stream"
        assert lines[1] == "id: 1"
        payload = json.loads(lines[2][len("data: "):])
        assert payload["data"] == "50%\n"
        assert payload["trackId"] == "row-1"
        resp.close()

    def test_negative_heartbeat_clamped(self, client):
        resp = client.get("/api/packages/stream?heartbeat=-5", buffered=False)
        assert resp.status_code == 200
        assert _text(next(iter(resp.response))) == ": heartbeat\n\n"
        resp.close()

    @pytest.mark.parametrize("requested, expected", [
        (None, DEFAULT_HEARTBEAT),
        (float("nan"), DEFAULT_HEARTBEAT),
        (float("inf"), DEFAULT_HEARTBEAT),
        (-5.0, MIN_HEARTBEAT),
        (0.0, MIN_HEARTBEAT),
        (15.0, 15.0),
        (1e9, MAX_HEARTBEAT),
    ])
    def test_heartbeat_interval(self, requested, expected):
        assert heartbeat_interval(requested) == expected
