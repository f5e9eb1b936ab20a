"""
Package routes — list, upgrade, uninstall, cancel, output stream.

Blueprint: packages_bp
Prefix: /api

Thin HTTP wrappers over ``wingetctl.core.services.package_ops``.

Endpoints:
    GET  /packages                — installed packages
    POST /packages/upgrade        — upgrade one package   {id, trackId?}
    POST /packages/upgrade-all    — upgrade everything    {trackId?}
    POST /packages/uninstall      — uninstall one package {id, trackId?}
    POST /packages/cancel         — cancel a tracked run  {trackId}
    GET  /packages/install-path   — install directory     ?id=&name=
    GET  /packages/stream         — SSE stream of tool output

Mutating endpoints block until the run settles; cancel it from another
request with the same ``trackId``.
"""

from __future__ import annotations

import json
import math
from concurrent.futures import Future

from flask import Blueprint, Response, current_app, jsonify, request

from wingetctl.core.errors import Cancelled, InvalidArgument, WingetError
from wingetctl.core.services.package_ops import WingetService

packages_bp = Blueprint("packages", __name__)


def _service() -> WingetService:
    return current_app.extensions["wingetctl"]


def _settle(start) -> tuple[Response, int]:  # type: ignore[no-untyped-def]
    """Start a run and map its outcome to an HTTP response."""
    try:
        future: Future[str] = start()
        output = future.result()
    except InvalidArgument as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    except Cancelled as e:
        return jsonify({"ok": False, "cancelled": True, "trackId": e.track_id}), 409
    except WingetError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "output": output}), 200


# ── Observe ─────────────────────────────────────────────────────────


@packages_bp.route("/packages")
def package_list():  # type: ignore[no-untyped-def]
    """List installed packages."""
    try:
        records = _service().list_packages()
    except WingetError as e:
        return jsonify({"ok": False, "error": str(e)}), 500
    return jsonify({"ok": True, "packages": [r.model_dump() for r in records]})


@packages_bp.route("/packages/install-path")
def package_install_path():  # type: ignore[no-untyped-def]
    """Best-guess install directory for a package."""
    package_id = request.args.get("id", "")
    name = request.args.get("name") or None
    try:
        result = _service().install_path(package_id, name)
    except InvalidArgument as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    if not result.get("ok"):
        return jsonify(result), 404
    return jsonify(result)


# ── Act ─────────────────────────────────────────────────────────────


@packages_bp.route("/packages/upgrade", methods=["POST"])
def package_upgrade():  # type: ignore[no-untyped-def]
    """Upgrade one package by exact id."""
    data = request.get_json(silent=True) or {}
    return _settle(lambda: _service().upgrade(
        data.get("id"), track_id=data.get("trackId"), name=data.get("name"),
    ))


@packages_bp.route("/packages/upgrade-all", methods=["POST"])
def package_upgrade_all():  # type: ignore[no-untyped-def]
    """Upgrade every package with an available update."""
    data = request.get_json(silent=True) or {}
    return _settle(lambda: _service().upgrade_all(track_id=data.get("trackId")))


@packages_bp.route("/packages/uninstall", methods=["POST"])
def package_uninstall():  # type: ignore[no-untyped-def]
    """Uninstall one package by exact id."""
    data = request.get_json(silent=True) or {}
    return _settle(lambda: _service().uninstall(
        data.get("id"), track_id=data.get("trackId"), name=data.get("name"),
    ))


@packages_bp.route("/packages/cancel", methods=["POST"])
def package_cancel():  # type: ignore[no-untyped-def]
    """Cancel a tracked run."""
    data = request.get_json(silent=True) or {}
    result = _service().cancel(data.get("trackId"))
    if result.error == "invalid_track_id":
        return jsonify(result.to_dict()), 400
    return jsonify(result.to_dict())


# ── Stream ──────────────────────────────────────────────────────────

DEFAULT_HEARTBEAT = 30.0
MIN_HEARTBEAT = 1.0
MAX_HEARTBEAT = 300.0


def heartbeat_interval(requested: float | None) -> float:
    """Requested ``?heartbeat=`` seconds, clamped to a usable range."""
    if requested is None or not math.isfinite(requested):
        return DEFAULT_HEARTBEAT
    return min(MAX_HEARTBEAT, max(MIN_HEARTBEAT, requested))


@packages_bp.route("/packages/stream")
def package_stream():  # type: ignore[no-untyped-def]
    """SSE endpoint — tool output chunks as they are read."""
    bus = _service().bus
    heartbeat = heartbeat_interval(request.args.get("heartbeat", type=float))

    def generate():  # type: ignore[no-untyped-def]
        for event in bus.subscribe(heartbeat_interval=heartbeat):
            if event.get("type") == "sys:heartbeat":
                yield ": heartbeat\n\n"
                continue
            yield (
                "event: winget:stream\n"
                f"id: {event['seq']}\n"
                f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"
            )

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",      # disable nginx/proxy buffering
            "Connection": "keep-alive",
        },
    )
