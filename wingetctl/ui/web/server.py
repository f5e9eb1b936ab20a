"""
Web API server — Flask app factory.

Exposes the package operations as JSON endpoints plus an SSE stream of
tool output, for a browser or desktop shell to drive.
"""

from __future__ import annotations

import logging

from flask import Flask

from wingetctl.core.services.package_ops import WingetService, get_service

logger = logging.getLogger(__name__)


def create_app(service: WingetService | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        service: The WingetService to serve.  Defaults to the
            process-wide instance.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    app.extensions["wingetctl"] = service or get_service()

    from wingetctl.ui.web.routes_packages import packages_bp

    app.register_blueprint(packages_bp, url_prefix="/api")

    logger.info("Web API app created (executable=%s)", app.extensions["wingetctl"].config.executable)
    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 8000,
    debug: bool = False,
) -> None:
    """Run the Flask development server."""
    logger.info("Starting web API on %s:%d", host, port)
    app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
