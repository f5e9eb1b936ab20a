"""
Package operations — the facade every surface calls.

Maps the named operations onto tool invocations:

    list         list --output json   (falls back to: list)
    upgrade      upgrade --id <id> -e
    upgrade-all  upgrade --all -e
    uninstall    uninstall --id <id> -e
    cancel       terminate a run by its tracking token
    install-path uninstall-registry lookup (no tool call)

Mutating operations return the runner's future; list blocks and
returns records.  Channel-independent: the CLI and the web API are thin
wrappers over ``WingetService``.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import Future
from typing import Any

from wingetctl.core.config.loader import ToolConfig
from wingetctl.core.errors import InvalidArgument, ParseFallback, WingetError
from wingetctl.core.models.package import PackageRecord
from wingetctl.core.models.stream import CancelResult, OperationContext
from wingetctl.core.services.command_runner import CommandRunner
from wingetctl.core.services.event_bus import EventBus
from wingetctl.core.services.install_location import find_install_path
from wingetctl.core.services.list_parser import parse_list, parse_structured_list
from wingetctl.core.services.process_registry import ProcessRegistry

logger = logging.getLogger(__name__)

_BAD_ID_RE = re.compile(r"[\s\x00-\x1F\x7F]")


def validate_package_id(package_id: Any) -> str:
    """Return the id unchanged, or raise InvalidArgument.

    An id must be a non-empty string without whitespace or control
    characters and must not look like an option.
    """
    if not isinstance(package_id, str) or not package_id:
        raise InvalidArgument("Package id is required")
    if _BAD_ID_RE.search(package_id):
        raise InvalidArgument(f"Malformed package id: {package_id!r}")
    if package_id.startswith("-"):
        raise InvalidArgument(f"Package id must not start with '-': {package_id!r}")
    return package_id


def _validate_track_id(track_id: Any) -> str | None:
    """Tokens are keyed the way ``CommandRunner.cancel`` looks them up."""
    if track_id is None:
        return None
    key = str(track_id).strip()
    if not key:
        raise InvalidArgument("Tracking token must not be blank")
    return key


class WingetService:
    """Owns the registry, bus and runner for one process."""

    def __init__(
        self,
        config: ToolConfig | None = None,
        runner: CommandRunner | None = None,
        registry: ProcessRegistry | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.config = config or ToolConfig()
        if runner is None:
            runner = CommandRunner(
                registry or ProcessRegistry(),
                bus or EventBus(),
                executable=self.config.executable,
                encoding=self.config.encoding,
            )
        self.runner = runner

    @property
    def registry(self) -> ProcessRegistry:
        return self.runner.registry

    @property
    def bus(self) -> EventBus:
        return self.runner.bus

    # ═══════════════════════════════════════════════════════════════
    #  Observe
    # ═══════════════════════════════════════════════════════════════

    def list_packages(self) -> list[PackageRecord]:
        """Installed packages, structured mode first.

        Raises:
            WingetError: the text-mode invocation failed as well.
        """
        if self.config.prefer_structured:
            try:
                out = self._list_output(["list", "--output", "json"])
                records = parse_structured_list(out, self.config.field_aliases)
                logger.debug("structured list: %d records", len(records))
                return records
            except ParseFallback as e:
                logger.info("structured list unusable, falling back to text: %s", e)
            except WingetError as e:
                logger.info("structured list failed, falling back to text: %s", str(e)[:200])

        return parse_list(self._list_output(["list"]))

    def _list_output(self, args: list[str]) -> str:
        future = self.runner.run(args, OperationContext(action="list"))
        return future.result()

    def install_path(self, package_id: str, name: str | None = None) -> dict[str, Any]:
        """Best-guess install directory (see ``install_location``)."""
        validate_package_id(package_id)
        return find_install_path(package_id, name)

    # ═══════════════════════════════════════════════════════════════
    #  Act
    # ═══════════════════════════════════════════════════════════════

    def upgrade(
        self,
        package_id: str,
        track_id: str | None = None,
        name: str | None = None,
    ) -> Future[str]:
        package_id = validate_package_id(package_id)
        return self.runner.run(
            ["upgrade", "--id", package_id, "-e"],
            OperationContext(
                action="upgrade", id=package_id, name=name,
                track_id=_validate_track_id(track_id),
            ),
        )

    def upgrade_all(self, track_id: str | None = None) -> Future[str]:
        return self.runner.run(
            ["upgrade", "--all", "-e"],
            OperationContext(action="upgradeAll", track_id=_validate_track_id(track_id)),
        )

    def uninstall(
        self,
        package_id: str,
        track_id: str | None = None,
        name: str | None = None,
    ) -> Future[str]:
        package_id = validate_package_id(package_id)
        return self.runner.run(
            ["uninstall", "--id", package_id, "-e"],
            OperationContext(
                action="uninstall", id=package_id, name=name,
                track_id=_validate_track_id(track_id),
            ),
        )

    def cancel(self, track_id: str | None) -> CancelResult:
        return self.runner.cancel(track_id)

    def shutdown(self) -> None:
        """Cancel every tracked run (process exit)."""
        for track_id in self.registry.active():
            result = self.cancel(track_id)
            logger.info("shutdown: cancel %s -> %s", track_id, result.to_dict())


# ── Process-wide instance ───────────────────────────────────────

_service: WingetService | None = None


def init_service(config: ToolConfig | None = None) -> WingetService:
    """Create the process-wide service.  Called once by an entrypoint."""
    global _service
    _service = WingetService(config)
    return _service


def set_service(service: WingetService | None) -> None:
    """Install a specific service (tests, embedding)."""
    global _service
    _service = service


def get_service() -> WingetService:
    """The process-wide service, created with defaults on first use."""
    global _service
    if _service is None:
        _service = WingetService()
    return _service
