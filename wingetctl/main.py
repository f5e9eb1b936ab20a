"""
wingetctl — CLI entrypoint.

Usage:
    python -m wingetctl.main --help
    wingetctl list
    wingetctl upgrade Git.Git
"""

from __future__ import annotations

import json
import sys
import uuid
from concurrent.futures import Future
from pathlib import Path

import click

from wingetctl import __version__
from wingetctl.core.config.loader import ConfigError, load_config
from wingetctl.core.errors import Cancelled, InvalidArgument, NonZeroExit, WingetError
from wingetctl.core.models.stream import StreamEvent
from wingetctl.core.observability.logging_config import resolve_level, setup_logging
from wingetctl.core.services.package_ops import WingetService, init_service


@click.group()
@click.version_option(version=__version__, prog_name="wingetctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to wingetctl.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """wingetctl — list, upgrade and uninstall packages through winget."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    flag_level = None
    if debug:
        flag_level = "DEBUG"
    elif verbose:
        flag_level = "INFO"
    elif quiet:
        flag_level = "ERROR"

    setup_logging(level=resolve_level(flag_level), quiet_third_party=not debug)

    if "service" in ctx.obj:
        return  # injected (tests, embedding)

    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(2)
    ctx.obj["service"] = init_service(config)


def _service(ctx: click.Context) -> WingetService:
    return ctx.obj["service"]


# ── Observe ─────────────────────────────────────────────────────────


@cli.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List installed packages."""
    try:
        records = _service(ctx).list_packages()
    except WingetError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([r.model_dump() for r in records], indent=2, ensure_ascii=False))
        return

    if not records:
        click.secho("No packages found", fg="yellow")
        return

    click.secho(f"📦 Installed ({len(records)}):", fg="cyan", bold=True)
    for r in records:
        upgrade = f" → {r.available}" if r.available else ""
        click.echo(f"   {r.name:<40} {r.id:<40} {r.version}{upgrade}")


@cli.command("install-path")
@click.argument("package_id")
@click.option("--name", default=None, help="Display name hint.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install_path_cmd(ctx: click.Context, package_id: str, name: str | None, as_json: bool) -> None:
    """Show where a package is installed."""
    try:
        result = _service(ctx).install_path(package_id, name)
    except InvalidArgument as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(2)

    if as_json:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False))
    elif result.get("ok"):
        click.echo(result["path"])
    else:
        click.secho(f"⚠️  No install location found for {package_id}", fg="yellow")

    if not result.get("ok"):
        sys.exit(1)


# ── Act ─────────────────────────────────────────────────────────────


def _run_streamed(ctx: click.Context, start, track_id: str) -> None:  # type: ignore[no-untyped-def]
    """Run a mutating operation, echoing its output live.

    Ctrl-C cancels the run through its tracking token and waits for
    the tool to go away.
    """
    service = _service(ctx)
    quiet = ctx.obj.get("quiet", False)

    def _echo(event: StreamEvent) -> None:
        if event.track_id == track_id and not quiet:
            click.echo(event.data, nl=False, err=event.stream == "stderr")

    remove = service.bus.add_listener(_echo)
    try:
        try:
            future: Future[str] = start()
        except InvalidArgument as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(2)
        try:
            future.result()
        except KeyboardInterrupt:
            result = service.cancel(track_id)
            click.secho(f"\n⏹  Cancel requested: {result.to_dict()}", fg="yellow", err=True)
            future.exception()
            future.result()
    except Cancelled:
        click.secho("⏹  Cancelled", fg="yellow", err=True)
        sys.exit(130)
    except NonZeroExit as e:
        click.secho(f"\n❌ Failed (exit {e.exit_code})", fg="red", err=True)
        sys.exit(1)
    except WingetError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    finally:
        remove()

    click.secho("\n✅ Done", fg="green")


def _new_track_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@cli.command()
@click.argument("package_id")
@click.pass_context
def upgrade(ctx: click.Context, package_id: str) -> None:
    """Upgrade one package (exact id match)."""
    track_id = _new_track_id("upgrade")
    _run_streamed(ctx, lambda: _service(ctx).upgrade(package_id, track_id=track_id), track_id)


@cli.command("upgrade-all")
@click.pass_context
def upgrade_all(ctx: click.Context) -> None:
    """Upgrade every package with an available update."""
    track_id = _new_track_id("upgrade-all")
    _run_streamed(ctx, lambda: _service(ctx).upgrade_all(track_id=track_id), track_id)


@cli.command()
@click.argument("package_id")
@click.confirmation_option(prompt="Uninstall this package?")
@click.pass_context
def uninstall(ctx: click.Context, package_id: str) -> None:
    """Uninstall one package (exact id match)."""
    track_id = _new_track_id("uninstall")
    _run_streamed(ctx, lambda: _service(ctx).uninstall(package_id, track_id=track_id), track_id)


# ── Serve ───────────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", "-p", default=8000, type=int, help="Port number.")
@click.pass_context
def web(ctx: click.Context, host: str, port: int) -> None:
    """Start the JSON/SSE web API."""
    import atexit

    from wingetctl.ui.web.server import create_app, run_server

    service = _service(ctx)
    atexit.register(service.shutdown)
    app = create_app(service)

    click.echo()
    click.secho("⚡ wingetctl — Web API", bold=True)
    click.echo(f"   API:    http://{host}:{port}/api/packages")
    click.echo(f"   Stream: http://{host}:{port}/api/packages/stream")
    click.echo(f"   Tool:   {service.config.executable}")
    click.echo()

    run_server(app, host=host, port=port, debug=ctx.obj.get("debug", False))


if __name__ == "__main__":
    cli()
