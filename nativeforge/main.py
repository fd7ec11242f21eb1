"""
nativeforge — CLI entrypoint.

Usage:
    nativeforge build                   # offline unless ONLINE=1
    ONLINE=1 nativeforge build
    ONLINE=1 nativeforge capture-snapshot
    nativeforge clean | deepclean
    nativeforge status
    nativeforge config check

Exit codes: 0 success, 1 build failure, 2 usage or configuration error.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from nativeforge import __version__
from nativeforge.core.observability.logging_config import (
    LOG_FILE_ENV,
    LOG_FILE_LEVEL_ENV,
    resolve_level,
    setup_logging,
)

EXIT_BUILD_FAILED = 1
EXIT_CONFIG_ERROR = 2

_MODE_CHOICE = click.Choice(["online", "offline"], case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="nativeforge")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to nativeforge.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """nativeforge — reproducible native + downstream builds, online or offline."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
        quiet_third_party=not debug,
    )


# ── Output helpers ──────────────────────────────────────────────────


def _progress_printer(ctx: click.Context):
    """Make-style progress: one ``[ tag ] what`` line per task that did work."""
    quiet = ctx.obj.get("quiet", False)
    verbose = ctx.obj.get("verbose", False)

    def _print(task, receipt) -> None:
        if quiet:
            return
        if receipt.skipped:
            if verbose:
                click.secho(f"[{task.tag:^5}] {receipt.output}", dim=True)
            return
        click.echo(f"[{task.tag:^5}] {receipt.output}")
        if verbose:
            for line in (receipt.stderr or receipt.stdout).splitlines():
                click.echo(f"        │ {line}")

    return _print


def _finish(ctx: click.Context, result, as_json: bool) -> None:
    """Print the outcome of a pipeline command and exit with its code."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.config_error:
        click.secho(f"❌ {result.config_error}", fg="red", err=True)
    elif result.error is not None:
        err = result.error
        click.secho(f"❌ {err.message}", fg="red", bold=True, err=True)
        if err.step:
            click.echo(f"   step: {err.step}", err=True)
        if err.diagnostic:
            click.echo(err.diagnostic, err=True)
    elif not ctx.obj.get("quiet"):
        report = result.report
        click.secho(
            f"✅ {result.command} ({result.mode.value}): "
            f"{report.ran} ran, {report.skipped} up to date, {report.duration_ms}ms",
            fg="green",
        )

    if result.config_error:
        sys.exit(EXIT_CONFIG_ERROR)
    if result.error is not None:
        sys.exit(EXIT_BUILD_FAILED)


# ── Pipeline commands ───────────────────────────────────────────────


@cli.command()
@click.option("--mode", type=_MODE_CHOICE, default=None, help="Build mode (default: from ONLINE).")
@click.option("--jobs", "-j", type=click.IntRange(min=1), default=None, help="Parallel tasks.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def build(ctx: click.Context, mode: str | None, jobs: int | None, as_json: bool) -> None:
    """Compile native code, place the library, run the downstream build.

    Examples:

        nativeforge build

        ONLINE=1 nativeforge build -j 8

        nativeforge build --mode offline --json
    """
    from nativeforge.core.use_cases.build import run_build

    result = run_build(
        config_path=ctx.obj.get("config_path"),
        mode=mode,
        jobs=jobs,
        on_progress=None if as_json else _progress_printer(ctx),
    )
    _finish(ctx, result, as_json)


@cli.command("capture-snapshot")
@click.option("--mode", type=_MODE_CHOICE, default=None, help="Must resolve to online.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def capture_snapshot(ctx: click.Context, mode: str | None, as_json: bool) -> None:
    """Vendor all dependencies into the portable archive (online only)."""
    from nativeforge.core.use_cases.snapshot import run_capture

    result = run_capture(
        config_path=ctx.obj.get("config_path"),
        mode=mode,
        on_progress=None if as_json else _progress_printer(ctx),
    )
    _finish(ctx, result, as_json)


@cli.command("restore-snapshot")
@click.option("--force", is_flag=True, help="Re-extract even if the vendor directory is current.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def restore_snapshot(ctx: click.Context, force: bool, as_json: bool) -> None:
    """Unpack the portable archive for an offline build."""
    from nativeforge.core.use_cases.snapshot import run_restore

    result = run_restore(
        config_path=ctx.obj.get("config_path"),
        force=force,
        on_progress=None if as_json else _progress_printer(ctx),
    )
    _finish(ctx, result, as_json)


# ── Reset commands ──────────────────────────────────────────────────


def _print_reset(ctx: click.Context, result) -> None:
    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    if ctx.obj.get("quiet"):
        return
    for path in result.removed:
        click.echo(f"[ rm  ] {path}")
    if not result.removed:
        click.echo("Nothing to remove.")


@cli.command()
@click.pass_context
def clean(ctx: click.Context) -> None:
    """Remove build outputs (sources and snapshot are kept)."""
    from nativeforge.core.use_cases.reset import run_clean

    _print_reset(ctx, run_clean(config_path=ctx.obj.get("config_path")))


@cli.command()
@click.pass_context
def deepclean(ctx: click.Context) -> None:
    """Remove everything but sources, including the dependency snapshot."""
    from nativeforge.core.use_cases.reset import run_deepclean

    _print_reset(ctx, run_deepclean(config_path=ctx.obj.get("config_path")))


# ── Inspection commands ─────────────────────────────────────────────


@cli.command()
@click.option("--mode", type=_MODE_CHOICE, default=None, help="Mode to report (default: from ONLINE).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, mode: str | None, as_json: bool) -> None:
    """Show mode, artifact freshness and snapshot presence."""
    from nativeforge.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"), mode=mode)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(EXIT_CONFIG_ERROR)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)

    click.secho(f"\n📋 {result.project_name}", fg="cyan", bold=True)
    click.echo(f"   Root: {result.project_root}")
    click.echo(f"   Mode: {result.mode.value}   Staleness: {result.staleness}")
    click.echo()

    click.secho(f"   Native modules: {len(result.modules)}", bold=True)
    for mod in result.modules:
        if mod.stale_objects or mod.library_stale:
            marker, color = "✗", "yellow"
        else:
            marker, color = "✓", "green"
        click.secho(f"     {marker} {mod.name}", fg=color, nl=False)
        click.echo(
            f"  sources={mod.sources} stale={len(mod.stale_objects)} "
            f"placed={'yes' if mod.placed else 'no'}"
        )

    if result.binary:
        click.echo(f"   Binary: {result.binary} ({'present' if result.binary_present else 'missing'})")

    click.echo()
    click.secho("   Snapshot:", bold=True)
    if result.archive_present:
        detail = result.snapshot_error or (
            f"{result.snapshot_files} files, captured {result.snapshot_created_at}"
        )
        color = "red" if result.snapshot_error else None
        click.secho(f"     {result.archive}: {detail}", fg=color)
    else:
        click.secho(f"     {result.archive}: missing", fg="yellow")
    click.echo(
        f"     vendor dir: {'yes' if result.vendor_present else 'no'}   "
        f"override: {'yes' if result.override_present else 'no'}   "
        f"lock: {'yes' if result.lock_present else 'no'}"
    )

    if result.last_build:
        lb = result.last_build
        click.echo()
        click.secho("   Last command:", bold=True)
        color = {"ok": "green", "failed": "red"}.get(lb.status, "white")
        click.echo(f"     {lb.command} ({lb.mode}) — ", nl=False)
        click.secho(lb.status, fg=color)
        if lb.failed_step:
            click.echo(f"     failed at {lb.failed_step}: {lb.error}")
        if lb.ended_at:
            click.echo(f"     at {lb.ended_at}")

    click.echo()


@cli.group()
def config() -> None:
    """Build configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate nativeforge.yml."""
    from nativeforge.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else EXIT_CONFIG_ERROR)

    project = result.project
    if result.valid and project is not None and result.config_path is not None:
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Project: {project.name or result.config_path.parent.name}")
        click.echo(f"   Native modules: {len(project.native_modules)}")
        click.echo(f"   Staleness: {project.staleness}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(EXIT_CONFIG_ERROR)

    click.echo()


if __name__ == "__main__":
    cli()
