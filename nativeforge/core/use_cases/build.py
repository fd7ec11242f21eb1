"""
Build use case — the full vertical slice for ``nativeforge build``.

Loads config, resolves the mode, plans the task graph for that mode,
executes it, and persists state and the audit entry whether the build
succeeded or not.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from nativeforge.adapters.registry import AdapterRegistry
from nativeforge.core.config.loader import ConfigError, resolve_project
from nativeforge.core.context import BuildContext
from nativeforge.core.engine.executor import (
    ExecutionPlan,
    ExecutionReport,
    execute_plan,
    generate_operation_id,
    plan_build,
    write_audit_entries,
)
from nativeforge.core.engine.graph import ProgressCallback
from nativeforge.core.errors import BuildError, InternalFailure
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.models.project import Project
from nativeforge.core.persistence.audit import AuditWriter
from nativeforge.core.persistence.state_file import save_state

logger = logging.getLogger(__name__)

Planner = Callable[[BuildContext, str], ExecutionPlan]


@dataclass
class BuildResult:
    """Result of one pipeline command (build, capture, restore)."""

    command: str = "build"
    report: ExecutionReport | None = None
    project: Project | None = None
    project_root: Path | None = None
    mode: BuildMode | None = None
    error: BuildError | None = None
    config_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.config_error is None

    def to_dict(self) -> dict:
        result: dict = {"command": self.command, "ok": self.ok}
        if self.config_error:
            result["config_error"] = self.config_error
            return result

        result["project_name"] = self.project.name if self.project else ""
        result["project_root"] = str(self.project_root)
        result["mode"] = self.mode.value if self.mode else None
        if self.report:
            result["report"] = self.report.to_dict()
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


def run_pipeline(
    command: str,
    planner: Planner,
    config_path: Path | None = None,
    mode: str | None = None,
    jobs: int | None = None,
    registry: AdapterRegistry | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Load, plan, execute, persist. Shared by build and the snapshot commands.

    Args:
        command: Command name recorded in state and audit.
        planner: Builds the task graph from the context.
        config_path: Optional explicit path to nativeforge.yml.
        mode: Explicit mode ("online"/"offline"); None reads ONLINE.
        jobs: Override for the configured parallelism.
        registry: Optional pre-configured adapter registry.
        on_progress: Called after each task completes.
    """
    result = BuildResult(command=command)

    # ── Load project config ──────────────────────────────────────
    try:
        project, project_root, _ = resolve_project(config_path)
    except ConfigError as e:
        result.config_error = str(e)
        return result

    if jobs is not None:
        project = project.model_copy(update={"jobs": jobs})

    build_mode = BuildMode.resolve(mode)
    ctx = BuildContext.create(project, project_root, build_mode, registry=registry)

    result.project = project
    result.project_root = ctx.root
    result.mode = build_mode
    logger.info("%s: mode=%s root=%s jobs=%d", command, build_mode.value, ctx.root, ctx.jobs)

    operation_id = generate_operation_id()
    report = ExecutionReport(operation_id=operation_id, command=command, mode=build_mode)

    try:
        # ── Plan ─────────────────────────────────────────────────
        try:
            plan = planner(ctx, operation_id)
        except BuildError as e:
            logger.error("Planning %s failed: %s", command, e.message)
            report.error = e
        else:
            # ── Execute ──────────────────────────────────────────
            report = execute_plan(ctx, plan, on_progress=on_progress)
    except Exception as e:
        # outside any task (a progress callback, a planner bug): still a failed run
        logger.error("%s aborted", command, exc_info=e)
        report.error = InternalFailure(
            f"{command} aborted: {e}", diagnostic=f"{type(e).__name__}: {e}"
        )
    finally:
        result.report = report
        result.error = report.error
        _persist(ctx, report)

    return result


def _persist(ctx: BuildContext, report: ExecutionReport) -> None:
    state = ctx.state
    state.project_name = ctx.project.name
    record = state.last_build
    record.operation_id = report.operation_id
    record.command = report.command
    record.mode = report.mode.value
    record.started_at = report.started_at
    record.ended_at = report.ended_at
    record.status = report.status
    record.tasks_total = report.planned
    record.tasks_run = report.ran
    record.tasks_skipped = report.skipped
    record.failed_step = report.failed_step
    record.error = report.error.message if report.error is not None else ""

    try:
        save_state(state, ctx.state_path)
    except OSError as e:
        logger.warning("Build state not saved: %s", e)

    write_audit_entries(
        report,
        AuditWriter(ctx.audit_path),
        context={"root": str(ctx.root), "jobs": ctx.jobs},
    )


def run_build(
    config_path: Path | None = None,
    mode: str | None = None,
    jobs: int | None = None,
    registry: AdapterRegistry | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Compile, archive, place, then run the downstream build for the mode."""
    return run_pipeline(
        "build",
        plan_build,
        config_path=config_path,
        mode=mode,
        jobs=jobs,
        registry=registry,
        on_progress=on_progress,
    )
