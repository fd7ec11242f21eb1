"""
Engine executor — the build mode dispatcher.

Turns a BuildContext into a task graph, runs it, and reports.

    online:   compile* → archive → place ─────────────┐
                                                      ├→ downstream build (live)
    offline:  compile* → archive → place ─────────────┤
              restore snapshot ───────────────────────┴→ downstream build (frozen)

The mode is read once from the context; the two terminal paths never
mix. Restoration has no dependency on the native chain, so it overlaps
with compilation.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from nativeforge.core.context import BuildContext
from nativeforge.core.engine.graph import ProgressCallback, Task, run_graph
from nativeforge.core.errors import BuildError
from nativeforge.core.models.action import Receipt
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.persistence.audit import AuditEntry, AuditWriter
from nativeforge.core.services import archiver, downstream, native_compile, placement, snapshot

logger = logging.getLogger(__name__)


@dataclass
class ExecutionPlan:
    """A planned task graph for one command."""

    operation_id: str = ""
    command: str = ""
    mode: BuildMode = BuildMode.OFFLINE
    tasks: list[Task] = field(default_factory=list)

    @property
    def total_tasks(self) -> int:
        return len(self.tasks)

    def task_ids(self) -> list[str]:
        return [t.id for t in self.tasks]


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    operation_id: str = ""
    command: str = ""
    mode: BuildMode = BuildMode.OFFLINE
    planned: int = 0
    receipts: list[Receipt] = field(default_factory=list)
    error: BuildError | None = None
    started_at: str = ""
    ended_at: str = ""
    duration_ms: int = 0

    @property
    def ran(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.skipped)

    @property
    def status(self) -> str:
        return "failed" if self.error is not None else "ok"

    @property
    def failed_step(self) -> str:
        return self.error.step if self.error is not None else ""

    def to_dict(self) -> dict:
        data = {
            "operation_id": self.operation_id,
            "command": self.command,
            "mode": self.mode.value,
            "status": self.status,
            "planned": self.planned,
            "ran": self.ran,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "receipts": [
                r.model_dump(mode="json", exclude={"stdout", "stderr"}) for r in self.receipts
            ],
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


# ═══════════════════════════════════════════════════════════════════
#  Planning
# ═══════════════════════════════════════════════════════════════════


def plan_native(ctx: BuildContext) -> tuple[list[Task], list[str]]:
    """compile → archive → place for every native module.

    Returns:
        (tasks, ids of the placement tasks)

    Raises:
        MissingSource: a module has no sources to compile.
    """
    tasks: list[Task] = []
    placed: list[str] = []

    for module in ctx.modules:
        compile_ids = []
        for source in native_compile.collect_sources(ctx, module):
            tid = native_compile.compile_task_id(module, source)
            tasks.append(Task(
                id=tid,
                run=lambda m=module, s=source: native_compile.compile_source(ctx, m, s),
                tag=native_compile.STEP_TAG,
            ))
            compile_ids.append(tid)

        archive_id = archiver.archive_task_id(module)
        tasks.append(Task(
            id=archive_id,
            run=lambda m=module: archiver.build_library(ctx, m),
            depends_on=compile_ids,
            tag=archiver.STEP_TAG,
        ))

        place_id = placement.place_task_id(module)
        tasks.append(Task(
            id=place_id,
            run=lambda m=module: placement.place_library(ctx, m),
            depends_on=[archive_id],
            tag=placement.STEP_TAG,
        ))
        placed.append(place_id)

    return tasks, placed


def plan_build(ctx: BuildContext, operation_id: str = "") -> ExecutionPlan:
    """Build the full graph for ``ctx.mode``."""
    plan = ExecutionPlan(
        operation_id=operation_id or generate_operation_id(),
        command="build",
        mode=ctx.mode,
    )
    tasks, downstream_deps = plan_native(ctx)

    if ctx.mode is BuildMode.OFFLINE:
        tasks.append(Task(
            id=snapshot.RESTORE_TASK_ID,
            run=lambda: snapshot.restore_snapshot(ctx),
            tag=snapshot.STEP_TAG,
        ))
        downstream_deps = [*downstream_deps, snapshot.RESTORE_TASK_ID]

    tasks.append(Task(
        id=downstream.DOWNSTREAM_TASK_ID,
        run=lambda: downstream.run_downstream_build(ctx),
        depends_on=downstream_deps,
        tag=downstream.STEP_TAG,
    ))

    plan.tasks = tasks
    return plan


def plan_capture(ctx: BuildContext, operation_id: str = "") -> ExecutionPlan:
    return ExecutionPlan(
        operation_id=operation_id or generate_operation_id(),
        command="capture-snapshot",
        mode=ctx.mode,
        tasks=[Task(
            id=snapshot.CAPTURE_TASK_ID,
            run=lambda: snapshot.capture_snapshot(ctx),
            tag=snapshot.STEP_TAG,
        )],
    )


def plan_restore(ctx: BuildContext, operation_id: str = "", force: bool = False) -> ExecutionPlan:
    return ExecutionPlan(
        operation_id=operation_id or generate_operation_id(),
        command="restore-snapshot",
        mode=ctx.mode,
        tasks=[Task(
            id=snapshot.RESTORE_TASK_ID,
            run=lambda: snapshot.restore_snapshot(ctx, force=force),
            tag=snapshot.STEP_TAG,
        )],
    )


# ═══════════════════════════════════════════════════════════════════
#  Execution
# ═══════════════════════════════════════════════════════════════════


def execute_plan(
    ctx: BuildContext,
    plan: ExecutionPlan,
    on_progress: ProgressCallback | None = None,
) -> ExecutionReport:
    """Run a plan's graph. Build failures are captured in the report.

    Args:
        ctx: Build context the plan was made for.
        plan: The plan to execute.
        on_progress: Called after each task completes.

    Returns:
        ExecutionReport; ``report.error`` holds the first failure, if any.
    """
    report = ExecutionReport(
        operation_id=plan.operation_id,
        command=plan.command,
        mode=plan.mode,
        planned=plan.total_tasks,
        started_at=datetime.now(UTC).isoformat(),
    )

    def _record(task: Task, receipt: Receipt) -> None:
        report.receipts.append(receipt)
        marker = "✓" if receipt.ok else "⊘"
        logger.info("%s %s → %s", marker, task.id, receipt.status)
        if on_progress is not None:
            on_progress(task, receipt)

    start = time.monotonic()
    try:
        run_graph(plan.tasks, jobs=ctx.jobs, on_progress=_record)
    except BuildError as e:
        logger.error("✗ %s: %s", e.step or plan.command, e.message)
        report.error = e
    finally:
        report.duration_ms = int((time.monotonic() - start) * 1000)
        report.ended_at = datetime.now(UTC).isoformat()

    return report


def write_audit_entries(
    report: ExecutionReport,
    audit_writer: AuditWriter,
    context: dict | None = None,
) -> None:
    """Append the report's summary to the audit ledger."""
    entry = AuditEntry(
        operation_id=report.operation_id,
        command=report.command,
        mode=report.mode.value,
        status=report.status,
        tasks_total=report.planned,
        tasks_run=report.ran,
        tasks_skipped=report.skipped,
        duration_ms=report.duration_ms,
        failed_step=report.failed_step,
        errors=[report.error.message] if report.error is not None else [],
        context=context or {},
    )
    audit_writer.write(entry)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
