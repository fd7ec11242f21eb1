"""
Tests for the build mode dispatcher — planning, execution, state and audit.
"""

import json
from pathlib import Path

from nativeforge.adapters.mock import MockAdapter
from nativeforge.adapters.registry import AdapterRegistry
from nativeforge.core.config.loader import resolve_project
from nativeforge.core.context import BuildContext
from nativeforge.core.engine.executor import (
    ExecutionReport,
    execute_plan,
    generate_operation_id,
    plan_build,
    plan_capture,
    write_audit_entries,
)
from nativeforge.core.errors import InternalFailure, SnapshotCorrupt, ToolchainFailure
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.persistence.audit import AuditWriter
from nativeforge.core.use_cases.build import run_build


def _ctx(ws, mode: BuildMode, registry=None) -> BuildContext:
    project, root, _ = resolve_project(ws.config)
    return BuildContext.create(project, root, mode, registry=registry)


def _deps(plan) -> dict[str, list[str]]:
    return {t.id: t.depends_on for t in plan.tasks}


# ── Planning ─────────────────────────────────────────────────────────


class TestPlanBuild:
    def test_online_graph(self, workspace):
        plan = plan_build(_ctx(workspace, BuildMode.ONLINE))
        deps = _deps(plan)
        assert deps["archive:libraw"] == ["compile:libraw:raw.c", "compile:libraw:udp.c"]
        assert deps["place:libraw"] == ["archive:libraw"]
        assert deps["downstream:build"] == ["place:libraw"]
        assert "snapshot:restore" not in deps

    def test_offline_graph_adds_independent_restore(self, workspace):
        plan = plan_build(_ctx(workspace, BuildMode.OFFLINE))
        deps = _deps(plan)
        assert deps["snapshot:restore"] == []
        assert deps["downstream:build"] == ["place:libraw", "snapshot:restore"]

    def test_multiple_modules(self, workspace):
        crc = workspace.root / "crc" / "src"
        crc.mkdir(parents=True)
        (crc / "crc32.c").write_text("int crc;\n")
        workspace.write_config(native_modules=[
            {"name": "libraw", "path": "libraw"},
            {"name": "crc", "path": "crc"},
        ])
        plan = plan_build(_ctx(workspace, BuildMode.ONLINE))
        deps = _deps(plan)
        assert deps["archive:crc"] == ["compile:crc:crc32.c"]
        assert deps["downstream:build"] == ["place:libraw", "place:crc"]

    def test_tags(self, workspace):
        plan = plan_build(_ctx(workspace, BuildMode.OFFLINE))
        tags = {t.id: t.tag for t in plan.tasks}
        assert tags["compile:libraw:udp.c"] == "gcc"
        assert tags["archive:libraw"] == "ar"
        assert tags["place:libraw"] == "cp"
        assert tags["snapshot:restore"] == "tar"
        assert tags["downstream:build"] == "cargo"

    def test_capture_plan(self, workspace):
        plan = plan_capture(_ctx(workspace, BuildMode.ONLINE))
        assert plan.task_ids() == ["snapshot:capture"]
        assert plan.command == "capture-snapshot"


# ── Execution ────────────────────────────────────────────────────────


class TestExecutePlan:
    def test_failure_is_reported_not_raised(self, workspace):
        workspace.source("raw.c").unlink()
        mock = MockAdapter()
        mock.set_failure("compile:libraw:udp.c", error="exit 1", stderr="udp.c:1: error: boom")
        ctx = _ctx(workspace, BuildMode.ONLINE, registry=AdapterRegistry(mock_adapter=mock))

        report = execute_plan(ctx, plan_build(ctx))
        assert report.status == "failed"
        assert isinstance(report.error, ToolchainFailure)
        assert report.failed_step == "compile:libraw:udp.c"
        assert "downstream:build" not in mock.action_ids
        assert report.to_dict()["error"]["diagnostic"] == "udp.c:1: error: boom"

    def test_offline_without_archive_never_runs_downstream(self, workspace):
        result = run_build(config_path=workspace.config, mode="offline")
        assert isinstance(result.error, SnapshotCorrupt)
        assert workspace.calls("cargo") == []
        assert not workspace.binary.exists()

    def test_progress_callback_sees_every_completed_task(self, workspace):
        seen = []
        result = run_build(
            config_path=workspace.config,
            mode="online",
            on_progress=lambda task, receipt: seen.append(task.id),
        )
        assert result.ok
        assert seen[-1] == "downstream:build"
        assert set(seen) == {
            "compile:libraw:raw.c",
            "compile:libraw:udp.c",
            "archive:libraw",
            "place:libraw",
            "downstream:build",
        }

    def test_jobs_override(self, workspace):
        result = run_build(config_path=workspace.config, mode="online", jobs=1)
        assert result.ok
        assert result.project.jobs == 1


# ── State and audit ──────────────────────────────────────────────────


class TestPersistence:
    def test_state_records_last_build(self, workspace):
        run_build(config_path=workspace.config, mode="online")
        state = json.loads((workspace.root / ".nativeforge" / "state.json").read_text())
        last = state["last_build"]
        assert last["command"] == "build"
        assert last["mode"] == "online"
        assert last["status"] == "ok"
        assert last["tasks_total"] == 5
        assert last["tasks_run"] == 5

    def test_failed_build_is_recorded(self, workspace):
        run_build(config_path=workspace.config, mode="offline")
        entries = AuditWriter(project_root=workspace.root).read_all()
        assert entries[-1].status == "failed"
        assert entries[-1].failed_step == "snapshot:restore"
        assert entries[-1].mode == "offline"

    def test_crashed_task_is_recorded_as_failed(self, workspace, monkeypatch):
        def deny(src, dst):
            raise PermissionError(13, "Permission denied", str(dst))

        monkeypatch.setattr("nativeforge.core.services.placement.atomic_copy", deny)
        result = run_build(config_path=workspace.config, mode="online")

        assert not result.ok
        assert isinstance(result.error, InternalFailure)
        assert result.error.step == "place:libraw"
        assert workspace.calls("cargo") == []

        state = json.loads((workspace.root / ".nativeforge" / "state.json").read_text())
        assert state["last_build"]["status"] == "failed"
        assert state["last_build"]["failed_step"] == "place:libraw"
        entries = AuditWriter(project_root=workspace.root).read_all()
        assert entries[-1].status == "failed"

    def test_crash_outside_tasks_is_recorded_as_failed(self, workspace):
        def explode(task, receipt):
            raise RuntimeError("progress sink closed")

        result = run_build(config_path=workspace.config, mode="online", on_progress=explode)
        assert isinstance(result.error, InternalFailure)
        assert "progress sink closed" in result.error.message
        entries = AuditWriter(project_root=workspace.root).read_all()
        assert entries[-1].status == "failed"

    def test_write_audit_entries(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        report = ExecutionReport(operation_id="op-1", command="build", mode=BuildMode.ONLINE, planned=3)
        write_audit_entries(report, writer, context={"jobs": 2})
        entry = writer.read_all()[0]
        assert entry.status == "ok"
        assert entry.tasks_total == 3
        assert entry.context == {"jobs": 2}

    def test_operation_id_format(self):
        op = generate_operation_id()
        assert op.startswith("op-")
        assert op != generate_operation_id()
