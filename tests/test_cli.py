"""
Tests for CLI commands — end-to-end through click's CliRunner.
"""

import json
import os

from click.testing import CliRunner

from nativeforge.main import cli


def _invoke(ws, *args, online: bool = False):
    runner = CliRunner()
    env = {"ONLINE": "1"} if online else {}
    return runner.invoke(cli, ["--config", str(ws.config), *args], env=env)


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("build", "capture-snapshot", "restore-snapshot", "clean", "deepclean", "status"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestBuildCommand:
    def test_progress_lines(self, workspace):
        result = _invoke(workspace, "build", online=True)
        assert result.exit_code == 0, result.output
        assert "[ gcc ] compiling libraw/src/raw.c" in result.output
        assert "[ ar  ] bundling [ libraw/build/raw.o libraw/build/udp.o ] into libraw/build/libraw.a" in result.output
        assert "[ cp  ] copying libraw.a into target/debug/deps" in result.output
        assert "[cargo] " in result.output
        assert "build (online)" in result.output

    def test_quiet(self, workspace):
        result = CliRunner().invoke(cli, ["--quiet", "--config", str(workspace.config), "build", "--mode", "online"])
        assert result.exit_code == 0
        assert "[ gcc ]" not in result.output

    def test_mode_flag_overrides_env(self, workspace):
        result = _invoke(workspace, "build", "--mode", "offline", online=True)
        assert result.exit_code == 1
        assert "Portable archive not found" in result.output

    def test_json(self, workspace):
        result = _invoke(workspace, "build", "--json", "-j", "1", online=True)
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["ok"] is True
        assert data["mode"] == "online"
        assert data["report"]["ran"] == 5

    def test_compile_error_exit_code_and_diagnostic(self, workspace):
        workspace.source("udp.c").write_text("#error nope\n")
        result = _invoke(workspace, "build", online=True)
        assert result.exit_code == 1
        assert "step: compile:libraw:udp.c" in result.output
        assert "libraw/src/udp.c:1:2: error: #error directive" in result.output

    def test_config_error_exit_code(self, workspace):
        workspace.config.write_text("staleness: [broken\n")
        result = _invoke(workspace, "build")
        assert result.exit_code == 2
        assert "Invalid YAML" in result.output

    def test_crashed_step_exits_with_build_error(self, workspace, monkeypatch):
        def deny(src, dst):
            raise PermissionError(13, "Permission denied", str(dst))

        monkeypatch.setattr("nativeforge.core.services.placement.atomic_copy", deny)
        result = _invoke(workspace, "build", online=True)
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "place:libraw crashed" in result.output
        assert "step: place:libraw" in result.output

    def test_invalid_jobs_is_usage_error(self, workspace):
        result = _invoke(workspace, "build", "-j", "0")
        assert result.exit_code == 2


class TestSnapshotCommands:
    def test_capture_requires_online(self, workspace):
        result = _invoke(workspace, "capture-snapshot")
        assert result.exit_code == 1
        assert "requires online mode" in result.output

    def test_capture_then_restore(self, workspace):
        result = _invoke(workspace, "capture-snapshot", online=True)
        assert result.exit_code == 0, result.output
        assert "[ tar ] packed 4 files from cargo_deps into common/cargo_deps.tar.gz" in result.output

        result = _invoke(workspace, "restore-snapshot")
        assert result.exit_code == 0, result.output
        assert "[ tar ] extracting Rust dependencies..." in result.output
        assert workspace.vendor.is_dir()

    def test_restore_corrupt(self, workspace):
        workspace.archive.parent.mkdir()
        workspace.archive.write_bytes(b"\x1f\x8b garbage")
        result = _invoke(workspace, "restore-snapshot")
        assert result.exit_code == 1
        assert "Cannot read portable archive" in result.output


class TestScenarios:
    def test_fresh_checkout_offline_with_archive(self, workspace, no_network):
        # maintainer captures once, online
        assert _invoke(workspace, "capture-snapshot", online=True).exit_code == 0
        # a fresh checkout carries sources, manifest, lock and the archive
        assert _invoke(workspace, "clean").exit_code == 0
        workspace.clear_calls()

        result = _invoke(workspace, "build")
        assert result.exit_code == 0, result.output
        assert workspace.binary.is_file()
        assert workspace.calls("cargo") == ["cargo build --offline --frozen"]

    def test_fresh_checkout_offline_without_archive(self, workspace):
        result = _invoke(workspace, "build")
        assert result.exit_code == 1
        assert "Portable archive not found" in result.output
        assert workspace.calls("cargo") == []
        assert not workspace.binary.exists()

    def test_deepclean_then_online_build(self, workspace):
        assert _invoke(workspace, "capture-snapshot", online=True).exit_code == 0
        assert _invoke(workspace, "build").exit_code == 0

        result = _invoke(workspace, "deepclean")
        assert result.exit_code == 0
        assert "[ rm  ] common/cargo_deps.tar.gz" in result.output
        workspace.clear_calls()

        result = _invoke(workspace, "build", online=True)
        assert result.exit_code == 0, result.output
        assert workspace.binary.is_file()
        assert workspace.calls("cargo") == ["cargo build"]

    def test_online_after_offline_drops_override(self, workspace):
        assert _invoke(workspace, "capture-snapshot", online=True).exit_code == 0
        assert _invoke(workspace, "build").exit_code == 0
        assert workspace.override.is_file()

        result = _invoke(workspace, "build", online=True)
        assert result.exit_code == 0, result.output
        assert not workspace.override.exists()

    def test_manifest_change_is_resolution_drift(self, workspace):
        assert _invoke(workspace, "capture-snapshot", online=True).exit_code == 0
        manifest = workspace.root / "Cargo.toml"
        manifest.write_text(manifest.read_text() + 'serde = "1"\n')

        result = _invoke(workspace, "build")
        assert result.exit_code == 1
        assert "resolution lock would need to change" in result.output
        assert "needs to be updated but --frozen was passed" in result.output


class TestResetCommands:
    def test_clean_nothing(self, workspace):
        result = _invoke(workspace, "clean")
        assert result.exit_code == 0
        assert "Nothing to remove." in result.output

    def test_clean_lists_removed(self, workspace):
        _invoke(workspace, "build", online=True)
        result = _invoke(workspace, "clean")
        assert "[ rm  ] target" in result.output
        assert "[ rm  ] libraw/build" in result.output


class TestStatusCommand:
    def test_status_fresh(self, workspace):
        result = _invoke(workspace, "status")
        assert result.exit_code == 0
        assert "grnvs" in result.output
        assert "Mode: offline" in result.output
        assert "missing" in result.output

    def test_status_json_after_build(self, workspace):
        _invoke(workspace, "capture-snapshot", online=True)
        _invoke(workspace, "build")
        result = _invoke(workspace, "status", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        module = data["modules"][0]
        assert module["stale_objects"] == []
        assert module["placed"] is True
        assert data["snapshot"]["present"] is True
        assert data["snapshot"]["files"] == 4
        assert data["binary"]["present"] is True
        assert data["last_build"]["status"] == "ok"

    def test_status_reports_stale_source(self, workspace):
        _invoke(workspace, "build", online=True)
        obj = workspace.obj("udp.c")
        past = obj.stat().st_mtime_ns - 10**10
        os.utime(obj, ns=(past, past))
        data = json.loads(_invoke(workspace, "status", "--json").output)
        assert data["modules"][0]["stale_objects"] == ["libraw/build/udp.o"]


class TestConfigCheckCommand:
    def test_valid(self, workspace):
        result = _invoke(workspace, "config", "check")
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "Project: grnvs" in result.output
        assert "Native modules: 1" in result.output
        assert "Staleness: mtime" in result.output

    def test_invalid(self, workspace):
        workspace.config.write_text("jobs: -3\n")
        result = _invoke(workspace, "config", "check")
        assert result.exit_code == 2
        assert "Configuration errors" in result.output

    def test_json(self, workspace):
        result = _invoke(workspace, "config", "check", "--json")
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["module_count"] == 1
