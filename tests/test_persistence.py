"""
Tests for persistence — state file, audit ledger, atomic file helpers.
"""

import json
import os
from pathlib import Path

from nativeforge.core.models.state import BuildState
from nativeforge.core.persistence.audit import AuditEntry, AuditWriter
from nativeforge.core.persistence.state_file import default_state_path, load_state, save_state
from nativeforge.core.services.fsutil import (
    atomic_copy,
    atomic_write_bytes,
    is_newer,
    remove_if_empty,
    remove_path,
    temp_sibling,
)


class TestStateFile:
    """Tests for state file persistence."""

    def test_save_and_load(self, tmp_path: Path):
        path = default_state_path(tmp_path)
        state = BuildState(project_name="grnvs")
        state.record_fingerprint("libraw/build/udp.o", "f00d")
        state.last_build.command = "build"
        state.last_build.status = "ok"

        save_state(state, path)
        assert path == tmp_path / ".nativeforge" / "state.json"

        loaded = load_state(path)
        assert loaded.project_name == "grnvs"
        assert loaded.fingerprint("libraw/build/udp.o") == "f00d"
        assert loaded.last_build.status == "ok"

    def test_load_missing_returns_fresh(self, tmp_path: Path):
        state = load_state(tmp_path / "nonexistent.json")
        assert state.project_name == ""
        assert state.fingerprints == {}

    def test_load_corrupt_returns_fresh(self, tmp_path: Path):
        path = tmp_path / "corrupt.json"
        path.write_text("not json at all {{{")
        assert load_state(path).project_name == ""

    def test_save_leaves_no_temp_files(self, tmp_path: Path):
        path = tmp_path / "deep" / "state.json"
        save_state(BuildState(project_name="x"), path)
        assert os.listdir(path.parent) == ["state.json"]
        assert json.loads(path.read_text())["project_name"] == "x"


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(project_root=tmp_path)
        writer.write(AuditEntry(operation_id="op-1", command="build", mode="offline", status="ok"))
        writer.write(AuditEntry(operation_id="op-2", command="clean", status="ok"))

        assert writer.path == tmp_path / ".nativeforge" / "audit.ndjson"
        entries = writer.read_all()
        assert [e.operation_id for e in entries] == ["op-1", "op-2"]
        assert entries[0].mode == "offline"

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(operation_id="op-1"))
        with path.open("a") as f:
            f.write("{broken\n")
        writer.write(AuditEntry(operation_id="op-2"))
        assert [e.operation_id for e in writer.read_all()] == ["op-1", "op-2"]

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(operation_id=f"op-{i}"))
        assert [e.operation_id for e in writer.read_recent(2)] == ["op-3", "op-4"]

    def test_missing_ledger(self, tmp_path: Path):
        assert AuditWriter(tmp_path / "none.ndjson").read_all() == []


class TestFsUtil:
    def test_temp_sibling_same_dir(self, tmp_path: Path):
        target = tmp_path / "libraw.a"
        tmp = temp_sibling(target, "a")
        assert tmp.parent == tmp_path
        assert tmp.name.startswith(".libraw.a.")
        assert not tmp.exists()

    def test_atomic_write_replaces(self, tmp_path: Path):
        target = tmp_path / "out" / "file.bin"
        atomic_write_bytes(target, b"one")
        atomic_write_bytes(target, b"two")
        assert target.read_bytes() == b"two"
        assert os.listdir(target.parent) == ["file.bin"]

    def test_atomic_copy_keeps_mode(self, tmp_path: Path):
        src = tmp_path / "tool"
        src.write_bytes(b"#!/bin/sh\n")
        src.chmod(0o755)
        dst = tmp_path / "deps" / "tool"
        atomic_copy(src, dst)
        assert dst.read_bytes() == src.read_bytes()
        assert dst.stat().st_mode & 0o777 == 0o755

    def test_is_newer(self, tmp_path: Path):
        a, b = tmp_path / "a", tmp_path / "b"
        a.write_text("a")
        b.write_text("b")
        os.utime(a, ns=(1_000_000_000, 1_000_000_000))
        os.utime(b, ns=(2_000_000_000, 2_000_000_000))
        assert is_newer(b, a)
        assert not is_newer(a, b)
        assert not is_newer(a, a)
        assert not is_newer(tmp_path / "missing", a)

    def test_remove_path(self, tmp_path: Path):
        d = tmp_path / "tree" / "sub"
        d.mkdir(parents=True)
        (d / "f").write_text("x")
        f = tmp_path / "file"
        f.write_text("x")
        assert remove_path(tmp_path / "tree")
        assert remove_path(f)
        assert not remove_path(tmp_path / "absent")
        assert not (tmp_path / "tree").exists()

    def test_remove_if_empty(self, tmp_path: Path):
        full = tmp_path / "full"
        full.mkdir()
        (full / "x").write_text("x")
        empty = tmp_path / "empty"
        empty.mkdir()
        assert not remove_if_empty(full)
        assert remove_if_empty(empty)
        assert not remove_if_empty(tmp_path / "absent")
