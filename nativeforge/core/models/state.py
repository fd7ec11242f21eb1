"""
BuildState — what the last run observed.

Serialized to .nativeforge/state.json. It is disposable: deleting it
only means the next run rebuilds each library once, and under the
``hash`` staleness policy recompiles everything once.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class BuildRecord(BaseModel):
    """Summary of the last command run."""

    operation_id: str = ""
    command: str = ""              # build, capture-snapshot, restore-snapshot
    mode: str = ""                 # online, offline
    started_at: str = ""
    ended_at: str = ""
    status: str = ""               # ok, failed
    tasks_total: int = 0
    tasks_run: int = 0
    tasks_skipped: int = 0
    failed_step: str = ""
    error: str = ""


class BuildState(BaseModel):
    """Root state model."""

    schema_version: int = 1

    project_name: str = ""

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # artifact path (project-relative) → content fingerprint
    fingerprints: dict[str, str] = Field(default_factory=dict)

    # library path (project-relative) → member names of its last archive
    libraries: dict[str, list[str]] = Field(default_factory=dict)

    last_build: BuildRecord = Field(default_factory=BuildRecord)

    metadata: dict[str, Any] = Field(default_factory=dict)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def touch(self) -> None:
        self.updated_at = _now_iso()

    def fingerprint(self, key: str) -> str | None:
        with self._lock:
            return self.fingerprints.get(key)

    def record_fingerprint(self, key: str, value: str) -> None:
        # compile tasks record from worker threads
        with self._lock:
            self.fingerprints[key] = value

    def library_members(self, key: str) -> list[str] | None:
        with self._lock:
            members = self.libraries.get(key)
            return list(members) if members is not None else None

    def record_library_members(self, key: str, members: list[str]) -> None:
        with self._lock:
            self.libraries[key] = list(members)
