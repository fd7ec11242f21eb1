"""
Snapshot manifest — the table of contents of a portable archive.

Stored as the first member (``snapshot_manifest.json``) of every
archive so it can be read without decompressing the vendor tree. The
per-file digests are what make restore verifiable byte-for-byte.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

MANIFEST_NAME = "snapshot_manifest.json"
FORMAT_VERSION = 1


class SnapshotFile(BaseModel):
    sha256: str
    size: int
    mode: int = 0o644


class SnapshotManifest(BaseModel):
    format_version: int = FORMAT_VERSION
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    # Archive member names (project-relative at capture time)
    vendor_dir: str
    config_override: str
    lock_file: str | None = None
    lock_sha256: str | None = None

    # vendor-relative POSIX path → file entry
    files: dict[str, SnapshotFile] = Field(default_factory=dict)
    dirs: list[str] = Field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files.values())
