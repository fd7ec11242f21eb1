"""
Status use case — mode, artifact freshness and snapshot presence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from nativeforge.core.config.loader import ConfigError, resolve_project
from nativeforge.core.context import BuildContext
from nativeforge.core.errors import BuildError
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.models.state import BuildRecord
from nativeforge.core.persistence.audit import AuditWriter
from nativeforge.core.services import archiver, native_compile, placement, snapshot


@dataclass
class ModuleStatus:
    name: str
    sources: int = 0
    stale_objects: list[str] = field(default_factory=list)
    library_built: bool = False
    library_stale: bool = True
    placed: bool = False


@dataclass
class StatusResult:
    """Aggregated build status."""

    project_name: str = ""
    project_root: Path | None = None
    config_path: Path | None = None
    mode: BuildMode = BuildMode.OFFLINE
    staleness: str = "mtime"
    modules: list[ModuleStatus] = field(default_factory=list)
    binary: str | None = None
    binary_present: bool = False
    archive: str = ""
    archive_present: bool = False
    snapshot_files: int = 0
    snapshot_created_at: str = ""
    snapshot_error: str = ""
    vendor_present: bool = False
    override_present: bool = False
    lock_present: bool = False
    last_build: BuildRecord | None = None
    recent_commands: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "project": {
                "name": self.project_name,
                "root": str(self.project_root),
                "config": str(self.config_path) if self.config_path else None,
            },
            "mode": self.mode.value,
            "staleness": self.staleness,
            "modules": [
                {
                    "name": m.name,
                    "sources": m.sources,
                    "stale_objects": m.stale_objects,
                    "library_built": m.library_built,
                    "library_stale": m.library_stale,
                    "placed": m.placed,
                }
                for m in self.modules
            ],
            "binary": {"name": self.binary, "present": self.binary_present},
            "snapshot": {
                "archive": self.archive,
                "present": self.archive_present,
                "files": self.snapshot_files,
                "created_at": self.snapshot_created_at,
                "error": self.snapshot_error,
                "vendor_present": self.vendor_present,
                "override_present": self.override_present,
                "lock_present": self.lock_present,
            },
            "last_build": self.last_build.model_dump() if self.last_build else None,
            "recent_commands": self.recent_commands,
        }


def _module_status(ctx: BuildContext, module) -> ModuleStatus:
    status = ModuleStatus(name=module.name)
    sources = module.sources()
    status.sources = len(sources)
    status.stale_objects = [
        ctx.rel(module.object_for(s))
        for s in sources
        if native_compile.object_is_stale(ctx, module, s)
    ]
    status.library_built = module.library.is_file()
    objects = module.objects()
    status.library_stale = bool(status.stale_objects) or (
        not all(o.is_file() for o in objects)
        or archiver.library_is_stale(ctx, module, objects)
    )
    status.placed = status.library_built and placement.placement_is_current(module)
    return status


def get_status(config_path: Path | None = None, mode: str | None = None) -> StatusResult:
    """Inspect the working copy without changing anything."""
    result = StatusResult()
    try:
        project, root, config_file = resolve_project(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    ctx = BuildContext.create(project, root, BuildMode.resolve(mode))
    result.project_name = project.name
    result.project_root = ctx.root
    result.config_path = config_file
    result.mode = ctx.mode
    result.staleness = project.staleness

    result.modules = [_module_status(ctx, m) for m in ctx.modules]

    result.binary = ctx.binary_name
    result.binary_present = bool(ctx.binary_dest and ctx.binary_dest.is_file())

    result.archive = ctx.rel(ctx.archive_path)
    result.archive_present = ctx.archive_path.is_file()
    if result.archive_present:
        try:
            manifest = snapshot.read_manifest(ctx.archive_path)
            result.snapshot_files = len(manifest.files)
            result.snapshot_created_at = manifest.created_at
        except BuildError as e:
            result.snapshot_error = e.message
    result.vendor_present = ctx.vendor_dir.is_dir()
    result.override_present = ctx.config_override.is_file()
    result.lock_present = ctx.lock_file.is_file()

    if ctx.state.last_build.operation_id:
        result.last_build = ctx.state.last_build
    result.recent_commands = len(AuditWriter(ctx.audit_path).read_recent(20))
    return result
