"""
Build context — every resolved path and collaborator for one invocation.

Created once by the use case that handles a command and threaded
explicitly through every step. Steps never derive a path on their own
and never read the environment; if a step needs to know where
something lives, it is a field here.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from nativeforge.adapters.registry import AdapterRegistry
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.models.project import NativeModule, Project
from nativeforge.core.models.state import BuildState
from nativeforge.core.persistence.audit import DEFAULT_AUDIT_FILE
from nativeforge.core.persistence.state_file import (
    DEFAULT_STATE_DIR,
    DEFAULT_STATE_FILE,
    load_state,
)
from nativeforge.core.services.fsutil import display_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModulePaths:
    """Resolved locations for one native module."""

    name: str
    root: Path
    src_dir: Path
    include_dir: Path
    build_dir: Path
    library: Path
    placed_library: Path
    source_glob: str = "*.c"

    def sources(self) -> list[Path]:
        """Current source files, sorted for a stable task order."""
        if not self.src_dir.is_dir():
            return []
        return sorted(p for p in self.src_dir.glob(self.source_glob) if p.is_file())

    def object_for(self, source: Path) -> Path:
        return self.build_dir / f"{source.stem}.o"

    def objects(self) -> list[Path]:
        return [self.object_for(s) for s in self.sources()]


@dataclass
class BuildContext:
    project: Project
    root: Path
    mode: BuildMode
    registry: AdapterRegistry
    state: BuildState = field(default_factory=BuildState)

    modules: list[ModulePaths] = field(default_factory=list)

    output_dir: Path = Path()
    search_dir: Path = Path()
    binary_name: str | None = None
    binary_path: Path | None = None      # produced by the downstream tool
    binary_dest: Path | None = None      # copy at the project root
    lock_file: Path = Path()

    vendor_dir: Path = Path()
    archive_path: Path = Path()
    config_override: Path = Path()

    state_dir: Path = Path()
    state_path: Path = Path()
    audit_path: Path = Path()

    @classmethod
    def create(
        cls,
        project: Project,
        root: Path,
        mode: BuildMode,
        registry: AdapterRegistry | None = None,
        state: BuildState | None = None,
    ) -> BuildContext:
        """Resolve every configured path against ``root``."""
        root = root.resolve()
        ds = project.downstream
        snap = project.snapshot
        search_dir = root / ds.search_dir

        binary_name = ds.binary or _package_name(root / ds.manifest_file)
        binary_path = root / ds.binary_dir / binary_name if binary_name else None
        binary_dest = root / binary_name if binary_name else None

        state_dir = root / DEFAULT_STATE_DIR
        state_path = state_dir / DEFAULT_STATE_FILE

        return cls(
            project=project,
            root=root,
            mode=mode,
            registry=registry or AdapterRegistry.default(),
            state=state if state is not None else load_state(state_path),
            modules=[_module_paths(m, root, search_dir) for m in project.native_modules],
            output_dir=root / ds.output_dir,
            search_dir=search_dir,
            binary_name=binary_name,
            binary_path=binary_path,
            binary_dest=binary_dest,
            lock_file=root / ds.lock_file,
            vendor_dir=root / snap.vendor_dir,
            archive_path=root / snap.archive,
            config_override=root / snap.config_override,
            state_dir=state_dir,
            state_path=state_path,
            audit_path=state_dir / DEFAULT_AUDIT_FILE,
        )

    @property
    def jobs(self) -> int:
        return self.project.jobs or os.cpu_count() or 1

    @property
    def hash_staleness(self) -> bool:
        return self.project.staleness == "hash"

    def rel(self, path: Path) -> str:
        return display_path(path, self.root)

    def module(self, name: str) -> ModulePaths:
        for mod in self.modules:
            if mod.name == name:
                return mod
        raise KeyError(name)


def _module_paths(module: NativeModule, root: Path, search_dir: Path) -> ModulePaths:
    base = root / module.path
    build_dir = base / module.build_dir
    return ModulePaths(
        name=module.name,
        root=base,
        src_dir=base / module.src_dir,
        include_dir=base / module.include_dir,
        build_dir=build_dir,
        library=build_dir / module.library_name,
        placed_library=search_dir / module.library_name,
        source_glob=module.source_glob,
    )


def _package_name(manifest: Path) -> str | None:
    """[package].name from a Cargo-style TOML manifest, if readable."""
    if not manifest.is_file():
        return None
    try:
        data = tomllib.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Cannot read package name from %s: %s", manifest, e)
        return None
    name = data.get("package", {}).get("name")
    return name if isinstance(name, str) and name else None
