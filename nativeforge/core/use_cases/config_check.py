"""
Config check use case — validate nativeforge.yml and report issues.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from nativeforge.core.config.loader import ConfigError, find_project_file, load_project
from nativeforge.core.models.project import Project


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    project: Project | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "project_name": self.project.name if self.project else None,
            "module_count": len(self.project.native_modules) if self.project else 0,
            "staleness": self.project.staleness if self.project else None,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate the build configuration and report issues.

    Args:
        config_path: Optional explicit path to nativeforge.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_project_file()
    if config_path is None:
        result.errors.append("No nativeforge.yml found.")
        return result
    result.config_path = config_path

    try:
        project = load_project(config_path)
        result.project = project
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    if not project.native_modules:
        result.warnings.append("No native modules defined. Only the downstream build will run.")

    project_root = config_path.parent
    for mod in project.native_modules:
        src_dir = project_root / mod.path / mod.src_dir
        if not src_dir.is_dir():
            result.warnings.append(
                f"Module '{mod.name}' source directory does not exist: {mod.path}/{mod.src_dir}"
            )

    tools = {
        "C compiler": project.toolchain.cc,
        "archiver": project.toolchain.ar,
        "online build": project.downstream.build_online,
        "offline build": project.downstream.build_offline,
        "vendor": project.downstream.vendor,
    }
    for label, argv in tools.items():
        if not argv:
            result.errors.append(f"The {label} command is empty.")
        elif shutil.which(argv[0]) is None:
            result.warnings.append(f"The {label} tool '{argv[0]}' is not on PATH.")

    if not any("{vendor_dir}" in arg for arg in project.downstream.vendor):
        result.warnings.append(
            "The vendor command has no {vendor_dir} placeholder; "
            f"it must write to '{project.snapshot.vendor_dir}' itself."
        )

    result.valid = len(result.errors) == 0
    return result
