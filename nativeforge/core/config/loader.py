"""
Configuration loader — reads nativeforge.yml into the Project model.

The config file is optional: without one, the project root is the
working directory and every setting takes its conventional default.
A file that exists but is unreadable or invalid is always an error.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from nativeforge.core.models.project import Project

logger = logging.getLogger(__name__)

# Default config filename
PROJECT_CONFIG_FILE = "nativeforge.yml"


class ConfigError(Exception):
    """Raised when the build configuration is invalid or unreadable."""


def find_project_file(start_dir: Path | None = None) -> Path | None:
    """Search for nativeforge.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to nativeforge.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROJECT_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_project(path: Path) -> Project:
    """Load and validate a build configuration file.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading build config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        project = Project.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid build configuration: {e}") from e

    logger.info(
        "Loaded build config '%s' with %d native module(s)",
        project.name or path.parent.name,
        len(project.native_modules),
    )
    return project


def resolve_project(config_path: Path | None = None) -> tuple[Project, Path, Path | None]:
    """Find and load the configuration, falling back to defaults.

    Args:
        config_path: Explicit config file (--config). Must exist if given.

    Returns:
        (project, project_root, config_file_or_None)
    """
    if config_path is None:
        config_path = find_project_file()

    if config_path is None:
        root = Path.cwd().resolve()
        logger.debug("No %s found — using defaults rooted at %s", PROJECT_CONFIG_FILE, root)
        return Project(name=root.name), root, None

    project = load_project(config_path)
    root = config_path.parent.resolve()
    if not project.name:
        project.name = root.name
    return project, root, config_path
