"""
State file persistence — atomic read/write for BuildState.

State lives in .nativeforge/state.json. Writes go to a temp file in the
same directory and are renamed over the target, so an interrupted run
never leaves a truncated state file behind.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from nativeforge.core.models.state import BuildState
from nativeforge.core.services.fsutil import atomic_write_bytes

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".nativeforge"
DEFAULT_STATE_FILE = "state.json"


def default_state_path(project_root: Path) -> Path:
    return project_root / DEFAULT_STATE_DIR / DEFAULT_STATE_FILE


def load_state(path: Path) -> BuildState:
    """Load build state; a missing or corrupt file yields a fresh state."""
    if not path.is_file():
        logger.debug("No state file at %s — starting fresh", path)
        return BuildState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = BuildState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s — starting fresh", path, e)
        return BuildState()
    except Exception as e:
        logger.warning("Cannot load state from %s: %s — starting fresh", path, e)
        return BuildState()


def save_state(state: BuildState, path: Path) -> None:
    """Save build state (atomic write)."""
    state.touch()
    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    try:
        atomic_write_bytes(path, content.encode("utf-8"))
        logger.debug("State saved to %s", path)
    except OSError as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise
